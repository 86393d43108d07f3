"""
Response normalizer.

Generation output is untrusted text. This module turns it into a typed
QuestionBatch through a fixed pipeline:

1. strip code fences (and zero-width characters)
2. cut the payload from the first opening to the last matching closing delimiter
3. parse strictly; on failure repair known model faults with json_repair
   (trailing or missing commas, raw control characters inside strings,
   unterminated strings and brackets)
4. convert each item into a RawQuestion

Every failure becomes a MalformedOutputError carrying a ParseDiagnostic.
Low-level decode errors never escape this module.
"""
import json
import logging
import re
from typing import Any, Optional

import json_repair
from pydantic import ValidationError

from exam_generator import config
from exam_generator.exceptions import MalformedOutputError
from exam_generator.models.question_models import OPTION_KEYS, QuestionBatch, RawQuestion
from exam_generator.models.run_models import ParseDiagnostic

logger = logging.getLogger(__name__)

_FENCE_OPEN = re.compile(r"^\s*```[A-Za-z0-9_-]*[ \t]*\r?\n?")
_FENCE_CLOSE = re.compile(r"\r?\n?[ \t]*```\s*$")
_ZERO_WIDTH = re.compile("[\\u200b\\u200c\\u200d\\u2060\\ufeff]")
_CLOSERS = {"{": "}", "[": "]"}


def strip_code_fences(text: str) -> str:
    """Remove a surrounding ```json ... ``` fence, if present."""
    text = _ZERO_WIDTH.sub("", text).strip()
    if text.startswith("```"):
        text = _FENCE_OPEN.sub("", text, count=1)
        text = _FENCE_CLOSE.sub("", text, count=1)
    return text.strip()


def extract_payload(text: str) -> Optional[str]:
    """
    Return the text between the first opening delimiter and its last closing match.

    When the closing delimiter is missing (truncated output) everything
    from the opening delimiter onward is returned. Returns None when the
    text holds no opening delimiter at all.
    """
    starts = [i for i in (text.find("{"), text.find("[")) if i != -1]
    if not starts:
        return None
    start = min(starts)
    end = text.rfind(_CLOSERS[text[start]])
    if end < start:
        return text[start:]
    return text[start:end + 1]


def repair_json(text: str) -> str:
    """Return ``text`` rewritten as valid JSON, or an empty string if nothing is recoverable."""
    return json_repair.repair_json(text)


def _diagnostic(raw_text: str, stage: str, message: str,
                cleaned: Optional[str] = None,
                position: Optional[int] = None) -> ParseDiagnostic:
    n = config.DIAGNOSTIC_PREVIEW_CHARS
    context = None
    if cleaned is not None and position is not None:
        width = config.DIAGNOSTIC_CONTEXT_CHARS
        context = cleaned[max(0, position - width):position + width]
    return ParseDiagnostic(
        error_message=message,
        stage=stage,
        response_length=len(raw_text),
        first_chars=raw_text[:n],
        last_chars=raw_text[-n:] if len(raw_text) > n else raw_text,
        error_position=position,
        error_context=context,
        cleaned_preview=cleaned[:500] if cleaned is not None else None,
    )


def parse_payload(raw_text: str) -> Any:
    """
    Run stages 1-3 and return the decoded JSON value.

    Raises:
        MalformedOutputError: If neither the strict parse nor the repair
            yields a non-empty object or array.
    """
    if not raw_text or not raw_text.strip():
        raise MalformedOutputError(
            "Generation output is empty",
            _diagnostic(raw_text or "", "empty", "empty response"))

    stripped = strip_code_fences(raw_text)
    payload = extract_payload(stripped)
    if payload is None:
        raise MalformedOutputError(
            "No JSON object or array found in generation output",
            _diagnostic(raw_text, "extract", "no opening delimiter", cleaned=stripped))

    try:
        return json.loads(payload)
    except json.JSONDecodeError as e:
        message, position = e.msg, e.pos

    value = json_repair.loads(payload)
    if isinstance(value, (dict, list)) and value:
        logger.warning(
            "Generation output repaired after parse failure: %s at char %d", message, position)
        return value

    raise MalformedOutputError(
        f"Generation output is not valid JSON: {message} at char {position}",
        _diagnostic(raw_text, "parse", message, cleaned=payload, position=position))


def _coerce_options(item: dict) -> dict:
    options = item.get("options")
    if isinstance(options, list):
        item = dict(item, options={key: str(text) for key, text in zip(OPTION_KEYS, options)})
    elif isinstance(options, dict):
        coerced = {}
        for key, text in options.items():
            label = str(key).strip().strip("()").upper()
            if label in ("A", "B", "C", "D"):
                label = str("ABCD".index(label) + 1)
            coerced[f"({label})"] = str(text)
        item = dict(item, options=coerced)
    return item


def normalize_response(raw_text: str) -> QuestionBatch:
    """
    Convert raw generation output into a typed question batch.

    Items that fail typed conversion are dropped and reported in the
    batch warnings.

    Raises:
        MalformedOutputError: If the text cannot be parsed, or no usable questions remain.
    """
    value = parse_payload(raw_text)

    if isinstance(value, dict):
        items = value.get("questions")
    elif isinstance(value, list):
        items = value
    else:
        items = None

    if not isinstance(items, list):
        raise MalformedOutputError(
            'Generation output has no "questions" list',
            _diagnostic(raw_text, "shape", f"top-level {type(value).__name__} without questions"))
    if not items:
        raise MalformedOutputError(
            "Generation output contains an empty questions list",
            _diagnostic(raw_text, "shape", "empty questions list"))

    questions = []
    warnings = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            warnings.append(f"Question {index + 1} dropped: expected an object, got {type(item).__name__}")
            continue
        try:
            questions.append(RawQuestion.model_validate(_coerce_options(item)))
        except ValidationError as e:
            fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
            warnings.append(f"Question {index + 1} dropped: invalid fields ({fields})")

    for warning in warnings:
        logger.warning(warning)

    if not questions:
        raise MalformedOutputError(
            f"None of the {len(items)} generated items could be read as questions",
            _diagnostic(raw_text, "typing", "; ".join(warnings[:5])))

    return QuestionBatch(questions=questions, warnings=warnings)
