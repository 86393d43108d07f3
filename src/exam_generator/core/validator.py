"""
Protocol Validator.

Checks a generated batch against the active protocol. Hard errors block
persistence of the offending question (or of the whole batch, for
batch-level errors); warnings are always reported and never block.

Error codes:
- PROHIBITED_OPTION, PROHIBITED_STEM_PHRASE, DOUBLE_NEGATIVE
- SUBSET_OPTION, BOTH_AND_OPTION, DUPLICATE_OPTIONS
- META_REFERENCE, UNDECLARED_ARCHETYPE, UNDECLARED_FORM
- COOCCURRENCE_MANDATORY, MATCH_FORMAT, ASSERTION_REASON_FORMAT
- COGNITIVE_LOAD_RUN (batch-level, names the offending index range)

Warning codes:
- DISTRIBUTION_ARCHETYPE, DISTRIBUTION_FORM, DISTRIBUTION_FIDELITY
- COOCCURRENCE_STRONG, ANSWER_KEY_RUN, ANSWER_KEY_IMBALANCE
- WARMUP_DENSITY, LOPSIDED_OPTIONS, BASIC_QUALITY
"""
import logging
import re
from collections import Counter
from typing import Callable, Dict, List, Optional, Sequence

from exam_generator.core.meta_reference import detect_editorial_notes, detect_meta_references
from exam_generator.exceptions import ConfigurationError
from exam_generator.models.protocol_models import (
    CognitiveLoadRules,
    Difficulty,
    DifficultyProfile,
    PercentRange,
    Protocol,
    StructuralForm,
)
from exam_generator.models.question_models import OPTION_KEYS, RawQuestion
from exam_generator.models.validation_models import ValidationIssue, ValidationResult
from exam_generator.protocols.registry import get_registry

logger = logging.getLogger(__name__)

MATCH_ENDING = "Choose the correct answer from the options given below"
ASSERTION_ENDING = "In the light of the above statements"
MAX_SAME_ANSWER_RUN = 3
LOPSIDED_RATIO = 3
MIN_EXPLANATION_CHARS = 10

_SUBSET_EXEMPT_FORMS = {
    StructuralForm.MULTI_STATEMENT,
    StructuralForm.ASSERTION_REASON,
    StructuralForm.MATCH_FOLLOWING,
}
_BOTH_AND_EXEMPT_FORMS = {StructuralForm.MULTI_STATEMENT, StructuralForm.ASSERTION_REASON}

_DECISION_LINE = re.compile(
    r"^\s*(?:[A-E][.)]|\([a-e]\)|[ivx]+[.)]|Statement\s+[IVX]+\s*:|Assertion\s*\(A\)|Reason\s*\(R\))",
    re.MULTILINE)
_MATCH_LEFT = re.compile(r"^\s*([A-D])[.)]", re.MULTILINE)
_MATCH_RIGHT = re.compile(r"(?<![A-Za-z])(I|II|III|IV)[.)]")
_CODED_OPTION = re.compile(r"[A-D]\s*-\s*[IV]+")


def _normalize_option(text: str) -> str:
    return re.sub(r"[^\w\s]", "", text.lower()).strip()


def _word_count(text: str) -> int:
    return len(text.split())


def count_decisions(text: str) -> int:
    """Number of enumerated statements or items the reader must judge."""
    return len(_DECISION_LINE.findall(text))


def is_high_density(question: RawQuestion, rules: CognitiveLoadRules) -> bool:
    """
    Effective high density.

    A question is high density when it is declared so, its stem is longer
    than the word threshold, its form is always high density, or it asks
    the reader to judge at least the threshold number of statements.
    """
    return (
        question.cognitive_load == "high"
        or _word_count(question.question_text) > rules.high_density_word_threshold
        or question.structural_form in rules.high_density_forms
        or count_decisions(question.question_text) >= rules.high_density_decision_threshold
    )


def _issue(code: str, message: str, severity: str, index: Optional[int] = None,
           indices: Optional[List[int]] = None) -> ValidationIssue:
    return ValidationIssue(
        code=code,
        message=message,
        severity=severity,
        question_index=index,
        indices=indices if indices is not None else ([index] if index is not None else []),
    )


def _error(code: str, message: str, index: Optional[int] = None, **kwargs) -> ValidationIssue:
    return _issue(code, message, "error", index, **kwargs)


def _warning(code: str, message: str, index: Optional[int] = None, **kwargs) -> ValidationIssue:
    return _issue(code, message, "warning", index, **kwargs)


def check_distribution(
    code: str,
    label: str,
    observed: Sequence,
    ranges: Dict,
) -> List[ValidationIssue]:
    """Compare observed category shares against percentage ranges (warnings only)."""
    if not observed:
        return []
    counts = Counter(observed)
    total = len(observed)
    warnings = []
    for category, allowed in ranges.items():
        share = counts.get(category, 0) * 100 / total
        if not allowed.contains(share):
            name = getattr(category, "value", category)
            warnings.append(_warning(
                code,
                f"{label} '{name}' is {share:.1f}% of {total} questions "
                f"(protocol range {allowed.min:g}-{allowed.max:g}%)"))
    return warnings


def difficulty_profile(protocol: Protocol, difficulty: str) -> DifficultyProfile:
    """
    Get the profile a protocol defines for a difficulty.

    Raises:
        ConfigurationError: If the protocol has no such difficulty.
    """
    try:
        return protocol.difficulty_profiles[difficulty]
    except KeyError:
        raise ConfigurationError(
            f"Unknown difficulty '{difficulty}' for protocol {protocol.id}",
            details={"allowed": sorted(protocol.difficulty_profiles)},
        ) from None


def check_distributions(
    questions: Sequence[RawQuestion],
    protocol: Protocol,
    difficulty: Difficulty = "balanced",
) -> List[ValidationIssue]:
    """Archetype, structural form and fidelity distribution warnings for a set of questions."""
    profile = difficulty_profile(protocol, difficulty)
    warnings = check_distribution(
        "DISTRIBUTION_ARCHETYPE", "Archetype",
        [q.archetype for q in questions], profile.archetypes)
    warnings += check_distribution(
        "DISTRIBUTION_FORM", "Structural form",
        [q.structural_form for q in questions], profile.structural_forms)
    tagged = [q.fidelity for q in questions if q.fidelity is not None]
    warnings += check_distribution(
        "DISTRIBUTION_FIDELITY", "Fidelity", tagged, protocol.fidelity)
    return warnings


class ProtocolValidator:
    """Validate question batches against exam protocols."""

    def __init__(self):
        self._question_checks: List[Callable] = [
            self.check_declared_categories,
            self.check_prohibited_options,
            self.check_stem_phrasing,
            self.check_meta_references,
            self.check_option_structure,
            self.check_co_occurrence,
            self.check_match_format,
            self.check_assertion_reason_format,
            self.check_basic_quality,
        ]

    def validate(
        self,
        questions: Sequence[RawQuestion],
        protocol: Protocol,
        difficulty: Difficulty = "balanced",
    ) -> ValidationResult:
        """
        Validate an ordered batch.

        Args:
            questions: Questions in generation order.
            protocol: Protocol to validate against.
            difficulty: Difficulty profile used for distribution and category checks.

        Returns:
            ValidationResult with all hard errors and warnings, in detection order.

        Raises:
            ConfigurationError: If the protocol has no profile for ``difficulty``.
        """
        difficulty_profile(protocol, difficulty)
        issues: List[ValidationIssue] = []
        for index, question in enumerate(questions):
            for check in self._question_checks:
                issues.extend(check(index, question, protocol, difficulty))

        issues.extend(self.check_cognitive_load(questions, protocol))
        issues.extend(self.check_answer_key(questions))
        issues.extend(check_distributions(questions, protocol, difficulty))

        errors = [i for i in issues if i.severity == "error"]
        warnings = [i for i in issues if i.severity == "warning"]
        logger.debug(
            "Validated %d questions against %s: %d errors, %d warnings",
            len(questions), protocol.id, len(errors), len(warnings))
        return ValidationResult(valid=not errors, errors=errors, warnings=warnings)

    # ===========================================
    # Per-question checks
    # ===========================================

    def check_declared_categories(self, index, question, protocol, difficulty):
        profile = difficulty_profile(protocol, difficulty)
        issues = []
        if question.archetype not in profile.archetypes:
            issues.append(_error(
                "UNDECLARED_ARCHETYPE",
                f"Q{index + 1}: archetype '{question.archetype.value}' is not part of {protocol.name}",
                index))
        if question.structural_form not in profile.structural_forms:
            issues.append(_error(
                "UNDECLARED_FORM",
                f"Q{index + 1}: structural form '{question.structural_form.value}' "
                f"is not part of {protocol.name}",
                index))
        return issues

    def check_prohibited_options(self, index, question, protocol, difficulty):
        issues = []
        for key, text in question.options.items():
            lowered = text.lower()
            for phrase in protocol.prohibitions.banned_option_phrases:
                if phrase in lowered:
                    issues.append(_error(
                        "PROHIBITED_OPTION",
                        f'Q{index + 1}: option {key} contains prohibited "{phrase}"',
                        index))
        return issues

    def check_stem_phrasing(self, index, question, protocol, difficulty):
        issues = []
        stem = question.question_text
        for word in protocol.prohibitions.banned_stem_words:
            if re.search(rf"\b{re.escape(word)}\b", stem, re.IGNORECASE):
                issues.append(_error(
                    "PROHIBITED_STEM_PHRASE",
                    f'Q{index + 1}: stem contains prohibited "{word}"',
                    index))
        for pattern in protocol.prohibitions.double_negative_patterns:
            match = re.search(pattern, stem, re.IGNORECASE)
            if match:
                issues.append(_error(
                    "DOUBLE_NEGATIVE",
                    f'Q{index + 1}: possible double negative "{match.group(0)}"',
                    index))
        return issues

    def check_meta_references(self, index, question, protocol, difficulty):
        issues = [
            _error("META_REFERENCE", f"Q{index + 1}: {finding}", index)
            for finding in detect_meta_references(question.question_text)
        ]
        for key, text in question.options.items():
            issues.extend(
                _error("META_REFERENCE", f"Q{index + 1} option {key}: {finding}", index)
                for finding in detect_editorial_notes(text))
        return issues

    def check_option_structure(self, index, question, protocol, difficulty):
        issues = []
        items = list(question.options.items())
        normalized = [(key, _normalize_option(text)) for key, text in items]

        values = [n for _, n in normalized]
        if len(set(values)) < len(values):
            issues.append(_error(
                "DUPLICATE_OPTIONS",
                f"Q{index + 1}: options are not mutually exclusive (duplicates found)",
                index))

        prohibitions = protocol.prohibitions
        if prohibitions.forbid_subset_options and question.structural_form not in _SUBSET_EXEMPT_FORMS:
            for key_a, a in normalized:
                for key_b, b in normalized:
                    if key_a != key_b and a and a != b and re.search(rf"\b{re.escape(a)}\b", b):
                        issues.append(_error(
                            "SUBSET_OPTION",
                            f"Q{index + 1}: option {key_a} is contained in option {key_b}",
                            index))

        if prohibitions.forbid_both_and_options and question.structural_form not in _BOTH_AND_EXEMPT_FORMS:
            for key, text in items:
                lowered = text.lower()
                if re.search(r"\bboth\b", lowered) and (re.search(r"\band\b", lowered) or "&" in lowered):
                    issues.append(_error(
                        "BOTH_AND_OPTION",
                        f'Q{index + 1}: option {key} uses "Both ... and" outside '
                        f"multi-statement or assertion-reason format",
                        index))
                    break

        lengths = [len(text.strip()) for _, text in items if text.strip()]
        if len(lengths) > 1 and max(lengths) > min(lengths) * LOPSIDED_RATIO:
            issues.append(_warning(
                "LOPSIDED_OPTIONS",
                f"Q{index + 1}: lopsided option lengths (max {max(lengths)}, min {min(lengths)})",
                index))
        return issues

    def check_co_occurrence(self, index, question, protocol, difficulty):
        issues = []
        for rule in protocol.co_occurrence:
            if rule.archetype != question.archetype:
                continue
            if question.structural_form in rule.structural_forms:
                continue
            allowed = " or ".join(f.value for f in rule.structural_forms)
            message = (
                f"Q{index + 1}: {question.archetype.value} question uses "
                f"{question.structural_form.value}; expected {allowed}")
            if rule.strength == "mandatory":
                issues.append(_error("COOCCURRENCE_MANDATORY", message, index))
            else:
                issues.append(_warning("COOCCURRENCE_STRONG", message, index))
        return issues

    def check_match_format(self, index, question, protocol, difficulty):
        if question.structural_form != StructuralForm.MATCH_FOLLOWING:
            return []
        text = question.question_text
        problems = []
        if "Column I" not in text or "Column II" not in text:
            problems.append("missing Column I/II headers")
        if MATCH_ENDING not in text:
            problems.append("missing required ending phrase")
        coded = [o for o in question.options.values() if _CODED_OPTION.search(o)]
        if len(coded) < len(question.options):
            problems.append("options are not coded combinations (e.g. A-III, B-I)")
        left = set(_MATCH_LEFT.findall(text))
        right = set(_MATCH_RIGHT.findall(text))
        if len(left) < 4 or len(right) < 4:
            problems.append("not a 4×4 matrix")
        if not problems:
            return []
        return [_error("MATCH_FORMAT", f"Q{index + 1}: Match question {'; '.join(problems)}", index)]

    def check_assertion_reason_format(self, index, question, protocol, difficulty):
        if question.structural_form != StructuralForm.ASSERTION_REASON:
            return []
        text = question.question_text
        problems = []
        if not re.search(r"Assertion\s*\(A\)\s*:", text):
            problems.append('missing "Assertion (A):" label')
        if not re.search(r"Reason\s*\(R\)\s*:", text):
            problems.append('missing "Reason (R):" label')
        if ASSERTION_ENDING not in text:
            problems.append("missing required ending phrase")
        linkage = [question.options.get(k, "") for k in OPTION_KEYS[:2]]
        if not all("explanation" in o.lower() for o in linkage):
            problems.append('options (1) and (2) must mention "explanation"')
        if not problems:
            return []
        return [_error(
            "ASSERTION_REASON_FORMAT",
            f"Q{index + 1}: Assertion-Reason question {'; '.join(problems)}",
            index)]

    def check_basic_quality(self, index, question, protocol, difficulty):
        problems = []
        if len(question.options) != 4 or set(question.options) != set(OPTION_KEYS):
            problems.append(f"expected options (1)-(4), found {sorted(question.options)}")
        for key, text in question.options.items():
            if not text.strip():
                problems.append(f"option {key} is empty")
        if question.correct_answer not in OPTION_KEYS or question.correct_answer not in question.options:
            problems.append(f"invalid correct answer {question.correct_answer!r}")
        if not question.question_text.strip():
            problems.append("question text is empty")
        if len(question.explanation.strip()) < MIN_EXPLANATION_CHARS:
            problems.append("explanation is missing or too short")
        return [_warning("BASIC_QUALITY", f"Q{index + 1}: {p}", index) for p in problems]

    # ===========================================
    # Sequence checks
    # ===========================================

    def check_cognitive_load(self, questions, protocol):
        """Run-length errors for high-density streaks plus the warm-up zone warning."""
        rules = protocol.cognitive_load
        issues = []

        warmup = rules.warmup_count(len(questions))
        for index, question in enumerate(questions[:warmup]):
            if question.cognitive_load != "low":
                issues.append(_warning(
                    "WARMUP_DENSITY",
                    f"Q{index + 1}: should be a low-density warm-up question, "
                    f"but is {question.cognitive_load}-density",
                    index))

        issues.extend(self.find_high_density_runs(questions, rules))
        return issues

    def find_high_density_runs(self, questions, rules: CognitiveLoadRules) -> List[ValidationIssue]:
        """One batch-level error per maximal run longer than the allowed streak."""
        flags = [is_high_density(q, rules) for q in questions]
        issues = []
        start = None
        for index, high in enumerate(flags + [False]):
            if high and start is None:
                start = index
            elif not high and start is not None:
                length = index - start
                if length > rules.max_consecutive_high:
                    issues.append(_error(
                        "COGNITIVE_LOAD_RUN",
                        f"Q{start + 1}-Q{index}: {length} consecutive high-density questions "
                        f"(maximum {rules.max_consecutive_high})",
                        indices=list(range(start, index))))
                start = None
        return issues

    def check_answer_key(self, questions):
        issues = []
        answers = [q.correct_answer for q in questions]

        run_start = 0
        for index in range(1, len(answers) + 1):
            if index == len(answers) or answers[index] != answers[run_start]:
                length = index - run_start
                if length > MAX_SAME_ANSWER_RUN:
                    issues.append(_warning(
                        "ANSWER_KEY_RUN",
                        f"Q{run_start + 1}-Q{index}: {length} consecutive questions "
                        f"answered {answers[run_start]}",
                        indices=list(range(run_start, index))))
                run_start = index

        total = len(answers)
        if total >= len(OPTION_KEYS) * 2:
            expected = PercentRange(min=20, max=30)
            counts = Counter(answers)
            for key in OPTION_KEYS:
                share = counts.get(key, 0) * 100 / total
                if not expected.contains(share):
                    issues.append(_warning(
                        "ANSWER_KEY_IMBALANCE",
                        f"Answer {key} is correct for {counts.get(key, 0)}/{total} "
                        f"questions ({share:.1f}%)"))
        return issues


def validate_questions(
    questions: Sequence[RawQuestion],
    protocol_id: str,
    registry=None,
    difficulty: Difficulty = "balanced",
) -> ValidationResult:
    """
    Validate questions against a protocol identified by id.

    Raises:
        ConfigurationError: If no protocol has that id,
            or it has no profile for ``difficulty``.
    """
    if registry is None:
        registry = get_registry()
    protocol = registry.get(protocol_id)
    return ProtocolValidator().validate(questions, protocol, difficulty)
