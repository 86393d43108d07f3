"""
Unit tests for the response normalizer (normalizer.py).

Tests cover:
- Code fence stripping and payload extraction
- JSON repair (trailing commas, raw newlines, truncation)
- Diagnostics attached to parse failures
- Typed conversion and dropped items
"""
import json

import pytest

from conftest import make_batch, question_payload
from exam_generator.core.normalizer import (
    extract_payload,
    normalize_response,
    repair_json,
    strip_code_fences,
)
from exam_generator.exceptions import MalformedOutputError


@pytest.mark.unit
class TestCleaning:
    """Test the text-level stages."""

    def test_strip_code_fences(self):
        assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_strip_zero_width_characters(self):
        assert strip_code_fences("\ufeff{\"a\": 1}\u200b") == '{"a": 1}'

    def test_extract_payload_ignores_surrounding_prose(self):
        text = 'Here are your questions:\n{"questions": []}\nGood luck!'
        assert extract_payload(text) == '{"questions": []}'

    def test_extract_payload_without_json(self):
        assert extract_payload("no structured data here") is None

    def test_repair_trailing_commas(self):
        assert json.loads(repair_json('{"a": [1, 2, ], }')) == {"a": [1, 2]}

    def test_repair_raw_newline_in_string(self):
        assert json.loads(repair_json('{"a": "line one\nline two"}')) == {"a": "line one\nline two"}

    def test_repair_closes_truncated_document(self):
        assert json.loads(repair_json('{"a": [{"b": "unfinished')) == {"a": [{"b": "unfinished"}]}

    def test_repair_missing_comma_between_objects(self):
        assert json.loads(repair_json('[{"a": 1} {"a": 2}]')) == [{"a": 1}, {"a": 2}]


@pytest.mark.unit
class TestNormalizeResponse:
    """Test the full normalization pipeline."""

    def test_messy_output_equals_clean_output(self):
        """Test that fences, a trailing comma and a raw newline do not change the result."""
        payloads = make_batch(2, explanation="First line.\nSecond line.")
        clean = json.dumps({"questions": payloads})
        items = ",\n".join(json.dumps(p).replace("\\n", "\n") for p in payloads)
        messy = '```json\n{"questions": [\n' + items + ',\n]}\n```'

        assert normalize_response(messy).questions == normalize_response(clean).questions

    def test_bare_array_accepted(self):
        batch = normalize_response(json.dumps(make_batch(2)))
        assert len(batch.questions) == 2

    def test_list_options_and_letter_keys_are_coerced(self):
        as_list = question_payload(options=["Mitochondrion", "Golgi apparatus", "Ribosome", "Lysosome"])
        as_letters = question_payload(options={"A": "Mitochondrion", "B": "Golgi apparatus",
                                               "C": "Ribosome", "D": "Lysosome"}, correctAnswer=1)
        batch = normalize_response(json.dumps({"questions": [as_list, as_letters]}))

        for question in batch.questions:
            assert sorted(question.options) == ["(1)", "(2)", "(3)", "(4)"]
        assert batch.questions[1].correct_answer == "(1)"

    def test_truncated_output_keeps_complete_questions(self):
        """Test that a cut-off final item is dropped with a warning."""
        complete = json.dumps(question_payload())
        text = ('{"questions": [' + complete
                + ', {"questionNumber": 2, "options": {"(1)": "Nucleus"}, "questionText": "Which org')

        batch = normalize_response(text)

        assert len(batch.questions) == 1
        assert batch.warnings and batch.warnings[0].startswith("Question 2 dropped")

    def test_missing_comma_between_questions_is_repaired(self):
        """Test that two items with no separator both survive."""
        first, second = (json.dumps(p) for p in make_batch(2))
        batch = normalize_response('{"questions": [' + first + " " + second + "]}")

        assert [q.question_number for q in batch.questions] == [1, 2]

    def test_invalid_item_is_dropped(self):
        payloads = make_batch(2)
        payloads[0]["archetype"] = "guesswork"
        batch = normalize_response(json.dumps({"questions": payloads}))

        assert len(batch.questions) == 1
        assert "archetype" in batch.warnings[0]


@pytest.mark.unit
class TestDiagnostics:
    """Test failures and their diagnostics."""

    def test_empty_output(self):
        with pytest.raises(MalformedOutputError) as exc_info:
            normalize_response("   ")
        assert exc_info.value.diagnostic.stage == "empty"

    def test_prose_only_output(self):
        text = "I am unable to generate questions for this topic."
        with pytest.raises(MalformedOutputError) as exc_info:
            normalize_response(text)

        diagnostic = exc_info.value.diagnostic
        assert diagnostic.stage == "extract"
        assert diagnostic.response_length == len(text)
        assert diagnostic.first_chars == text
        assert exc_info.value.to_dict()["code"] == "MALFORMED_OUTPUT"

    def test_unrepairable_json_reports_position(self):
        with pytest.raises(MalformedOutputError) as exc_info:
            normalize_response("Here is the list: [")

        diagnostic = exc_info.value.diagnostic
        assert diagnostic.stage == "parse"
        assert diagnostic.error_position == 1
        assert diagnostic.error_context == "["

    def test_empty_questions_list(self):
        with pytest.raises(MalformedOutputError) as exc_info:
            normalize_response('{"questions": []}')
        assert exc_info.value.diagnostic.stage == "shape"

    def test_no_usable_items(self):
        with pytest.raises(MalformedOutputError) as exc_info:
            normalize_response('{"questions": [{"questionText": "Incomplete"}]}')
        assert exc_info.value.diagnostic.stage == "typing"
