"""
Unit tests for meta-reference detection (meta_reference.py).
"""
import pytest

from exam_generator.core.meta_reference import (
    detect_editorial_notes,
    detect_meta_references,
    strip_editorial_notes,
)


@pytest.mark.unit
class TestDetectMetaReferences:
    @pytest.mark.parametrize("text", [
        "According to NCERT, which tissue conducts water?",
        "As per the study material, photosynthesis occurs in which organelle?",
        "The study material states that enzymes are proteins. Which is correct?",
        "Which hormone regulates moulting (Note: insects only)?",
        "बाल विकास का कौन सा चरण (नोट: पियाजे के अनुसार) सबसे पहले आता है?",
    ])
    def test_flags_meta_text(self, text):
        assert detect_meta_references(text)

    def test_self_contained_text(self):
        assert detect_meta_references("Which tissue conducts water in vascular plants?") == []
        assert detect_meta_references("") == []


@pytest.mark.unit
class TestDetectEditorialNotes:
    def test_only_parenthesised_notes(self):
        assert detect_editorial_notes("Lysosome (Remark: suicide bag)") == ['editorial note "(Remark: ...)"']
        assert detect_editorial_notes("According to NCERT, lysosome") == []
        assert detect_editorial_notes("") == []


@pytest.mark.unit
class TestStripEditorialNotes:
    def test_removes_note_and_tidies_spacing(self):
        assert strip_editorial_notes("ATP is made in mitochondria (Note: see figure 5.2).") == \
            "ATP is made in mitochondria."

    def test_keeps_ordinary_parentheses(self):
        text = "Xylem (dead cells) conducts water."
        assert strip_editorial_notes(text) == text
