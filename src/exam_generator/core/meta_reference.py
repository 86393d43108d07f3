"""
Detection of meta-references and editorial notes in question text.

A question must read as self-contained text. Stems that cite the
ingested material ("according to the notes") or carry parenthesised
editorial notes in English or Hindi are rejected by the validator.
Options are held to the note rule only.
"""
import re
from typing import List

_SOURCE_NAMES = "ncert|the study material|the provided material|the material|the notes"

_META_PATTERNS = [
    (re.compile(rf"according to (?:{_SOURCE_NAMES}|who)", re.I), 'meta-reference "according to..."'),
    (re.compile(rf"as per (?:{_SOURCE_NAMES})", re.I), 'meta-reference "as per..."'),
    (re.compile(rf"as mentioned in (?:{_SOURCE_NAMES})", re.I), 'meta-reference "as mentioned in..."'),
    (re.compile(r"the study material (?:says|states|mentions|defines)", re.I), 'cites "the study material"'),
    (re.compile(r"the provided material", re.I), 'cites "the provided material"'),
    (re.compile(r"what does (?:ncert|the material|the study material) say", re.I), 'asks "what does the material say"'),
    (re.compile(r"in the (?:given|provided) (?:material|notes)", re.I), 'cites "the given/provided material"'),
    (re.compile(r"from the (?:study material|provided notes)", re.I), 'cites "from the study material"'),
]

_HINDI_NOTE_KEYWORDS = ["नोट", "टिप्पणी", "ध्यान दें", "सूचना", "व्याख्या", "जानकारी", "संकेत"]
_ENGLISH_NOTE_KEYWORDS = ["note", "commentary", "explanation", "hint", "remark", "comment", "info", "source", "reference"]
_PAREN_REFERENCES = ["according to", "as per", "based on", "editorial"]

_NOTE_PATTERNS = (
    [(re.compile(rf"\(\s*{kw}\s*:.*?\)", re.S), f'Hindi editorial note "({kw}: ...)"')
     for kw in _HINDI_NOTE_KEYWORDS]
    + [(re.compile(rf"\(\s*{kw}\s*:.*?\)", re.I | re.S), f'editorial note "({kw.title()}: ...)"')
       for kw in _ENGLISH_NOTE_KEYWORDS]
    + [(re.compile(rf"\(\s*{kw}.*?\)", re.I | re.S), f'parenthesised "({kw.title()}...)"')
       for kw in _PAREN_REFERENCES]
)


def detect_meta_references(text: str) -> List[str]:
    """
    Return a description of every meta-reference pattern found in ``text``.

    An empty list means the text is self-contained.
    """
    if not text:
        return []
    found = []
    for pattern, message in _META_PATTERNS + _NOTE_PATTERNS:
        if pattern.search(text):
            found.append(message)
    return found


def detect_editorial_notes(text: str) -> List[str]:
    """Like detect_meta_references, but only for parenthesised editorial notes."""
    if not text:
        return []
    return [message for pattern, message in _NOTE_PATTERNS if pattern.search(text)]


def strip_editorial_notes(text: str) -> str:
    """Remove parenthesised editorial notes, tidying the spacing left behind."""
    if not text:
        return text
    for pattern, _ in _NOTE_PATTERNS:
        text = pattern.sub("", text)
    text = re.sub(r"[ \t]{2,}", " ", text).strip()
    return re.sub(r"[ \t]+([,.?!;:])", r"\1", text)
