"""
Pytest configuration and shared fixtures for Exam Question Generator tests.

Provides question factories, the shipped protocols, and in-memory fakes
for the generation boundary, the material source and the unit store.
"""
import json
import tempfile
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from exam_generator.exceptions import UploadError
from exam_generator.models.question_models import AcceptedQuestion, RawQuestion
from exam_generator.models.run_models import (
    FileHandle,
    GenerationResponse,
    GenerationUnit,
    ReferenceMaterial,
    TokenUsage,
    UnitStatus,
)
from exam_generator.protocols.registry import get_registry


# ============================================================================
# PYTEST CONFIGURATION
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")


# ============================================================================
# ENVIRONMENT FIXTURES
# ============================================================================

@pytest.fixture
def mock_env_vars(monkeypatch):
    """Mock environment variables for testing."""
    test_api_key = "test-gemini-api-key-12345"
    monkeypatch.setenv("GEMINI_API_KEY", test_api_key)
    return {"GEMINI_API_KEY": test_api_key}


@pytest.fixture
def clean_env(monkeypatch):
    """Clean environment with no API key set."""
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


# ============================================================================
# QUESTION FACTORIES
# ============================================================================

STEMS = [
    "Which organelle is the site of aerobic respiration in eukaryotic cells?",
    "Which structure carries out protein synthesis in the cytoplasm?",
    "Which pigment absorbs light energy during photosynthesis?",
    "Which enzyme unwinds the DNA double helix during replication?",
    "Which hormone lowers blood glucose concentration?",
    "Which tissue transports water from roots to leaves?",
]


def question_payload(**overrides) -> Dict:
    """A camelCase question dict as the generative model emits it; valid for NEET Biology."""
    payload = {
        "questionNumber": 1,
        "questionText": STEMS[0],
        "archetype": "directRecall",
        "structuralForm": "standardMCQ",
        "cognitiveLoad": "low",
        "correctAnswer": "(1)",
        "options": {
            "(1)": "Mitochondrion",
            "(2)": "Golgi apparatus",
            "(3)": "Ribosome",
            "(4)": "Lysosome",
        },
        "explanation": "Mitochondria host the Krebs cycle and oxidative phosphorylation.",
        "difficulty": "easy",
        "ncertFidelity": "strict",
    }
    payload.update(overrides)
    return payload


def make_question(**overrides) -> RawQuestion:
    return RawQuestion.model_validate(question_payload(**overrides))


def make_batch(count: int, **overrides) -> List[Dict]:
    """``count`` distinct valid question payloads with rotating answers."""
    return [
        question_payload(
            questionNumber=i + 1,
            questionText=STEMS[i % len(STEMS)],
            correctAnswer=f"({i % 4 + 1})",
            **overrides,
        )
        for i in range(count)
    ]


def response_text(payloads: List[Dict]) -> str:
    return json.dumps({"questions": payloads})


MATCH_TEXT = (
    "Match Column I with Column II:\n"
    "Column I | Column II\n"
    "A. Mitochondria | I. Protein synthesis\n"
    "B. Ribosome | II. Photosynthesis\n"
    "C. Chloroplast | III. Aerobic respiration\n"
    "D. Lysosome | IV. Intracellular digestion\n"
    "Choose the correct answer from the options given below:"
)

MATCH_OPTIONS = {
    "(1)": "A-III, B-I, C-II, D-IV",
    "(2)": "A-I, B-II, C-III, D-IV",
    "(3)": "A-II, B-IV, C-I, D-III",
    "(4)": "A-IV, B-III, C-II, D-I",
}

ASSERTION_TEXT = (
    "Assertion (A): Mitochondria are called the powerhouse of the cell.\n"
    "Reason (R): Mitochondria produce most of the cell's ATP.\n"
    "In the light of the above statements, choose the correct answer from the options given below:"
)

ASSERTION_OPTIONS = {
    "(1)": "Both A and R are true and R is the correct explanation of A",
    "(2)": "Both A and R are true but R is not the correct explanation of A",
    "(3)": "A is true but R is false",
    "(4)": "A is false but R is true",
}


# ============================================================================
# PROTOCOL FIXTURES
# ============================================================================

@pytest.fixture
def registry():
    return get_registry()


@pytest.fixture
def neet_protocol(registry):
    return registry.lookup("NEET", "Biology")


@pytest.fixture
def reet_protocol(registry):
    return registry.get("reet-mains-level2-educational-psychology")


# ============================================================================
# FAKE COLLABORATORS
# ============================================================================

class FakeBoundary:
    """
    Generation boundary driven by a script keyed on the prompt topic.

    ``script`` maps a chapter name to a list of outcomes, consumed one per
    call (the last one repeats). An outcome is response text or an
    exception instance to raise.
    """

    model_name = "gemini-2.5-flash"

    def __init__(self, script: Dict[str, list], upload_failures=(), usage: Optional[TokenUsage] = None):
        self.script = {topic: list(outcomes) for topic, outcomes in script.items()}
        self.upload_failures = set(upload_failures)
        self.usage = usage or TokenUsage(prompt_tokens=1000, completion_tokens=500, total_tokens=1500)
        self.uploads: List[str] = []
        self.calls: Dict[str, int] = {}
        self.prompts: List[str] = []

    async def upload(self, file_ref: str) -> FileHandle:
        self.uploads.append(file_ref)
        if file_ref in self.upload_failures:
            raise UploadError(f"cannot upload {file_ref}")
        return FileHandle(name=f"files/{len(self.uploads)}", uri=f"https://files.test/{file_ref}")

    async def generate(self, prompt: str, file_handles) -> GenerationResponse:
        self.prompts.append(prompt)
        topic = next(t for t in self.script if f'"{t}"' in prompt)
        self.calls[topic] = self.calls.get(topic, 0) + 1
        outcomes = self.script[topic]
        outcome = outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return GenerationResponse(raw_text=outcome, token_usage=self.usage, model=self.model_name)


class FakeMaterialSource:
    """One PDF per chapter unless told otherwise."""

    def __init__(self, materials: Optional[Dict[str, List[ReferenceMaterial]]] = None):
        self.materials = materials or {}

    async def fetch_reference_materials(self, unit: GenerationUnit) -> List[ReferenceMaterial]:
        return self.materials.get(
            unit.chapter_id,
            [ReferenceMaterial(title=unit.chapter_name, file_ref=f"{unit.chapter_id}.pdf")])


class InMemoryUnitStore:
    def __init__(self, units: List[GenerationUnit]):
        self.units = {u.unit_id: u.model_copy() for u in units}
        self.questions: List[AcceptedQuestion] = []
        self.status_history: Dict[str, List[UnitStatus]] = {u.unit_id: [] for u in units}

    async def get_unit(self, unit_id: str) -> GenerationUnit:
        return self.units[unit_id].model_copy()

    async def update_unit_status(self, unit_id: str, status: UnitStatus) -> None:
        self.units[unit_id].status = status
        self.status_history[unit_id].append(status)

    async def count_persisted(self, unit_id: str) -> int:
        return sum(1 for q in self.questions if q.unit_id == unit_id)

    async def persist_questions(self, unit_id: str, questions) -> None:
        self.questions.extend(questions)

    def orders(self, unit_id: str) -> List[int]:
        return [q.question_order for q in self.questions if q.unit_id == unit_id]


def make_unit(unit_id: str, chapter_name: str, **overrides) -> GenerationUnit:
    fields = {
        "unit_id": unit_id,
        "chapter_id": f"ch-{unit_id}",
        "chapter_name": chapter_name,
        "exam": "NEET",
        "subject": "Biology",
        "target_count": 2,
    }
    fields.update(overrides)
    return GenerationUnit(**fields)
