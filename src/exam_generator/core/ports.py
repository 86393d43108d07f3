"""
Interfaces of the external collaborators the orchestrator drives.

Implementations live elsewhere: the Gemini adapter in
``core.gemini_client`` and local file-backed adapters in ``storage.local``.
"""
from typing import List, Protocol, Sequence

from exam_generator.models.question_models import AcceptedQuestion
from exam_generator.models.run_models import (
    FileHandle,
    GenerationResponse,
    GenerationUnit,
    ReferenceMaterial,
    UnitStatus,
)


class GenerationBoundary(Protocol):
    """External generative text service."""

    model_name: str

    async def upload(self, file_ref: str) -> FileHandle:
        """Upload one reference document. May fail per file."""
        ...

    async def generate(self, prompt: str, file_handles: Sequence[FileHandle]) -> GenerationResponse:
        """
        Run one generation call.

        Raises TransportError for network, rate-limit and timeout failures
        and EmptyResponseError when no text comes back.
        """
        ...


class MaterialSource(Protocol):
    """Lookup of the curriculum documents attached to a unit."""

    async def fetch_reference_materials(self, unit: GenerationUnit) -> List[ReferenceMaterial]:
        ...


class UnitStore(Protocol):
    """Persistence for units and their accepted questions."""

    async def get_unit(self, unit_id: str) -> GenerationUnit:
        ...

    async def update_unit_status(self, unit_id: str, status: UnitStatus) -> None:
        ...

    async def count_persisted(self, unit_id: str) -> int:
        """Number of questions already accepted for the unit."""
        ...

    async def persist_questions(self, unit_id: str, questions: Sequence[AcceptedQuestion]) -> None:
        ...
