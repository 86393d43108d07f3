"""
File-backed adapters for running the pipeline without a database.

- DirectoryMaterialSource: reference PDFs under ``<root>/<chapter_id>/``
- JsonUnitStore: units and accepted questions in a single JSON document
"""
import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Dict, List, Sequence

from exam_generator.exceptions import ConfigurationError, PersistenceError
from exam_generator.models.question_models import AcceptedQuestion
from exam_generator.models.run_models import GenerationUnit, ReferenceMaterial, UnitStatus

logger = logging.getLogger(__name__)

MATERIAL_SUFFIXES = (".pdf",)
URL_LIST_FILE = "urls.txt"


class DirectoryMaterialSource:
    """Reference materials stored as files, one folder per chapter."""

    def __init__(self, root: str):
        self.root = Path(root)

    async def fetch_reference_materials(self, unit: GenerationUnit) -> List[ReferenceMaterial]:
        """
        List the PDFs in the unit's chapter folder, plus any URLs in its ``urls.txt``.

        A missing folder yields no materials; the orchestrator decides what that means.
        """
        chapter_dir = self.root / unit.chapter_id
        if not chapter_dir.is_dir():
            logger.warning("No materials folder for chapter %s at %s", unit.chapter_id, chapter_dir)
            return []

        materials = [
            ReferenceMaterial(title=path.stem, file_ref=str(path))
            for path in sorted(chapter_dir.iterdir())
            if path.is_file() and path.suffix.lower() in MATERIAL_SUFFIXES
        ]

        url_list = chapter_dir / URL_LIST_FILE
        if url_list.is_file():
            for line in url_list.read_text(encoding="utf-8").splitlines():
                url = line.strip()
                if url and not url.startswith("#"):
                    materials.append(ReferenceMaterial(title=url.rsplit("/", 1)[-1], file_ref=url))

        logger.info("Found %d reference materials for chapter %s", len(materials), unit.chapter_id)
        return materials


class JsonUnitStore:
    """
    Units and their accepted questions kept in one JSON file.

    Layout::

        {"units": [...], "questions": [{"unit_id": ..., "question_order": ..., "question": {...}}]}

    Writes go through a temporary file and a rename so a crash never leaves
    a half-written document. Operations are serialized with an asyncio lock.
    """

    def __init__(self, path: str):
        self.path = Path(path)
        self._lock = asyncio.Lock()
        self._data = None

    def _load(self) -> Dict:
        if self._data is None:
            if self.path.exists():
                with open(self.path, "r", encoding="utf-8") as f:
                    data = json.load(f)
            else:
                data = {}
            data.setdefault("units", [])
            data.setdefault("questions", [])
            self._data = data
        return self._data

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(self._data, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise PersistenceError(f"Could not write {self.path}: {e}") from e

    def _unit_record(self, unit_id: str) -> Dict:
        for record in self._load()["units"]:
            if record.get("unit_id") == unit_id:
                return record
        raise ConfigurationError(
            f"Unknown generation unit: {unit_id}",
            code="UNIT_NOT_FOUND",
            details={"unit_id": unit_id})

    async def add_units(self, units: Sequence[GenerationUnit]) -> None:
        """Insert or replace units by id."""
        async with self._lock:
            data = self._load()
            by_id = {record["unit_id"]: i for i, record in enumerate(data["units"])}
            for unit in units:
                record = unit.model_dump(mode="json")
                if unit.unit_id in by_id:
                    data["units"][by_id[unit.unit_id]] = record
                else:
                    data["units"].append(record)
            self._save()

    async def list_units(self) -> List[GenerationUnit]:
        async with self._lock:
            return [GenerationUnit.model_validate(r) for r in self._load()["units"]]

    async def get_unit(self, unit_id: str) -> GenerationUnit:
        async with self._lock:
            return GenerationUnit.model_validate(self._unit_record(unit_id))

    async def update_unit_status(self, unit_id: str, status: UnitStatus) -> None:
        async with self._lock:
            self._unit_record(unit_id)["status"] = status.value
            self._save()

    async def count_persisted(self, unit_id: str) -> int:
        async with self._lock:
            return sum(1 for q in self._load()["questions"] if q["unit_id"] == unit_id)

    async def persist_questions(self, unit_id: str, questions: Sequence[AcceptedQuestion]) -> None:
        """
        Append accepted questions for a unit.

        Raises:
            PersistenceError: If an ordinal is already taken or the file cannot be written.
        """
        async with self._lock:
            data = self._load()
            taken = {q["question_order"] for q in data["questions"] if q["unit_id"] == unit_id}
            for question in questions:
                if question.unit_id != unit_id or question.question_order in taken:
                    raise PersistenceError(
                        f"Question order {question.question_order} already used in unit {unit_id}",
                        details={"unit_id": unit_id, "question_order": question.question_order})
                taken.add(question.question_order)

            data["questions"].extend(
                {
                    "unit_id": q.unit_id,
                    "question_order": q.question_order,
                    "question": q.question.model_dump(mode="json", by_alias=True),
                }
                for q in questions
            )
            self._save()
            logger.info("Saved %d questions for unit %s to %s", len(questions), unit_id, self.path)

    async def list_questions(self, unit_id: str) -> List[AcceptedQuestion]:
        async with self._lock:
            records = [q for q in self._load()["questions"] if q["unit_id"] == unit_id]
        records.sort(key=lambda q: q["question_order"])
        return [AcceptedQuestion.model_validate(r) for r in records]
