"""
Protocol registry.

Protocols are loaded once from the JSON documents shipped in
``exam_generator/protocols/data`` and looked up by the exact
(exam, subject) pair. The registry never changes after construction.
"""
import json
import logging
from functools import lru_cache
from importlib import resources
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterable, List, Optional, Tuple

from pydantic import ValidationError

from exam_generator.exceptions import ConfigurationError, ProtocolNotFound
from exam_generator.models.protocol_models import Protocol

logger = logging.getLogger(__name__)


class ProtocolRegistry:
    """Read-only mapping of (exam, subject) to Protocol."""

    def __init__(self, protocols: Iterable[Protocol]):
        by_key: Dict[Tuple[str, str], Protocol] = {}
        by_id: Dict[str, Protocol] = {}
        for protocol in protocols:
            if protocol.key in by_key:
                raise ConfigurationError(
                    f"Duplicate protocol for exam {protocol.exam!r} and subject {protocol.subject!r}")
            if protocol.id in by_id:
                raise ConfigurationError(f"Duplicate protocol id {protocol.id!r}")
            by_key[protocol.key] = protocol
            by_id[protocol.id] = protocol
        self._by_key = MappingProxyType(by_key)
        self._by_id = MappingProxyType(by_id)

    @classmethod
    def from_documents(cls, documents: Iterable[Tuple[str, str]]) -> "ProtocolRegistry":
        """
        Build a registry from (source name, JSON text) pairs.

        Raises:
            ConfigurationError: If a document is not valid JSON or not a valid protocol.
        """
        protocols = []
        for source, text in documents:
            try:
                protocols.append(Protocol.model_validate(json.loads(text)))
            except (json.JSONDecodeError, ValidationError) as e:
                raise ConfigurationError(
                    f"Invalid protocol document {source}: {e}",
                    details={"source": source}
                ) from e
            logger.debug("Loaded protocol %s from %s", protocols[-1].id, source)
        return cls(protocols)

    @classmethod
    def from_directory(cls, directory) -> "ProtocolRegistry":
        path = Path(directory)
        if not path.is_dir():
            raise ConfigurationError(f"Protocol directory '{directory}' not found.")
        files = sorted(path.glob("*.json"))
        return cls.from_documents((f.name, f.read_text(encoding="utf-8")) for f in files)

    @classmethod
    def from_package(cls) -> "ProtocolRegistry":
        """Load the protocols shipped with the package."""
        data = resources.files("exam_generator.protocols").joinpath("data")
        documents = [
            (entry.name, entry.read_text(encoding="utf-8"))
            for entry in sorted(data.iterdir(), key=lambda e: e.name)
            if entry.name.endswith(".json")
        ]
        return cls.from_documents(documents)

    def lookup(self, exam: str, subject: str) -> Protocol:
        """
        Find the protocol for an exam and subject.

        Only exact matches are accepted.

        Raises:
            ProtocolNotFound: If no protocol is registered for the pair.
        """
        protocol = self._by_key.get((exam, subject))
        if protocol is None:
            raise ProtocolNotFound(exam, subject, self.available())
        return protocol

    def get(self, protocol_id: str) -> Protocol:
        protocol = self._by_id.get(protocol_id)
        if protocol is None:
            raise ConfigurationError(
                f'No protocol with id "{protocol_id}"',
                code="PROTOCOL_NOT_FOUND",
                details={"protocol_id": protocol_id, "available": sorted(self._by_id)}
            )
        return protocol

    def has(self, exam: str, subject: str) -> bool:
        return (exam, subject) in self._by_key

    def available(self) -> List[str]:
        """Human-readable "exam / subject" keys, sorted."""
        return sorted(f"{exam} / {subject}" for exam, subject in self._by_key)

    def metadata(self) -> List[Dict[str, Optional[str]]]:
        return [
            {
                "id": p.id,
                "name": p.name,
                "exam": p.exam,
                "subject": p.subject,
                "version": p.version,
                "description": p.description,
            }
            for p in sorted(self._by_id.values(), key=lambda p: p.id)
        ]

    def __len__(self) -> int:
        return len(self._by_key)

    def __contains__(self, key) -> bool:
        return key in self._by_key


@lru_cache(maxsize=1)
def get_registry() -> ProtocolRegistry:
    """Process-wide registry, loaded on first use."""
    registry = ProtocolRegistry.from_package()
    logger.info("Protocol registry loaded with %d protocols", len(registry))
    return registry
