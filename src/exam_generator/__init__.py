"""
Exam Question Generator.

A Python package for generating multiple-choice exam questions from
curriculum PDFs under declarative, per-exam pedagogical protocols, and
validating every batch against its protocol before it is saved.
"""

__version__ = "1.0.0"
__author__ = "Exam Generator Development Team"

from exam_generator.core.orchestrator import GenerationOrchestrator
from exam_generator.core.validator import ProtocolValidator, validate_questions
from exam_generator.protocols.registry import ProtocolRegistry, get_registry

__all__ = [
    "GenerationOrchestrator",
    "ProtocolValidator",
    "validate_questions",
    "ProtocolRegistry",
    "get_registry",
]
