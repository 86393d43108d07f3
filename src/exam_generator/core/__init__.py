"""
Core functionality for protocol-driven question generation.
"""

from exam_generator.core.gemini_client import GeminiGenerationClient
from exam_generator.core.ledger import UsageLedger, calculate_cost
from exam_generator.core.normalizer import normalize_response
from exam_generator.core.orchestrator import GenerationOrchestrator
from exam_generator.core.prompt_builder import build_prompt
from exam_generator.core.quota import allocate_quotas
from exam_generator.core.validator import ProtocolValidator, validate_questions

__all__ = [
    "GeminiGenerationClient",
    "UsageLedger",
    "calculate_cost",
    "normalize_response",
    "GenerationOrchestrator",
    "build_prompt",
    "allocate_quotas",
    "ProtocolValidator",
    "validate_questions",
]
