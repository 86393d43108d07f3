"""
Data models for protocol-driven question generation.
"""

from exam_generator.models.protocol_models import (
    Archetype,
    StructuralForm,
    PercentRange,
    DifficultyProfile,
    CognitiveLoadRules,
    CoOccurrenceRule,
    Prohibitions,
    Protocol,
    ResolvedConfig,
)
from exam_generator.models.question_models import (
    RawQuestion,
    QuestionBatch,
    AcceptedQuestion,
)
from exam_generator.models.validation_models import (
    ValidationIssue,
    ValidationResult,
)
from exam_generator.models.run_models import (
    UnitStatus,
    GenerationUnit,
    ReferenceMaterial,
    FileHandle,
    TokenUsage,
    GenerationResponse,
    ParseDiagnostic,
    UnitOutcome,
    GenerationRun,
    CostBreakdown,
    UsageRecord,
)

__all__ = [
    "Archetype",
    "StructuralForm",
    "PercentRange",
    "DifficultyProfile",
    "CognitiveLoadRules",
    "CoOccurrenceRule",
    "Prohibitions",
    "Protocol",
    "ResolvedConfig",
    "RawQuestion",
    "QuestionBatch",
    "AcceptedQuestion",
    "ValidationIssue",
    "ValidationResult",
    "UnitStatus",
    "GenerationUnit",
    "ReferenceMaterial",
    "FileHandle",
    "TokenUsage",
    "GenerationResponse",
    "ParseDiagnostic",
    "UnitOutcome",
    "GenerationRun",
    "CostBreakdown",
    "UsageRecord",
]
