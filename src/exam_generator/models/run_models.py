"""
Pydantic models for generation units, runs and usage accounting.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from exam_generator.models.protocol_models import Difficulty


class UnitStatus(str, Enum):
    """Lifecycle states of a generation unit."""
    PENDING = "pending"
    READY = "ready"
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"


# Allowed status changes. GENERATING -> GENERATING resumes an interrupted run;
# COMPLETED/FAILED -> GENERATING is a regenerate.
ALLOWED_TRANSITIONS = {
    UnitStatus.PENDING: {UnitStatus.READY, UnitStatus.GENERATING},
    UnitStatus.READY: {UnitStatus.GENERATING},
    UnitStatus.GENERATING: {UnitStatus.GENERATING, UnitStatus.COMPLETED, UnitStatus.FAILED},
    UnitStatus.COMPLETED: {UnitStatus.GENERATING},
    UnitStatus.FAILED: {UnitStatus.GENERATING},
}


class GenerationUnit(BaseModel):
    """One independent generation scope: a chapter, optionally within a paper section."""
    unit_id: str = Field(description="Unique identifier of the unit")
    chapter_id: str = Field(description="Chapter whose materials feed this unit")
    chapter_name: str = Field(description="Topic name used in the prompt")
    section_id: Optional[str] = Field(
        default=None, description="Paper section, when the unit belongs to one")
    exam: str = Field(description="Exam / stream name (registry key part)")
    subject: str = Field(description="Subject name (registry key part)")
    difficulty: Difficulty = Field(default="balanced", description="easy | balanced | hard")
    target_count: int = Field(ge=1, description="Number of questions requested")
    status: UnitStatus = UnitStatus.PENDING


class ReferenceMaterial(BaseModel):
    """A curriculum document attached to a unit."""
    title: str
    file_ref: str = Field(description="Local path or http(s) URL of the document")


class FileHandle(BaseModel):
    """Opaque handle returned by the generation service for an uploaded document."""
    name: str
    uri: str
    mime_type: str = "application/pdf"
    display_name: Optional[str] = None


class TokenUsage(BaseModel):
    """Token counts reported for one generation call."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    cached_tokens: int = 0

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
            cached_tokens=self.cached_tokens + other.cached_tokens,
        )


class GenerationResponse(BaseModel):
    """What the generation boundary returns for one call."""
    raw_text: str
    token_usage: TokenUsage = Field(default_factory=TokenUsage)
    model: Optional[str] = None


class ParseDiagnostic(BaseModel):
    """Operator-facing description of why a response could not be parsed."""
    error_message: str = Field(description="Short description of the parse failure")
    stage: str = Field(description="Normalizer stage that failed")
    response_length: int
    first_chars: str
    last_chars: str
    error_position: Optional[int] = Field(
        default=None, description="Character offset of the failure in the cleaned text")
    error_context: Optional[str] = Field(
        default=None, description="Text around the failure offset")
    cleaned_preview: Optional[str] = None


class UnitOutcome(BaseModel):
    """Result of running one unit (the runGeneration contract)."""
    unit_id: str
    success: bool
    questions_generated: int = 0
    warnings: List[str] = Field(default_factory=list)
    status: UnitStatus
    reason: Optional[Dict[str, Any]] = Field(
        default=None, description="Error code, message and details when the unit failed")
    elapsed_ms: int = 0
    token_usage: TokenUsage = Field(default_factory=TokenUsage)
    skipped: bool = Field(default=False, description="Completed earlier and not regenerated")


class GenerationRun(BaseModel):
    """Aggregate of one invocation across many units."""
    total_generated: int = 0
    units_completed: List[str] = Field(default_factory=list)
    units_failed: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(
        default_factory=list, description="Consolidated warnings, capped")
    warnings_total: int = Field(
        default=0, description="Number of warnings before capping")
    unit_timings_ms: Dict[str, int] = Field(default_factory=dict)
    token_usage: TokenUsage = Field(default_factory=TokenUsage)
    outcomes: List[UnitOutcome] = Field(default_factory=list)
    aggregate_warnings: List[str] = Field(
        default_factory=list,
        description="Distribution warnings over all questions accepted in the run")

    @property
    def success(self) -> bool:
        return not self.units_failed


class CostBreakdown(BaseModel):
    """Cost of one generation call."""
    model_config = ConfigDict(frozen=True)

    input_cost: float
    output_cost: float
    cache_cost: float
    total: float
    local_currency_total: float
    currency: str = "USD"
    local_currency: str = "INR"


class UsageRecord(BaseModel):
    """One ledger entry."""
    timestamp: datetime
    operation: str = Field(description="Kind of call, e.g. question_generation")
    unit_id: Optional[str] = None
    run_id: Optional[str] = None
    model: str
    pricing_mode: str
    usage: TokenUsage
    cost: CostBreakdown
    metadata: Dict[str, Any] = Field(default_factory=dict)
