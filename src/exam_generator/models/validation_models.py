"""
Pydantic models for protocol validation results.
"""
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class ValidationIssue(BaseModel):
    """Represents one hard error or soft warning found by the validator."""
    code: str = Field(
        description="Stable machine-readable reason code, e.g. PROHIBITED_OPTION")
    message: str = Field(
        description="Human-readable description of the issue")
    severity: Literal["error", "warning"] = Field(
        description="'error' blocks persistence, 'warning' never does")
    question_index: Optional[int] = Field(
        default=None,
        description="Zero-based index of the offending question; None for batch-level issues")
    indices: List[int] = Field(
        default_factory=list,
        description="All question indices involved (e.g. an offending run)")

    @property
    def is_batch_level(self) -> bool:
        return self.question_index is None


class ValidationResult(BaseModel):
    """Outcome of validating one batch against a protocol."""
    valid: bool = Field(
        description="True when there are no hard errors")
    errors: List[ValidationIssue] = Field(
        default_factory=list,
        description="Blocking issues, in detection order")
    warnings: List[ValidationIssue] = Field(
        default_factory=list,
        description="Non-blocking issues, in detection order")

    def error_codes(self) -> List[str]:
        return [e.code for e in self.errors]

    def warning_codes(self) -> List[str]:
        return [w.code for w in self.warnings]

    def rejected_indices(self) -> set:
        """Question indices named by at least one hard error."""
        rejected = set()
        for error in self.errors:
            if error.question_index is not None:
                rejected.add(error.question_index)
        return rejected

    def has_batch_level_errors(self) -> bool:
        return any(e.is_batch_level for e in self.errors)
