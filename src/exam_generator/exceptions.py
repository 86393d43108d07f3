"""
Exception hierarchy for the question generation pipeline.

Every error carries a stable machine-readable ``code`` so unit failures
can be recorded and reported without string matching.
"""
from typing import Any, Dict, Optional


class GenerationError(Exception):
    """Base class for all pipeline errors."""

    code = "GENERATION_FAILED"
    retryable = False

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        if code:
            self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert the error into a serializable dictionary."""
        result = {
            "code": self.code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


# ===========================================
# Configuration errors (fatal, never retried)
# ===========================================

class ConfigurationError(GenerationError):
    """Protocol or settings are missing or inconsistent."""

    code = "CONFIGURATION_ERROR"


class ProtocolNotFound(ConfigurationError):
    """No protocol is registered for the requested exam and subject."""

    code = "PROTOCOL_NOT_FOUND"

    def __init__(self, exam: str, subject: str, available: Optional[list] = None):
        available = available or []
        super().__init__(
            f'No protocol found for exam "{exam}" and subject "{subject}". '
            f"Available protocols: {', '.join(available) or 'none'}",
            details={"exam": exam, "subject": subject, "available": available}
        )


# ===========================================
# Generation boundary errors
# ===========================================

class TransportError(GenerationError):
    """Network, rate-limit or timeout failure talking to the generation service."""

    code = "TRANSPORT_ERROR"
    retryable = True

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        details = {}
        if original_error is not None:
            details["original_error"] = f"{type(original_error).__name__}: {original_error}"
        super().__init__(message, details=details)


class EmptyResponseError(GenerationError):
    """The generation service returned no text."""

    code = "EMPTY_RESPONSE"


class UploadError(GenerationError):
    """A single reference document could not be fetched or uploaded."""

    code = "UPLOAD_FAILED"


class NoUsableMaterialsError(GenerationError):
    """Every reference material for a unit failed to fetch or upload."""

    code = "NO_USABLE_MATERIALS"


# ===========================================
# Output gate errors
# ===========================================

class MalformedOutputError(GenerationError):
    """The raw model output could not be repaired into a question batch."""

    code = "MALFORMED_OUTPUT"

    def __init__(self, message: str, diagnostic=None):
        self.diagnostic = diagnostic
        details = diagnostic.model_dump() if diagnostic is not None else {}
        super().__init__(message, details=details)


class BatchValidationError(GenerationError):
    """The validator rejected the batch as a whole."""

    code = "VALIDATION_FAILED"

    def __init__(self, message: str, result=None):
        self.result = result
        details = {}
        if result is not None:
            details["errors"] = [issue.message for issue in result.errors]
        super().__init__(message, details=details)


# ===========================================
# Persistence and state errors
# ===========================================

class PersistenceError(GenerationError):
    """Writing questions or unit status failed."""

    code = "PERSISTENCE_FAILED"


class InvalidTransitionError(GenerationError):
    """A unit status change that the lifecycle does not allow."""

    code = "INVALID_TRANSITION"
