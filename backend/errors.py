from typing import Any, Optional


class AppError(Exception):
    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"success": False, "error": {"code": self.code, "message": self.message}}


class ValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"


class ForbiddenError(AppError):
    status_code = 403
    code = "FORBIDDEN"


class ConflictError(AppError):
    status_code = 409
    code = "INVALID_STATE"


class ResumeParseError(AppError):
    status_code = 400
    code = "RESUME_PARSE_ERROR"


class AnalysisError(AppError):
    status_code = 502
    code = "ANALYSIS_FAILED"


class ClassificationError(AppError):
    status_code = 502
    code = "CLASSIFICATION_FAILED"


class EvaluationError(AppError):
    status_code = 502
    code = "EVALUATION_FAILED"


# ── LLM layer ─────────────────────────────────────────────

class ProviderError(Exception):
    """A single provider call failed (transport, credentials or empty content)."""

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class AllProvidersFailedError(EvaluationError):
    def __init__(self, failures: dict[str, str]):
        super().__init__(
            "All evaluation providers failed",
            details={"providers": sorted(failures)},
        )
        self.failures = failures
