"""
Custom exceptions for the curriculum generation service.

This module defines the error taxonomy of the generation pipeline so that
each stage can raise a specific error and the orchestrator can decide
whether to degrade to a fallback or halt with a structured error.
"""
import logging
from typing import List, Optional
from fastapi import Request, HTTPException
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


# ============================================================================
# Custom Exception Classes
# ============================================================================

class AppError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(AppError):
    """Exception raised when configuration is invalid or missing."""
    pass


class ProviderError(AppError):
    """Base class for failures reported by a language-model backend."""
    pass


class ProviderTransient(ProviderError):
    """Transient overload (service unavailable, overloaded, timeout)."""
    def __init__(self, message: str, provider: str = "", details: Optional[dict] = None):
        super().__init__(message, details)
        self.provider = provider


class ProviderExhausted(ProviderError):
    """Every provider configured for a capability failed."""
    def __init__(self, capability: str, task: str, failures: Optional[List[str]] = None):
        self.capability = capability
        self.task = task
        self.failures = failures or []
        super().__init__(
            f"All providers failed for {capability} ({task})",
            details={"capability": capability, "task": task, "failures": self.failures},
        )


class SchemaError(AppError):
    """Provider output could not be validated against the expected schema."""
    pass


class ExtractionParseError(SchemaError):
    """Model output was not valid per schema after the repair attempt."""
    def __init__(self, message: str, code: str = "malformed_json", details: Optional[dict] = None):
        super().__init__(message, details)
        self.code = code


class NoValidSource(AppError):
    """Discovery produced nothing usable for extraction."""
    pass


class InputClassificationError(NoValidSource):
    """Raw user input could be classified neither as a URL nor as a job description."""
    pass


class PersistenceConflict(AppError):
    """Id collision or backward generation_status transition."""
    pass


class PersistenceError(AppError):
    """The curriculum store failed: lost connection, missing schema, I/O error."""
    pass


class CurriculumNotFound(AppError):
    """No curriculum is stored under the requested id."""
    pass


class PipelineTimeoutError(AppError):
    """Exception raised when a pass exceeds its wall-clock budget."""
    pass


class PipelineError(AppError):
    """
    Structured halt surfaced to callers.

    Carries the stage that failed, a machine-readable code, whether a retry
    makes sense, and a snapshot of the last good pipeline state.
    """
    def __init__(
        self,
        message: str,
        stage: str,
        code: str,
        retryable: bool = False,
        partial_state: Optional[dict] = None,
    ):
        super().__init__(message, details={"stage": stage, "code": code})
        self.stage = stage
        self.code = code
        self.retryable = retryable
        self.partial_state = partial_state or {}

    def to_dict(self) -> dict:
        return {
            "detail": self.message,
            "stage": self.stage,
            "code": self.code,
            "retryable": self.retryable,
            "partial_state": self.partial_state,
        }


def error_code(exc: BaseException) -> str:
    """Stable error code used in persisted error lists and API responses."""
    if isinstance(exc, ExtractionParseError):
        return "EXTRACTION_PARSE_ERROR"
    if isinstance(exc, ProviderExhausted):
        return "PROVIDER_EXHAUSTED"
    if isinstance(exc, ProviderTransient):
        return "PROVIDER_TRANSIENT"
    if isinstance(exc, NoValidSource):
        return "NO_VALID_SOURCE"
    if isinstance(exc, PersistenceConflict):
        return "PERSISTENCE_CONFLICT"
    if isinstance(exc, PersistenceError):
        return "PERSISTENCE_ERROR"
    if isinstance(exc, PipelineTimeoutError):
        return "PIPELINE_TIMEOUT"
    if isinstance(exc, SchemaError):
        return "SCHEMA_ERROR"
    return "INTERNAL_ERROR"


# ============================================================================
# FastAPI Exception Handlers
# ============================================================================

async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Global exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal Server Error", "error": str(exc)},
    )

async def http_exception_handler(request: Request, exc: HTTPException):
    logger.warning(f"HTTP exception: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
    )

async def pipeline_exception_handler(request: Request, exc: PipelineError):
    logger.warning(f"Pipeline halted at {exc.stage} ({exc.code}): {exc.message}")
    return JSONResponse(
        status_code=503 if exc.retryable else 422,
        content=exc.to_dict(),
    )

async def persistence_conflict_handler(request: Request, exc: PersistenceConflict):
    logger.warning(f"Persistence conflict: {exc.message}")
    return JSONResponse(
        status_code=409,
        content={"detail": exc.message, **exc.details},
    )

async def persistence_error_handler(request: Request, exc: PersistenceError):
    logger.error(f"Persistence error: {exc.message}")
    return JSONResponse(
        status_code=503,
        content={"detail": exc.message, "code": error_code(exc), "retryable": True},
    )

async def not_found_handler(request: Request, exc: CurriculumNotFound):
    return JSONResponse(
        status_code=404,
        content={"detail": exc.message},
    )

