"""
Domain-specific exception hierarchy for the batch orchestration engine.

All exceptions inherit from PipelineError so callers can catch broadly
or narrowly as needed.  Each exception carries structured context
(batch ID, item ID, stage) for logging/debugging.

Containment rules:
    - StageError never escapes the runner; it drives whole-pipeline retry.
    - ItemExhaustedError is recorded on the item outcome, never raised
      past the runner.
    - BatchValidationError / SecurityCheckError abort before scheduling.
    - SchedulerFatalError aborts the whole batch.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base exception for all orchestration errors."""

    def __init__(
        self,
        message: str,
        *,
        batch_id: str | None = None,
        item_id: str | None = None,
        stage: str | None = None,
        details: dict | None = None,
    ) -> None:
        self.batch_id = batch_id
        self.item_id = item_id
        self.stage = stage
        self.details = details or {}
        super().__init__(message)


class BatchValidationError(PipelineError):
    """The submitted batch cannot be scheduled (non-retryable)."""

    def __init__(self, message: str, *, code: str = "INVALID_BATCH", **kwargs) -> None:
        self.code = code
        super().__init__(message, **kwargs)


class SecurityCheckError(PipelineError):
    """The request guard rejected the submission."""

    def __init__(self, message: str, *, suspicious: bool = False, **kwargs) -> None:
        self.suspicious = suspicious
        super().__init__(message, **kwargs)


class StageError(PipelineError):
    """A single stage call failed (transport or non-success response)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        response_body: str | None = None,
        **kwargs,
    ) -> None:
        self.status_code = status_code
        self.response_body = response_body
        super().__init__(message, **kwargs)


class ItemExhaustedError(PipelineError):
    """An item failed every attempt in its retry budget."""

    def __init__(self, message: str, *, attempts: int = 0, **kwargs) -> None:
        self.attempts = attempts
        super().__init__(message, **kwargs)


class BatchCancelledError(PipelineError):
    """Raised inside a runner when the batch was cancelled between stages."""
    pass


class SchedulerFatalError(PipelineError):
    """Unexpected failure inside the orchestration loop itself."""
    pass


class InvalidBatchStateError(PipelineError):
    """A status transition was requested that the lifecycle forbids."""
    pass


class BatchNotFoundError(PipelineError):
    """No batch with the given ID is known to the registry."""
    pass


class RegistryError(PipelineError):
    """The batch registry could not record a new batch."""
    pass
