"""
CancellationToken — cooperative cancellation for one batch.

The token is checked by the runner at stage boundaries and before each
retry backoff, so an in-flight item is abandoned between (never during)
stage calls.
"""

from __future__ import annotations

from chequebatch.pipeline.errors import BatchCancelledError


class CancellationToken:
    """Set once; never reset."""

    def __init__(self) -> None:
        self._cancelled = False
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._cancelled:
            self._cancelled = True
            self.reason = reason

    def raise_if_cancelled(self, *, batch_id: str | None = None, item_id: str | None = None) -> None:
        if self._cancelled:
            raise BatchCancelledError(
                f"Batch cancelled: {self.reason}",
                batch_id=batch_id,
                item_id=item_id,
            )
