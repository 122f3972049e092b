"""
PipelineRunner — drives ONE item through the ordered stages.

Responsibilities:
    - Execute the four stages strictly in order, each receiving the
      accumulated output of the earlier stages
    - Abort the attempt on the first stage failure
    - Retry the whole pipeline with exponential backoff (bounded loop)
    - Check the batch cancellation token at every stage boundary
    - Record status, retries, result/error and elapsed time on the item
    - Return an ItemOutcome; item failures never raise
"""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable, Sequence

from chequebatch.core.constants import (
    MAX_ITEM_ATTEMPTS,
    RETRY_BACKOFF_BASE_MS,
    ItemStatus,
)
from chequebatch.core.logging import get_logger
from chequebatch.pipeline.cancellation import CancellationToken
from chequebatch.pipeline.context import Item, ItemOutcome, PipelineResult, StageContext
from chequebatch.pipeline.errors import BatchCancelledError, ItemExhaustedError, StageError
from chequebatch.pipeline.stage import PipelineStage

Sleep = Callable[[float], Awaitable[None]]
Clock = Callable[[], float]


def backoff_delay_ms(retry: int, base_ms: int = RETRY_BACKOFF_BASE_MS) -> int:
    """Delay before retry number `retry` (1-based)."""
    return base_ms * 2 ** retry


class PipelineRunner:
    """
    Runs the stage sequence for a single item, with whole-pipeline retry.

    Usage::

        runner = PipelineRunner(cheque_flow(client))
        outcome = await runner.execute(item, batch_id="batch-1")
    """

    def __init__(
        self,
        stages: Sequence[PipelineStage],
        *,
        max_attempts: int = MAX_ITEM_ATTEMPTS,
        backoff_base_ms: int = RETRY_BACKOFF_BASE_MS,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = time.monotonic,
    ) -> None:
        if not stages:
            raise ValueError("PipelineRunner needs at least one stage")
        self.stages = list(stages)
        self.max_attempts = max_attempts
        self.backoff_base_ms = backoff_base_ms
        self._sleep = sleep
        self._clock = clock
        self.logger = get_logger("pipeline.runner")

    async def execute(
        self,
        item: Item,
        *,
        batch_id: str,
        cancel_token: CancellationToken | None = None,
    ) -> ItemOutcome:
        """Process `item` to COMPLETED or FAILED and return its outcome."""
        started = self._clock()
        log = self.logger.bind(batch_id=batch_id, item_id=item.id, item_name=item.name)

        item.status = ItemStatus.PROCESSING
        item.retries = 0
        item.error = None
        log.info("Item processing started")

        try:
            result, attempts = await self._execute_with_retry(item, batch_id, cancel_token, log)

        except ItemExhaustedError as exc:
            log.error(
                "Item failed after all attempts",
                attempts=exc.attempts,
                error=str(exc),
            )
            return self._finish(item, started, attempts=exc.attempts, error=str(exc))

        except BatchCancelledError as exc:
            log.info("Item abandoned, batch cancelled", error=str(exc))
            return self._finish(
                item, started, attempts=item.retries + 1, error=str(exc), cancelled=True,
            )

        except Exception as exc:
            # Defect in a stage's own code: never retried, still contained here
            log.exception("Unexpected error in pipeline", error=str(exc))
            return self._finish(item, started, attempts=item.retries + 1, error=f"Unexpected: {exc}")

        outcome = self._finish(item, started, attempts=attempts, result=result)
        log.info(
            "Item completed",
            attempts=attempts,
            duration_ms=outcome.processing_time_ms,
            risk_score=result.decision.risk_score,
        )
        return outcome

    async def _execute_with_retry(
        self,
        item: Item,
        batch_id: str,
        cancel_token: CancellationToken | None,
        log,
    ) -> tuple[PipelineResult, int]:
        """
        Bounded retry loop.  Raises ItemExhaustedError once the budget is
        spent; the message is the last stage error.
        """
        last_error: StageError | None = None

        for attempt in range(1, self.max_attempts + 1):
            ctx = StageContext(batch_id=batch_id, item=item, attempt=attempt)
            try:
                await self.run_stages(ctx, cancel_token)
                return ctx.to_result(), attempt

            except StageError as exc:
                last_error = exc
                if attempt < self.max_attempts:
                    item.retries += 1
                    delay_ms = backoff_delay_ms(item.retries, self.backoff_base_ms)
                    log.warning(
                        f"Pipeline attempt {attempt}/{self.max_attempts} failed, retrying in {delay_ms}ms",
                        stage=exc.stage,
                        status_code=exc.status_code,
                        error=str(exc),
                    )
                    await self._sleep(delay_ms / 1000)

        raise ItemExhaustedError(
            str(last_error),
            attempts=self.max_attempts,
            batch_id=batch_id,
            item_id=item.id,
            stage=last_error.stage if last_error else None,
        )

    async def run_stages(
        self,
        ctx: StageContext,
        cancel_token: CancellationToken | None = None,
    ) -> None:
        """One attempt: every stage in order, stopping at the first failure."""
        for stage in self.stages:
            if cancel_token is not None:
                cancel_token.raise_if_cancelled(batch_id=ctx.batch_id, item_id=ctx.item.id)
            await stage.execute(ctx)

    def _finish(
        self,
        item: Item,
        started: float,
        *,
        attempts: int,
        result: PipelineResult | None = None,
        error: str | None = None,
        cancelled: bool = False,
    ) -> ItemOutcome:
        elapsed_ms = int((self._clock() - started) * 1000)

        item.processing_time_ms = elapsed_ms
        if result is not None:
            item.status = ItemStatus.COMPLETED
            item.result = result
        else:
            item.status = ItemStatus.FAILED
            item.error = error

        return ItemOutcome(
            item_id=item.id,
            status=item.status,
            attempts=attempts,
            retries=item.retries,
            processing_time_ms=elapsed_ms,
            result=result,
            error=error,
            cancelled=cancelled,
        )
