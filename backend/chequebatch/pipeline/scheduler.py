"""
ConcurrencyScheduler — turns a batch's items into an execution plan.

Two modes:
    sequential   one item at a time, source order, paced at
                 ``items_per_second`` (sleep 1000/ips ms between items)
    parallel     chunks of PARALLEL_CHUNK_SIZE run together; the next
                 chunk starts only once every item of the current one has
                 resolved, with INTER_CHUNK_PAUSE_MS between chunks

Progress is recorded and published after every item (sequential) or
chunk (parallel).  Once the cancellation token is set, no further item
is started and outcomes of items still in flight are discarded.
Before each item or chunk starts, and again before its outcomes are
recorded, the stored batch status is re-read so that a cancel issued by
another worker stops this run too.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Sequence

from chequebatch.core.constants import INTER_CHUNK_PAUSE_MS, PARALLEL_CHUNK_SIZE
from chequebatch.core.logging import get_logger
from chequebatch.pipeline.cancellation import CancellationToken
from chequebatch.pipeline.context import Item, ItemOutcome, OrchestrationOptions
from chequebatch.pipeline.errors import SchedulerFatalError
from chequebatch.pipeline.progress import ProgressAggregator
from chequebatch.pipeline.runner import PipelineRunner

Sleep = Callable[[float], Awaitable[None]]


@dataclass
class SchedulerResult:
    """Counts and outcomes of the items that were recorded."""

    success_count: int = 0
    failed_count: int = 0
    outcomes: list[ItemOutcome] = field(default_factory=list)
    cancelled: bool = False

    def add(self, outcomes: Sequence[ItemOutcome]) -> None:
        for outcome in outcomes:
            if outcome.succeeded:
                self.success_count += 1
            else:
                self.failed_count += 1
            self.outcomes.append(outcome)


def chunked(items: Sequence[Item], size: int) -> list[list[Item]]:
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


class ConcurrencyScheduler:
    """
    Usage::

        scheduler = ConcurrencyScheduler(runner, progress)
        result = await scheduler.run(items, OrchestrationOptions(parallel=True))
    """

    def __init__(
        self,
        runner: PipelineRunner,
        progress: ProgressAggregator,
        *,
        sleep: Sleep = asyncio.sleep,
        chunk_size: int = PARALLEL_CHUNK_SIZE,
        chunk_pause_ms: int = INTER_CHUNK_PAUSE_MS,
    ) -> None:
        self.runner = runner
        self.progress = progress
        self.chunk_size = chunk_size
        self.chunk_pause_ms = chunk_pause_ms
        self._sleep = sleep
        self.logger = get_logger("pipeline.scheduler")

    @property
    def batch_id(self) -> str:
        return self.progress.job.id

    async def run(
        self,
        items: Sequence[Item],
        options: OrchestrationOptions,
        cancel_token: CancellationToken | None = None,
    ) -> SchedulerResult:
        token = cancel_token or CancellationToken()
        log = self.logger.bind(
            batch_id=self.batch_id,
            total_items=len(items),
            parallel=options.parallel,
        )

        if options.parallel:
            log.info("Scheduling in parallel chunks", chunk_size=self.chunk_size)
            result = await self._run_parallel(items, token, log)
        else:
            log.info("Scheduling sequentially", items_per_second=options.items_per_second)
            result = await self._run_sequential(items, options, token, log)

        result.cancelled = token.cancelled
        log.info(
            "Scheduling finished",
            success_count=result.success_count,
            failed_count=result.failed_count,
            cancelled=result.cancelled,
        )
        return result

    # ─── Sequential ───────────────────────────────

    async def _run_sequential(
        self,
        items: Sequence[Item],
        options: OrchestrationOptions,
        token: CancellationToken,
        log,
    ) -> SchedulerResult:
        result = SchedulerResult()
        pause_seconds = 1 / options.items_per_second

        for index, item in enumerate(items):
            if await self.progress.check_stored_status(token):
                break

            outcome = await self.runner.execute(item, batch_id=self.batch_id, cancel_token=token)
            if await self.progress.check_stored_status(token):
                break

            await self._commit(result, [outcome])

            if index < len(items) - 1:
                await self._sleep(pause_seconds)

        return result

    # ─── Parallel ─────────────────────────────────

    async def _run_parallel(
        self,
        items: Sequence[Item],
        token: CancellationToken,
        log,
    ) -> SchedulerResult:
        result = SchedulerResult()
        chunks = chunked(items, self.chunk_size)

        for index, chunk in enumerate(chunks):
            if await self.progress.check_stored_status(token):
                break

            log.debug(f"Chunk {index + 1}/{len(chunks)}", items=[item.id for item in chunk])
            resolved = await asyncio.gather(
                *(self.runner.execute(item, batch_id=self.batch_id, cancel_token=token) for item in chunk),
                return_exceptions=True,
            )
            for value in resolved:
                if isinstance(value, BaseException):
                    raise SchedulerFatalError(
                        f"Runner raised instead of returning an outcome: {value!r}",
                        batch_id=self.batch_id,
                    ) from value

            if await self.progress.check_stored_status(token):
                break

            await self._commit(result, resolved)

            if index < len(chunks) - 1:
                await self._sleep(self.chunk_pause_ms / 1000)

        return result

    async def _commit(self, result: SchedulerResult, outcomes: Sequence[ItemOutcome]) -> None:
        self.progress.record(outcomes)
        result.add(outcomes)
        await self.progress.publish()
