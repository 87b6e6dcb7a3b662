"""Stage handoff, queue worker and supervisor sweep.

Handoff:
    After a stage succeeds, the pipeline asks its Dispatcher to start the
    next stage for the same record.

    InlineDispatcher: awaits the next stage in-process. Simple, and the
        first acknowledgement carries the whole chain's outcome.
    QueueDispatcher: writes a durable row into the stage_tasks table. A
        Worker claims and runs queued tasks, so a crash between stages
        loses nothing.

Supervisor:
    sweep_stalled() finds non-terminal records whose last update is older
    than the stall timeout and re-triggers them at the stage implied by
    their persisted state. Re-entering a stage is allowed by the status
    rule, so a resumed stage simply runs again.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from pipeline import Pipeline, StageResult

logger = logging.getLogger(__name__)


class Dispatcher(Protocol):
    """Starts a stage for a record on behalf of the previous stage."""

    async def dispatch(self, pipeline: "Pipeline", stage: str, generation_id: str) -> "StageResult | None": ...


class InlineDispatcher:
    """Runs the next stage immediately, in the same task."""

    async def dispatch(self, pipeline: "Pipeline", stage: str, generation_id: str) -> "StageResult":
        return await pipeline.invoke(stage, generation_id)


class QueueDispatcher:
    """Queues the next stage in the store's stage_tasks table."""

    def __init__(self, store: Any):
        self.store = store

    async def dispatch(self, pipeline: "Pipeline", stage: str, generation_id: str) -> None:
        task_id = self.store.enqueue_task(stage, generation_id)
        logger.debug("Stage queued | task=%d stage=%s", task_id, stage)
        return None


def make_dispatcher(mode: str, store: Any) -> Dispatcher:
    """Create the dispatcher for DISPATCH_MODE ('inline' or 'queue')."""
    if mode == "queue":
        return QueueDispatcher(store)
    if mode == "inline":
        return InlineDispatcher()
    raise ValueError(f"Unknown dispatch mode: '{mode}'")


class Worker:
    """Claims and runs queued stage tasks.

    Example:
        >>> worker = Worker(pipeline, poll_interval=10)
        >>> processed = await worker.run_once()
    """

    def __init__(self, pipeline: "Pipeline", poll_interval: float = 10.0):
        self.pipeline = pipeline
        self.store = pipeline.store
        self.poll_interval = poll_interval

    async def run_once(self) -> int:
        """Run queued tasks until the queue is empty.

        Tasks queued by the stages themselves are picked up in the same
        call, so one run_once drains a whole chain.

        Returns:
            Number of tasks processed
        """
        processed = 0
        while (task := self.store.claim_task()) is not None:
            logger.info("Task claimed | task=%d stage=%s id=%s attempt=%d",
                        task.id, task.stage, task.generation_id, task.attempts)
            try:
                result = await self.pipeline.invoke(task.stage, task.generation_id)
            except asyncio.CancelledError:
                self.store.complete_task(task.id, error="cancelled")
                raise
            self.store.complete_task(task.id, error=None if result.success else result.error)
            processed += 1
        return processed

    async def run_continuous(self, stall_timeout_minutes: int | None = None) -> None:
        """Poll the queue forever, sweeping stalled records between polls."""
        total = 0
        logger.info("Worker started | interval=%.0fs", self.poll_interval)
        try:
            while True:
                if stall_timeout_minutes:
                    await sweep_stalled(self.pipeline, timedelta(minutes=stall_timeout_minutes))
                total += await self.run_once()
                await asyncio.sleep(self.poll_interval)
        except asyncio.CancelledError:
            logger.info("Worker stopped | tasks=%d", total)
            raise


async def sweep_stalled(
    pipeline: "Pipeline",
    stall_timeout: timedelta,
    now: datetime | None = None,
) -> list[tuple[str, str]]:
    """Re-trigger records stuck in a non-terminal status.

    Args:
        pipeline: Pipeline whose dispatcher starts the resumed stages
        stall_timeout: Minimum age of the last update
        now: Reference time (defaults to current UTC time)

    Returns:
        (generation_id, stage) for every record that was re-triggered
    """
    stalled = pipeline.store.find_stalled(stall_timeout, now=now)
    if not stalled:
        return []

    logger.info("Stalled records found | count=%d", len(stalled))
    resumed: list[tuple[str, str]] = []
    for job in stalled:
        stage = pipeline.resume_stage(job)
        if stage is None:
            continue
        logger.warning("Resuming stalled record | id=%s status=%s stage=%s", job.id, job.status, stage)
        try:
            await pipeline.dispatcher.dispatch(pipeline, stage, job.id)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Resume failed | id=%s error=%s", job.id, e, exc_info=True)
            continue
        resumed.append((job.id, stage))
    return resumed
