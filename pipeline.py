"""Stage orchestration for press review generation.

This module runs the three pipeline stages against generation records and
chains them together:

Stage Chain:
    1. generate-queries: pending -> generating_queries
       Derive generation context, generate search queries
    2. execute-research: -> researching_sources
       Search, dedup, evaluate relevance, extract facts and opinions
    3. synthesize-content: -> synthesizing_content -> success
       Write the press review and store it atomically with status=success

Each stage is an independent unit of work: it reads everything it needs from
the record store, persists its output, then hands off to the next stage
through a Dispatcher (inline or queued, see dispatch.py).

Stage Leases:
    Entering a stage claims a lease on the record (run_token, lease_until)
    that a heartbeat renews while the handler runs. Every write the stage
    makes carries its token, so a second concurrent run of the same stage is
    rejected at entry, and a run that lost its lease cannot overwrite the
    record.

Failure Semantics:
    A stage-level error records status=failed with the error message and
    halts the chain. A record that does not exist, whose status does not
    allow the stage, or whose lease is held by another run is left untouched
    and the invocation is rejected.
"""

import asyncio
import logging
import time
from contextlib import suppress
from dataclasses import asdict, dataclass
from datetime import timedelta
from typing import Any, Awaitable, Callable

from agents.generator import PydanticAIGenerator, StructuredGenerator
from agents.planner import QueryPlanner
from agents.researcher import ResearchExecutor
from agents.synthesizer import ContentSynthesizer
from config import Config
from database import Database, GenerationStore
from dispatch import Dispatcher, make_dispatcher
from errors import InvalidTransitionError, RecordNotFoundError, StageInputError, StageLeaseError
from models.generation import GenerationJob, GenerationStatus
from notifications import notify
from observability.logging import stage_context
from observability.tracing import setup_tracing, trace_operation
from schedule import search_window
from tools.search import ExaSearch, WebSearchProvider

logger = logging.getLogger(__name__)

GENERATE_QUERIES = "generate-queries"
EXECUTE_RESEARCH = "execute-research"
SYNTHESIZE_CONTENT = "synthesize-content"

STAGES = (GENERATE_QUERIES, EXECUTE_RESEARCH, SYNTHESIZE_CONTENT)

NEXT_STAGE: dict[str, str | None] = {
    GENERATE_QUERIES: EXECUTE_RESEARCH,
    EXECUTE_RESEARCH: SYNTHESIZE_CONTENT,
    SYNTHESIZE_CONTENT: None,
}

STAGE_STATUS: dict[str, GenerationStatus] = {
    GENERATE_QUERIES: GenerationStatus.GENERATING_QUERIES,
    EXECUTE_RESEARCH: GenerationStatus.RESEARCHING_SOURCES,
    SYNTHESIZE_CONTENT: GenerationStatus.SYNTHESIZING_CONTENT,
}

# Errors that mean the record is not this invocation's to run or fail
_REJECTIONS = (RecordNotFoundError, InvalidTransitionError, StageLeaseError)


@dataclass
class StageResult:
    """Acknowledgement returned by a stage invocation.

    Attributes:
        stage: Stage name
        generation_id: Target record
        success: Whether the stage completed
        message: Human-readable outcome
        error: Failure message (unsuccessful stages only)
        next_stage: Stage to run next, if any
        handed_off: Whether the next stage was dispatched
        duration: Stage run time in seconds (handoff excluded)
        downstream: Acknowledgement of the next stage when it ran inline
    """

    stage: str
    generation_id: str
    success: bool
    message: str
    error: str | None = None
    next_stage: str | None = None
    handed_off: bool = False
    duration: float = 0.0
    downstream: "StageResult | None" = None

    @property
    def final(self) -> "StageResult":
        """Last acknowledgement in an inline chain."""
        result = self
        while result.downstream is not None:
            result = result.downstream
        return result

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        d = asdict(self)
        d["duration"] = round(d["duration"], 2)
        return d


def resume_stage(job: GenerationJob) -> str | None:
    """Stage that continues a record from its persisted state.

    Returns:
        Stage name, or None for terminal records
    """
    status = job.state
    if status == GenerationStatus.PENDING:
        return GENERATE_QUERIES
    if status == GenerationStatus.GENERATING_QUERIES:
        return EXECUTE_RESEARCH if job.generated_queries else GENERATE_QUERIES
    if status == GenerationStatus.RESEARCHING_SOURCES:
        return SYNTHESIZE_CONTENT if job.research_results is not None else EXECUTE_RESEARCH
    if status == GenerationStatus.SYNTHESIZING_CONTENT:
        return SYNTHESIZE_CONTENT
    return None


class Pipeline:
    """Runs pipeline stages against generation records.

    Components:
        - GenerationStore: record persistence (SQLite Database in production)
        - StructuredGenerator: model calls (PydanticAIGenerator in production)
        - WebSearchProvider: search-and-extract (ExaSearch in production)
        - Dispatcher: handoff to the next stage (inline or queued)

    Example:
        >>> pipeline = Pipeline.from_config(config)
        >>> job = pipeline.store.create("Artificial Intelligence", "0 8 * * *")
        >>> result = await pipeline.invoke("generate-queries", job.id)
        >>> result.final.success
        True
    """

    def __init__(
        self,
        config: Config,
        store: GenerationStore,
        generator: StructuredGenerator,
        search: WebSearchProvider,
        dispatcher: Dispatcher | None = None,
        notifications: bool = True,
    ):
        self.config = config
        self.store = store
        self.dispatcher = dispatcher or make_dispatcher("inline", store)
        self.notifications = notifications

        self.planner = QueryPlanner(generator, config)
        self.researcher = ResearchExecutor(generator, search, config)
        self.synthesizer = ContentSynthesizer(generator, config)

        self._handlers: dict[str, Callable[[str, str], Awaitable[str]]] = {
            GENERATE_QUERIES: self.generate_queries,
            EXECUTE_RESEARCH: self.execute_research,
            SYNTHESIZE_CONTENT: self.synthesize_content,
        }

    @classmethod
    def from_config(cls, config: Config) -> "Pipeline":
        """Build a pipeline with production components."""
        if config.enable_logfire:
            setup_tracing(enabled=True, token=config.logfire_token)

        db = Database(config.db_path)
        generator = PydanticAIGenerator(
            timeout=config.llm_timeout_seconds,
            output_retries=config.llm_output_retries,
        )
        search = ExaSearch(
            api_key=config.exa_api_key,
            base_url=config.exa_base_url,
            timeout=config.search_timeout_seconds,
        )
        return cls(
            config,
            db,
            generator,
            search,
            dispatcher=make_dispatcher(config.dispatch_mode, db),
        )

    def _fetch(self, generation_id: str) -> GenerationJob:
        job = self.store.fetch(generation_id)
        if job is None:
            raise RecordNotFoundError(generation_id)
        return job

    # --- Stage handlers ---

    async def generate_queries(self, generation_id: str, run_token: str) -> str:
        """Stage 1: derive generation context and search queries."""
        job = self._fetch(generation_id)
        topic = job.topic.strip()
        if not topic:
            raise StageInputError("Generation record has no topic")

        context = await self.planner.build_context(topic)
        self.store.update_fields(generation_id, run_token, generation_context=context)

        queries = await self.planner.plan_queries(topic, context)
        self.store.update_fields(generation_id, run_token, generated_queries=queries)
        return f"Generated {len(queries)} queries from {len(context.news_angles)} news angles"

    async def execute_research(self, generation_id: str, run_token: str) -> str:
        """Stage 2: search, evaluate and extract sources."""
        job = self._fetch(generation_id)
        if not job.generated_queries:
            raise StageInputError("Generation record has no generated queries")

        start, end = search_window(job.schedule)
        logger.info(
            "Research window | start=%s end=%s queries=%d",
            start.date().isoformat(),
            end.date().isoformat(),
            len(job.generated_queries),
        )
        articles, stats = await self.researcher.research(job.topic, job.generated_queries, start, end)
        self.store.update_fields(generation_id, run_token, research_results=articles)
        return f"Researched {stats.unique} sources, {len(articles)} relevant"

    async def synthesize_content(self, generation_id: str, run_token: str) -> str:
        """Stage 3: write the press review and complete the record."""
        job = self._fetch(generation_id)
        if job.research_results is None:
            raise StageInputError("Generation record has no research results")
        if job.generation_context is None:
            raise StageInputError("Generation record has no generation context")

        content = await self.synthesizer.synthesize(job.topic, job.generation_context, job.research_results)
        self.store.mark_success(generation_id, content, run_token)
        return f"Press review generated with {len(content.sections)} sections"

    # --- Orchestration ---

    async def _fail(self, generation_id: str, error: str, run_token: str | None) -> None:
        try:
            self.store.update_status(generation_id, GenerationStatus.FAILED, error=error, run_token=run_token)
        except _REJECTIONS as e:
            logger.warning("Could not record failure | error=%s", e)
            return
        await self._notify(generation_id)

    async def _notify(self, generation_id: str) -> None:
        if not self.notifications:
            return
        try:
            job = self.store.fetch(generation_id)
            if job is not None and job.is_terminal:
                await notify(job, self.config)
        except Exception as e:
            # Notification problems never affect the record
            logger.error("Notification failed | error=%s", e, exc_info=True)

    async def _hold_lease(
        self,
        generation_id: str,
        run_token: str,
        lease: timedelta,
        work: Awaitable[str],
    ) -> str:
        """Await a stage handler while a heartbeat renews its lease."""

        async def heartbeat() -> None:
            while True:
                await asyncio.sleep(lease.total_seconds() / 3)
                if not self.store.renew_lease(generation_id, run_token, lease):
                    logger.warning("Stage lease lost")
                    return

        renewer = asyncio.create_task(heartbeat())
        try:
            return await work
        finally:
            renewer.cancel()
            with suppress(asyncio.CancelledError):
                await renewer

    async def _run_stage(self, stage: str, generation_id: str) -> StageResult:
        handler = self._handlers[stage]
        lease = timedelta(seconds=self.config.stage_lease_seconds)
        run_token = None
        start = time.time()

        with stage_context(generation_id, stage), trace_operation(
            f"stage.{stage}", {"generation_id": generation_id, "stage": stage}
        ) as attrs:
            logger.info("Stage started")
            try:
                run_token = self.store.claim_stage(generation_id, STAGE_STATUS[stage], lease)
                message = await self._hold_lease(generation_id, run_token, lease, handler(generation_id, run_token))
                self.store.release_stage(generation_id, run_token)
            except asyncio.CancelledError:
                logger.info("Stage cancelled")
                if run_token is not None:
                    self.store.release_stage(generation_id, run_token)
                raise
            except _REJECTIONS as e:
                # Not ours to fail: the record is missing, past this stage or
                # held by another run
                logger.warning("Stage rejected | error=%s", e)
                attrs["success"] = False
                return StageResult(
                    stage=stage,
                    generation_id=generation_id,
                    success=False,
                    message="Stage rejected",
                    error=str(e),
                    duration=time.time() - start,
                )
            except Exception as e:
                error = str(e) or type(e).__name__
                logger.error("Stage failed | type=%s error=%s", type(e).__name__, error, exc_info=True)
                await self._fail(generation_id, error, run_token)
                attrs["success"] = False
                return StageResult(
                    stage=stage,
                    generation_id=generation_id,
                    success=False,
                    message="Stage failed",
                    error=error,
                    duration=time.time() - start,
                )

            duration = time.time() - start
            attrs["success"] = True
            logger.info("Stage done | duration=%.1fs %s", duration, message)

            next_stage = NEXT_STAGE[stage]
            if next_stage is None:
                await self._notify(generation_id)

        return StageResult(
            stage=stage,
            generation_id=generation_id,
            success=True,
            message=message,
            next_stage=next_stage,
            duration=duration,
        )

    async def invoke(self, stage: str, generation_id: str, handoff: bool = True) -> StageResult:
        """Trigger one stage for a record.

        Args:
            stage: Registered stage name
            generation_id: Target record id
            handoff: Dispatch the next stage after success

        Returns:
            StageResult acknowledgement. With inline dispatch, downstream
            holds the acknowledgement of the chained stage.
        """
        if stage not in self._handlers:
            return StageResult(
                stage=stage,
                generation_id=generation_id,
                success=False,
                message="Unknown stage",
                error=f"Unknown stage '{stage}', expected one of: {', '.join(STAGES)}",
            )

        result = await self._run_stage(stage, generation_id)
        if not (handoff and result.success and result.next_stage):
            return result

        with stage_context(generation_id, stage):
            try:
                result.downstream = await self.dispatcher.dispatch(self, result.next_stage, generation_id)
                result.handed_off = True
                logger.info("Handed off | next=%s", result.next_stage)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # Record stays in its intermediate status for the supervisor sweep
                logger.error("Handoff failed | next=%s error=%s", result.next_stage, e, exc_info=True)
        return result

    async def run_chain(self, generation_id: str) -> list[StageResult]:
        """Run every remaining stage for a record in-process.

        Starts at the stage implied by the record's persisted state and stops
        at the first unsuccessful stage.

        Raises:
            RecordNotFoundError: If the record does not exist
        """
        results: list[StageResult] = []
        stage = resume_stage(self._fetch(generation_id))
        while stage is not None:
            result = await self.invoke(stage, generation_id, handoff=False)
            results.append(result)
            stage = result.next_stage if result.success else None
        return results

    def resume_stage(self, job: GenerationJob) -> str | None:
        return resume_stage(job)

    def close(self) -> None:
        """Clean up resources."""
        close = getattr(self.store, "close", None)
        if close is not None:
            close()
