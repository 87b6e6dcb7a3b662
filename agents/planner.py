"""Query planner agent (stage 1).

Turns a bare topic into search queries in two structured-generation calls:

    1. Context: audience, persona, goal and 3-5 news angles with keywords
    2. Queries: 3-10 short web search queries spread across the angles

The pipeline persists the context between the two calls, so a failed query
call still leaves the editorial framing on the record for inspection.

Both calls propagate GenerationError; a planner failure fails the stage.
"""

import logging
from datetime import datetime, timezone

from agents.generator import StructuredGenerator
from agents.prompts import context_prompt, query_prompt
from config import Config
from models.context import GenerationContext, QueryPlan

logger = logging.getLogger(__name__)


class QueryPlanner:
    """Derives generation context and search queries for a topic.

    Example:
        >>> planner = QueryPlanner(generator, config)
        >>> context = await planner.build_context("Artificial Intelligence")
        >>> queries = await planner.plan_queries("Artificial Intelligence", context)
    """

    def __init__(self, generator: StructuredGenerator, config: Config):
        self.generator = generator
        self.config = config

    async def build_context(self, topic: str, now: datetime | None = None) -> GenerationContext:
        """Derive audience, persona, goal and news angles for the topic."""
        now = now or datetime.now(timezone.utc)
        context = await self.generator.generate_structured(
            self.config.context_model,
            context_prompt(topic, now),
            GenerationContext,
        )
        logger.info(
            "Context generated | angles=%d names=%s",
            len(context.news_angles),
            ",".join(angle.name for angle in context.news_angles),
        )
        return context

    async def plan_queries(
        self,
        topic: str,
        context: GenerationContext,
        now: datetime | None = None,
    ) -> list[str]:
        """Generate distinct search queries from the news angles.

        Returns:
            3-10 queries, whitespace-normalized and de-duplicated
        """
        now = now or datetime.now(timezone.utc)
        plan = await self.generator.generate_structured(
            self.config.query_model,
            query_prompt(topic, context, now),
            QueryPlan,
        )
        logger.info("Queries generated | count=%d", len(plan.queries))
        for query in plan.queries:
            logger.debug("Query: %s", query)
        return plan.queries
