"""PydanticAI agents for the press review generation pipeline.

This package contains the agents behind the three pipeline stages:

QueryPlanner (stage 1):
    Derives audience, persona, goal and news angles for a topic,
    then generates 3-10 web search queries from the angles.

ResearchExecutor (stage 2):
    Runs the queries, de-duplicates sources by URL, evaluates relevance
    (fail-closed) and extracts facts and opinions from relevant sources.

ContentSynthesizer (stage 3):
    Writes the final press review and drops citations not backed by
    the research results.

All model calls go through a StructuredGenerator (PydanticAIGenerator in
production, an in-process fake in tests).

Example:
    >>> from agents import PydanticAIGenerator, QueryPlanner
    >>> generator = PydanticAIGenerator(timeout=config.llm_timeout_seconds)
    >>> planner = QueryPlanner(generator, config)
"""

from agents.generator import PydanticAIGenerator, StructuredGenerator
from agents.planner import QueryPlanner
from agents.researcher import ResearchExecutor, ResearchStats, dedupe_documents
from agents.synthesizer import ContentSynthesizer, minimal_content, sanitize_content

__all__ = [
    "PydanticAIGenerator",
    "StructuredGenerator",
    "QueryPlanner",
    "ResearchExecutor",
    "ResearchStats",
    "dedupe_documents",
    "ContentSynthesizer",
    "minimal_content",
    "sanitize_content",
]
