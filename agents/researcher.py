"""Research executor agent (stage 2).

Turns search queries into a list of relevant, extracted articles.

Processing Steps:
    A. Search: every query runs against the web search provider inside the
       schedule's publication window. A failed query is logged and skipped.
    B. Dedup: documents are merged across queries by normalized URL, first
       occurrence wins. Documents without URL are dropped.
    C. Evaluate: one relevance call per unique source. A failed call counts
       as "not relevant" (fail-closed).
    D. Extract: one extraction call per relevant source. A failed call drops
       the source.

Item-level failures never raise out of this module. The result list may be
empty, which is a valid outcome handled by the synthesizer.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from agents.generator import StructuredGenerator
from agents.prompts import evaluation_prompt, extraction_prompt
from config import Config
from models.research import (
    RelevanceVerdict,
    ResearchArticle,
    SearchDocument,
    SourceExtraction,
    normalize_url,
)
from tools.search import WebSearchProvider

logger = logging.getLogger(__name__)


@dataclass
class ResearchStats:
    """Counters for one research run."""
    queries: int = 0
    failed_queries: int = 0
    results: int = 0
    unique: int = 0
    relevant: int = 0
    irrelevant: int = 0
    extracted: int = 0
    extraction_failures: int = 0

    def __str__(self) -> str:
        return (
            f"queries={self.queries} failed_queries={self.failed_queries} "
            f"results={self.results} unique={self.unique} relevant={self.relevant} "
            f"irrelevant={self.irrelevant} extracted={self.extracted} "
            f"extraction_failures={self.extraction_failures}"
        )


def dedupe_documents(batches: list[list[SearchDocument]]) -> list[SearchDocument]:
    """Merge search batches into unique documents by normalized URL.

    Order follows first occurrence across batches. The kept document's url
    is replaced by its normalized form.
    """
    seen: set[str] = set()
    unique: list[SearchDocument] = []
    for batch in batches:
        for doc in batch:
            url = normalize_url(doc.url or "")
            if not url or url in seen:
                continue
            seen.add(url)
            unique.append(doc.model_copy(update={"url": url}))
    return unique


class ResearchExecutor:
    """Searches, filters and extracts sources for a press review.

    Example:
        >>> executor = ResearchExecutor(generator, ExaSearch(api_key), config)
        >>> articles, stats = await executor.research(topic, queries, start, end)
    """

    def __init__(
        self,
        generator: StructuredGenerator,
        search: WebSearchProvider,
        config: Config,
    ):
        self.generator = generator
        self.search = search
        self.config = config

    async def _search_all(
        self,
        queries: list[str],
        start: datetime,
        end: datetime,
        stats: ResearchStats,
    ) -> list[list[SearchDocument]]:
        semaphore = asyncio.Semaphore(self.config.search_concurrency)

        async def search_one(query: str) -> list[SearchDocument]:
            async with semaphore:
                return await self.search.search_and_extract(
                    query,
                    self.config.search_results_limit,
                    start,
                    end,
                )

        results = await asyncio.gather(*(search_one(q) for q in queries), return_exceptions=True)

        batches = []
        for query, result in zip(queries, results):
            if isinstance(result, Exception):
                stats.failed_queries += 1
                logger.warning("Search failed | query='%s' error=%s", query[:50], result)
                continue
            logger.debug("Search ok | query='%s' results=%d", query[:50], len(result))
            stats.results += len(result)
            batches.append(result)
        return batches

    async def evaluate(self, topic: str, source: SearchDocument, now: datetime) -> bool:
        """Judge one source. Any failure counts as not relevant."""
        try:
            verdict = await self.generator.generate_structured(
                self.config.evaluation_model,
                evaluation_prompt(topic, source, now, self.config.max_source_chars),
                RelevanceVerdict,
            )
        except Exception as e:
            logger.warning("Evaluation failed, treating as irrelevant | url=%s error=%s", source.url, e)
            return False
        logger.debug("Evaluated | url=%s relevant=%s reason=%s", source.url, verdict.is_relevant, verdict.reasoning[:80])
        return verdict.is_relevant

    async def extract(self, topic: str, source: SearchDocument) -> ResearchArticle | None:
        """Extract one relevant source. Returns None on failure."""
        try:
            extraction = await self.generator.generate_structured(
                self.config.extraction_model,
                extraction_prompt(topic, source, self.config.max_source_chars),
                SourceExtraction,
            )
        except Exception as e:
            logger.warning("Extraction failed, dropping source | url=%s error=%s", source.url, e)
            return None
        return ResearchArticle.from_source(source, extraction)

    async def research(
        self,
        topic: str,
        queries: list[str],
        start: datetime,
        end: datetime,
    ) -> tuple[list[ResearchArticle], ResearchStats]:
        """Run the full search, dedup, evaluate and extract sequence.

        Args:
            topic: Press review topic
            queries: Search queries from the planner
            start: Earliest publication date
            end: Latest publication date

        Returns:
            (research_results, stats). Results follow first-seen order and
            may be empty.
        """
        now = datetime.now(timezone.utc)
        stats = ResearchStats(queries=len(queries))

        batches = await self._search_all(queries, start, end, stats)
        sources = dedupe_documents(batches)
        stats.unique = len(sources)
        logger.info("Search complete | queries=%d unique_sources=%d", len(queries), len(sources))

        semaphore = asyncio.Semaphore(self.config.source_concurrency)

        async def process(source: SearchDocument) -> ResearchArticle | None:
            async with semaphore:
                if not await self.evaluate(topic, source, now):
                    stats.irrelevant += 1
                    return None
                stats.relevant += 1
                article = await self.extract(topic, source)
                if article is None:
                    stats.extraction_failures += 1
                else:
                    stats.extracted += 1
                return article

        # gather preserves input order, so results keep first-seen order
        processed = await asyncio.gather(*(process(s) for s in sources), return_exceptions=True)

        articles: list[ResearchArticle] = []
        for source, result in zip(sources, processed):
            if isinstance(result, Exception):
                logger.error("Source processing error | url=%s error=%s", source.url, result, exc_info=result)
                continue
            if result is not None:
                articles.append(result)

        logger.info("Research complete | %s", stats)
        return articles, stats
