"""Content synthesizer agent (stage 3).

Writes the final press review from the research results in one
structured-generation call, acting as the persona from the generation
context.

Output validation:
    The model may cite URLs that are not in the research results, or leave
    sections without sources. Unknown citations and empty sections are
    removed; if nothing survives, the content is rejected with
    ContentValidationError.

Empty research:
    No sources qualified in the search window. The synthesizer returns a
    minimal document without calling the model.
"""

import logging
from datetime import datetime, timezone

from agents.generator import StructuredGenerator
from agents.prompts import synthesis_prompt
from config import Config
from errors import ContentValidationError
from models.content import ContentSource, PressReviewContent, PressReviewSection
from models.context import GenerationContext
from models.research import ResearchArticle, normalize_url

logger = logging.getLogger(__name__)


def minimal_content(topic: str) -> PressReviewContent:
    """Document for a run where no source qualified."""
    return PressReviewContent(
        headline=f"{topic}: no new coverage",
        intro=(
            f"No qualifying news coverage about {topic} was found in this review period. "
            "The next press review will pick up new developments."
        ),
        sections=[],
    )


def sanitize_content(
    content: PressReviewContent,
    research_results: list[ResearchArticle],
) -> PressReviewContent:
    """Drop citations and sections not backed by the research results.

    Citation URLs are matched after normalization and rewritten to the
    research article's URL. Missing titles fall back to the article title.

    Raises:
        ContentValidationError: If no section has a valid source left
    """
    articles = {normalize_url(article.url): article for article in research_results}

    sections: list[PressReviewSection] = []
    dropped_sources = 0
    for section in content.sections:
        sources: list[ContentSource] = []
        cited: set[str] = set()
        for source in section.sources:
            key = normalize_url(source.url)
            article = articles.get(key)
            if article is None or key in cited:
                dropped_sources += 1
                continue
            cited.add(key)
            sources.append(ContentSource(
                id=source.id,
                title=source.title.strip() or article.title,
                url=article.url,
            ))
        if not sources or not section.text.strip():
            logger.warning("Dropping section without valid sources | title='%s'", section.title[:50])
            continue
        sections.append(section.model_copy(update={"sources": sources}))

    if dropped_sources:
        logger.warning("Dropped citations not in research results | count=%d", dropped_sources)
    if not sections:
        raise ContentValidationError("Synthesized content has no section citing the research results")

    return content.model_copy(update={"sections": sections})


class ContentSynthesizer:
    """Writes the press review document.

    Example:
        >>> synthesizer = ContentSynthesizer(generator, config)
        >>> content = await synthesizer.synthesize(topic, context, research_results)
    """

    def __init__(self, generator: StructuredGenerator, config: Config):
        self.generator = generator
        self.config = config

    async def synthesize(
        self,
        topic: str,
        context: GenerationContext,
        research_results: list[ResearchArticle],
        now: datetime | None = None,
    ) -> PressReviewContent:
        """Produce validated press review content.

        Raises:
            GenerationError: If the model call fails
            ContentValidationError: If no valid section remains
        """
        if not research_results:
            logger.info("No research results, returning minimal content")
            return minimal_content(topic)

        now = now or datetime.now(timezone.utc)
        content = await self.generator.generate_structured(
            self.config.synthesis_model,
            synthesis_prompt(topic, context, research_results, now),
            PressReviewContent,
        )
        content = sanitize_content(content, research_results)
        logger.info(
            "Content synthesized | headline='%s' sections=%d sources=%d",
            content.headline[:60],
            len(content.sections),
            len(content.source_urls()),
        )
        return content
