"""Research models for the source evaluation and extraction stage.

Model Flow:
    SearchDocument: Raw web document returned by the search provider
    RelevanceVerdict: Output of the relevance evaluation call
    SourceExtraction: Output of the extraction call (relevant sources only)
    ResearchArticle: SearchDocument metadata + SourceExtraction, persisted
        on the generation record as research_results

Field names that cross the stage boundary keep their wire spelling
(isRelevant, keyFacts, publishedDate) through pydantic aliases, so the
persisted JSON is the same regardless of which stage reads it.
"""

from pydantic import BaseModel, ConfigDict, Field


def normalize_url(url: str) -> str:
    """Normalize a URL for deduplication (trim whitespace and trailing slash)."""
    return url.strip().rstrip("/")


class SearchDocument(BaseModel):
    """A web document returned by the search provider.

    Attributes:
        title: Document title (may be empty)
        url: Canonical document URL
        text: Extracted page text
        author: Author name, if known
        published_date: Publication date string as returned by the provider
    """

    model_config = ConfigDict(populate_by_name=True)

    title: str = ""
    url: str
    text: str = ""
    author: str | None = None
    published_date: str | None = Field(default=None, alias="publishedDate")

    def __str__(self) -> str:
        return f"SearchDocument('{self.title[:50]}', {self.url})"


class RelevanceVerdict(BaseModel):
    """Whether a source qualifies for press review coverage."""

    model_config = ConfigDict(populate_by_name=True)

    is_relevant: bool = Field(
        alias="isRelevant",
        description="True only if the source is recent, credible and substantively about the topic",
    )
    reasoning: str = Field(description="Brief explanation of the decision")


class SourceExtraction(BaseModel):
    """Facts and opinions extracted from one relevant source."""

    model_config = ConfigDict(populate_by_name=True)

    summary: str = Field(description="Concise, objective summary of the source text")
    key_facts: list[str] = Field(
        default_factory=list,
        alias="keyFacts",
        description="Verifiable statements from the text (numbers, dates, events)",
    )
    opinions: list[str] = Field(
        default_factory=list,
        description="Views or judgements expressed by the author or quoted people",
    )


class ResearchArticle(BaseModel):
    """A relevant source with its extracted content.

    Invariant: within one generation record, every url is unique and the
    source was judged relevant.
    """

    model_config = ConfigDict(populate_by_name=True)

    title: str
    url: str
    author: str | None = None
    published_date: str | None = Field(default=None, alias="publishedDate")
    summary: str
    key_facts: list[str] = Field(default_factory=list, alias="keyFacts")
    opinions: list[str] = Field(default_factory=list)

    @classmethod
    def from_source(cls, source: SearchDocument, extraction: SourceExtraction) -> "ResearchArticle":
        """Combine search metadata with extracted content."""
        return cls(
            title=source.title or source.url,
            url=source.url,
            author=source.author,
            published_date=source.published_date,
            summary=extraction.summary,
            key_facts=list(extraction.key_facts),
            opinions=list(extraction.opinions),
        )
