"""Generation context models produced by the query planner.

The planner first derives who the press review is written for and from which
angles the topic should be covered, then turns those angles into search
queries. Both outputs are persisted on the generation record:

    GenerationContext -> generation_context (consumed by the synthesizer)
    QueryPlan.queries -> generated_queries (consumed by the researcher)
"""

from pydantic import BaseModel, Field, field_validator

MIN_NEWS_ANGLES = 3
MAX_NEWS_ANGLES = 5
MIN_KEYWORDS = 3
MAX_KEYWORDS = 5
MIN_QUERIES = 3
MAX_QUERIES = 10
MAX_QUERY_WORDS = 7


class NewsAngle(BaseModel):
    """A single angle from which the topic is covered.

    Example:
        >>> NewsAngle(
        ...     name="Regulation",
        ...     description="New laws, directives and enforcement actions",
        ...     keywords=["act", "directive", "fine"],
        ... )
    """

    name: str = Field(description="Short name of the news angle, e.g. 'Legal Regulations'")
    description: str = Field(description="What kind of news this angle tracks")
    keywords: list[str] = Field(
        min_length=MIN_KEYWORDS,
        max_length=MAX_KEYWORDS,
        description="3-5 trigger keywords that signal news for this angle",
    )


class GenerationContext(BaseModel):
    """Editorial framing for one press review generation.

    Attributes:
        audience: Who reads the press review
        persona: Who the writer impersonates
        goal: What the press review should achieve for the audience
        news_angles: 3-5 angles the research should cover
    """

    audience: str = Field(description="Professional audience the press review is written for")
    persona: str = Field(description="Role the writer impersonates to serve that audience")
    goal: str = Field(description="Goal the persona pursues for the audience")
    news_angles: list[NewsAngle] = Field(
        min_length=MIN_NEWS_ANGLES,
        max_length=MAX_NEWS_ANGLES,
        description="3-5 news angles to investigate",
    )


class QueryPlan(BaseModel):
    """Search queries generated from the news angles."""

    queries: list[str] = Field(
        min_length=MIN_QUERIES,
        max_length=MAX_QUERIES,
        description="3-10 short web search queries (max 7 words each), spread across the news angles",
    )

    @field_validator("queries")
    @classmethod
    def _check_queries(cls, value: list[str]) -> list[str]:
        cleaned: list[str] = []
        seen: set[str] = set()
        for query in value:
            query = " ".join(query.split())
            if not query:
                continue
            if len(query.split()) > MAX_QUERY_WORDS:
                raise ValueError(f"query exceeds {MAX_QUERY_WORDS} words: '{query}'")
            key = query.lower()
            if key in seen:
                continue
            seen.add(key)
            cleaned.append(query)
        if len(cleaned) < MIN_QUERIES:
            raise ValueError(f"at least {MIN_QUERIES} distinct queries are required")
        return cleaned
