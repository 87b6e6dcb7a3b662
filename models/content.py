"""Final press review document models.

The synthesizer returns a PressReviewContent: a headline and intro framing
the whole review, followed by thematic sections. Each section is a new
narrative drawn from several sources, and lists those sources as citations.
"""

from pydantic import BaseModel, Field


class ContentSource(BaseModel):
    """Citation for a source referenced by a section."""

    id: str | None = Field(default=None, description="Optional citation marker, e.g. '1'")
    title: str = Field(description="Title of the source article")
    url: str = Field(description="URL of the source article, copied from the research data")


class PressReviewSection(BaseModel):
    """A thematic section with a synthesized narrative."""

    title: str = Field(description="Section heading")
    text: str = Field(description="Narrative synthesizing facts and opinions across the section's sources")
    sources: list[ContentSource] = Field(
        default_factory=list,
        description="Sources referenced by this section",
    )


class PressReviewContent(BaseModel):
    """The finished press review.

    Example:
        >>> content = PressReviewContent(
        ...     headline="Chipmakers race to meet AI demand",
        ...     intro="This week's coverage centres on...",
        ...     sections=[],
        ... )
    """

    headline: str = Field(description="Main headline of the press review")
    intro: str = Field(description="Introductory paragraph framing all sections")
    sections: list[PressReviewSection] = Field(
        default_factory=list,
        description="Mutually exclusive thematic sections",
    )

    def source_urls(self) -> set[str]:
        """All URLs cited anywhere in the document."""
        return {source.url for section in self.sections for source in section.sources}

    def __str__(self) -> str:
        return f"PressReviewContent('{self.headline[:50]}', sections={len(self.sections)})"
