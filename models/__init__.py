"""Pydantic models for the press review generation pipeline.

This package contains all data models used throughout the pipeline:

GenerationJob:
    Tagged union of generation record variants, one per status.
    Only SuccessJob carries content, only FailedJob carries error.

GenerationStatus:
    Enum of lifecycle statuses with the forward-only transition rule.

GenerationContext / NewsAngle / QueryPlan:
    Output of the query planner (stage 1).

SearchDocument / RelevanceVerdict / SourceExtraction / ResearchArticle:
    Inputs and outputs of the research executor (stage 2).

PressReviewContent / PressReviewSection / ContentSource:
    Final document produced by the content synthesizer (stage 3).

Example:
    >>> from models import GenerationStatus, can_transition
    >>> can_transition(GenerationStatus.PENDING, GenerationStatus.GENERATING_QUERIES)
    True
"""

from models.content import ContentSource, PressReviewContent, PressReviewSection
from models.context import GenerationContext, NewsAngle, QueryPlan
from models.generation import (
    FailedJob,
    GeneratingQueriesJob,
    GenerationJob,
    GenerationStatus,
    IN_PROGRESS_STATUSES,
    PendingJob,
    ResearchingSourcesJob,
    SuccessJob,
    SynthesizingContentJob,
    allowed_predecessors,
    can_transition,
    parse_job,
)
from models.research import (
    RelevanceVerdict,
    ResearchArticle,
    SearchDocument,
    SourceExtraction,
    normalize_url,
)

__all__ = [
    "ContentSource",
    "PressReviewContent",
    "PressReviewSection",
    "GenerationContext",
    "NewsAngle",
    "QueryPlan",
    "FailedJob",
    "GeneratingQueriesJob",
    "GenerationJob",
    "GenerationStatus",
    "IN_PROGRESS_STATUSES",
    "PendingJob",
    "ResearchingSourcesJob",
    "SuccessJob",
    "SynthesizingContentJob",
    "allowed_predecessors",
    "can_transition",
    "parse_job",
    "RelevanceVerdict",
    "ResearchArticle",
    "SearchDocument",
    "SourceExtraction",
    "normalize_url",
]
