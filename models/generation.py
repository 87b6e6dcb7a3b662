"""Generation record models and the status state machine.

A generation record moves through the pipeline stages in strict order:

    pending -> generating_queries -> researching_sources
            -> synthesizing_content -> success

Any non-terminal status may end early in failed. A stage may re-enter its
own status (a resumed stage), but nothing ever moves backward and nothing
leaves a terminal status.

The record itself is a tagged union discriminated by status. Only
SuccessJob carries content and only FailedJob carries error, so the two can
never be present at the same time.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from models.content import PressReviewContent
from models.context import GenerationContext
from models.research import ResearchArticle


class GenerationStatus(str, Enum):
    """Lifecycle status of a generation record."""

    PENDING = "pending"
    GENERATING_QUERIES = "generating_queries"
    RESEARCHING_SOURCES = "researching_sources"
    SYNTHESIZING_CONTENT = "synthesizing_content"
    SUCCESS = "success"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (GenerationStatus.SUCCESS, GenerationStatus.FAILED)


IN_PROGRESS_STATUSES: tuple[GenerationStatus, ...] = (
    GenerationStatus.PENDING,
    GenerationStatus.GENERATING_QUERIES,
    GenerationStatus.RESEARCHING_SOURCES,
    GenerationStatus.SYNTHESIZING_CONTENT,
)

# Statuses a record may be in when it enters the given status. Re-entering the
# same status resumes a stalled stage; the stage lease in database.py keeps two
# live runs from re-entering at once.
_PREDECESSORS: dict[GenerationStatus, frozenset[GenerationStatus]] = {
    GenerationStatus.PENDING: frozenset(),
    GenerationStatus.GENERATING_QUERIES: frozenset({
        GenerationStatus.PENDING,
        GenerationStatus.GENERATING_QUERIES,
    }),
    GenerationStatus.RESEARCHING_SOURCES: frozenset({
        GenerationStatus.GENERATING_QUERIES,
        GenerationStatus.RESEARCHING_SOURCES,
    }),
    GenerationStatus.SYNTHESIZING_CONTENT: frozenset({
        GenerationStatus.RESEARCHING_SOURCES,
        GenerationStatus.SYNTHESIZING_CONTENT,
    }),
    GenerationStatus.SUCCESS: frozenset({GenerationStatus.SYNTHESIZING_CONTENT}),
    GenerationStatus.FAILED: frozenset(IN_PROGRESS_STATUSES),
}


def allowed_predecessors(target: GenerationStatus) -> frozenset[GenerationStatus]:
    """Return the statuses from which a record may move to target."""
    return _PREDECESSORS[target]


def can_transition(current: GenerationStatus, target: GenerationStatus) -> bool:
    """Check whether current -> target is a legal status change.

    Example:
        >>> can_transition(GenerationStatus.PENDING, GenerationStatus.GENERATING_QUERIES)
        True
        >>> can_transition(GenerationStatus.SUCCESS, GenerationStatus.FAILED)
        False
    """
    return current in _PREDECESSORS[target]


class _JobBase(BaseModel):
    """Fields shared by every generation record variant."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    topic: str
    schedule: str
    generation_context: GenerationContext | None = None
    generated_queries: list[str] | None = None
    research_results: list[ResearchArticle] | None = None
    created_at: datetime
    updated_at: datetime

    @property
    def state(self) -> GenerationStatus:
        return GenerationStatus(self.status)  # type: ignore[attr-defined]

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    def __str__(self) -> str:
        return f"{type(self).__name__}({self.id}, '{self.topic[:40]}')"


class PendingJob(_JobBase):
    status: Literal["pending"] = "pending"


class GeneratingQueriesJob(_JobBase):
    status: Literal["generating_queries"] = "generating_queries"


class ResearchingSourcesJob(_JobBase):
    status: Literal["researching_sources"] = "researching_sources"


class SynthesizingContentJob(_JobBase):
    status: Literal["synthesizing_content"] = "synthesizing_content"


class SuccessJob(_JobBase):
    """Terminal success: the only variant carrying content."""

    status: Literal["success"] = "success"
    content: PressReviewContent
    generated_at: datetime


class FailedJob(_JobBase):
    """Terminal failure: the only variant carrying an error message."""

    status: Literal["failed"] = "failed"
    error: str


GenerationJob = Annotated[
    Union[
        PendingJob,
        GeneratingQueriesJob,
        ResearchingSourcesJob,
        SynthesizingContentJob,
        SuccessJob,
        FailedJob,
    ],
    Field(discriminator="status"),
]

_JOB_ADAPTER: TypeAdapter[GenerationJob] = TypeAdapter(GenerationJob)


def parse_job(data: dict[str, Any]) -> GenerationJob:
    """Validate a raw record (e.g. a database row) into its status variant.

    Raises:
        pydantic.ValidationError: If the row does not match its status
            variant, e.g. a success row without content
    """
    return _JOB_ADAPTER.validate_python(data)
