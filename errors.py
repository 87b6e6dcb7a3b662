"""Exception hierarchy for the generation pipeline.

Stage-level errors abort the running stage: the stage runner records the
message on the generation record (status=failed) and halts the chain.
Item-level problems (one query, one source) never raise out of the agents;
they are logged and the item is dropped.
"""


class PipelineError(Exception):
    """Base class for all stage-level pipeline errors."""


class RecordNotFoundError(PipelineError):
    """Raised when a generation record id does not exist."""

    def __init__(self, generation_id: str):
        super().__init__(f"Generation record not found: {generation_id}")
        self.generation_id = generation_id


class InvalidTransitionError(PipelineError):
    """Raised when a status change would move a record backward or out of a terminal status."""

    def __init__(self, generation_id: str, current: str, target: str):
        super().__init__(
            f"Invalid status transition for {generation_id}: {current} -> {target}"
        )
        self.generation_id = generation_id
        self.current = current
        self.target = target


class StageInputError(PipelineError):
    """Raised when a stage's required input is missing from the record."""


class GenerationError(PipelineError):
    """Raised when a structured-generation call fails, times out or returns invalid output."""


class ContentValidationError(PipelineError):
    """Raised when synthesized content has no section backed by the research results."""


class StageLeaseError(PipelineError):
    """Raised when another run of a stage holds the record's lease, or this run lost it."""

    def __init__(self, generation_id: str, lease_until: str | None = None):
        held = f" (held until {lease_until})" if lease_until else ""
        super().__init__(f"Stage lease not held for {generation_id}{held}")
        self.generation_id = generation_id
        self.lease_until = lease_until
