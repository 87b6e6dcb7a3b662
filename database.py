"""Generation record store for the press review pipeline.

This module provides SQLite-based storage for generation records and the
durable stage task queue used by queued handoff.

Database Schema:
    generations table:
        - id (TEXT, PK): Generation record id (uuid4 hex)
        - topic (TEXT): Subscription topic
        - schedule (TEXT): Cron-like recurrence string
        - status (TEXT): GenerationStatus value
        - generation_context (TEXT): JSON, written by the query planner
        - generated_queries (TEXT): JSON list, written by the query planner
        - research_results (TEXT): JSON list, written by the research executor
        - content (TEXT): JSON document, present only when status=success
        - error (TEXT): Failure message, present only when status=failed
        - generated_at (TEXT): ISO timestamp of successful completion
        - run_token (TEXT): Token of the stage run holding the lease
        - lease_until (TEXT): ISO timestamp the lease expires at
        - created_at / updated_at (TEXT): ISO timestamps (UTC)

    stage_tasks table:
        - id (INTEGER, PK): Task id
        - stage (TEXT): Stage name, e.g. "execute-research"
        - generation_id (TEXT): Target record
        - status (TEXT): queued, running, done or failed
        - attempts (INTEGER): Number of claims
        - error (TEXT): Last failure message

Features:
    - WAL mode for concurrent read/write access
    - Status guard enforced in SQL (forward-only transitions)
    - Stage leases so only one run of a stage writes a record at a time
    - Automatic additive schema migration for new columns
    - Context manager support for auto-cleanup
"""

import json
import logging
import sqlite3
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Protocol

from pydantic import BaseModel

from errors import InvalidTransitionError, RecordNotFoundError, StageLeaseError
from models.content import PressReviewContent
from models.generation import (
    GenerationJob,
    GenerationStatus,
    IN_PROGRESS_STATUSES,
    allowed_predecessors,
    parse_job,
)

logger = logging.getLogger(__name__)

# Fields a stage may write with update_fields. Status, content and error only
# change through update_status / mark_success so the guard always applies.
WRITABLE_FIELDS = frozenset({"generation_context", "generated_queries", "research_results"})

_JSON_COLUMNS = ("generation_context", "generated_queries", "research_results", "content")


class GenerationStore(Protocol):
    """Record store operations the pipeline stages depend on."""

    def fetch(self, generation_id: str) -> GenerationJob | None: ...

    def claim_stage(
        self,
        generation_id: str,
        status: GenerationStatus,
        lease: timedelta,
        now: datetime | None = None,
    ) -> str: ...

    def renew_lease(
        self,
        generation_id: str,
        run_token: str,
        lease: timedelta,
        now: datetime | None = None,
    ) -> bool: ...

    def release_stage(self, generation_id: str, run_token: str) -> None: ...

    def update_status(
        self,
        generation_id: str,
        status: GenerationStatus,
        error: str | None = None,
        run_token: str | None = None,
    ) -> None: ...

    def update_fields(self, generation_id: str, run_token: str | None = None, **fields: Any) -> None: ...

    def mark_success(
        self,
        generation_id: str,
        content: PressReviewContent,
        run_token: str | None = None,
    ) -> None: ...


@dataclass
class StageTask:
    """A queued stage invocation."""
    id: int
    stage: str
    generation_id: str
    attempts: int


def _timestamp(dt: datetime | None = None) -> str:
    """ISO timestamp with fixed precision so stored values sort as text."""
    return (dt or datetime.now(timezone.utc)).astimezone(timezone.utc).isoformat(timespec="microseconds")


def _to_json(value: Any) -> str | None:
    """Serialize a model, list of models or plain JSON value."""
    if value is None:
        return None
    if isinstance(value, BaseModel):
        data = value.model_dump(mode="json", by_alias=True)
    elif isinstance(value, list):
        data = [
            item.model_dump(mode="json", by_alias=True) if isinstance(item, BaseModel) else item
            for item in value
        ]
    else:
        data = value
    return json.dumps(data, ensure_ascii=False)


class Database:
    """SQLite store for generation records and queued stage tasks.

    Every write commits immediately, so a read after a write on the same
    connection always observes it.

    Example:
        >>> with Database("press_reviews.db") as db:
        ...     job = db.create("Artificial Intelligence", "0 8 * * *")
        ...     db.update_status(job.id, GenerationStatus.GENERATING_QUERIES)
        ...     db.fetch(job.id).status
        'generating_queries'
    """

    SCHEMA = """
    -- One row per press review generation
    CREATE TABLE IF NOT EXISTS generations (
        id TEXT PRIMARY KEY,
        topic TEXT NOT NULL,
        schedule TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'pending',
        generation_context TEXT,          -- JSON (stage 1)
        generated_queries TEXT,           -- JSON list (stage 1)
        research_results TEXT,            -- JSON list (stage 2)
        content TEXT,                     -- JSON (stage 3, success only)
        error TEXT,                       -- failed only
        generated_at TEXT,
        run_token TEXT,                   -- stage lease holder
        lease_until TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );

    -- Index for the supervisor sweep (non-terminal, oldest first)
    CREATE INDEX IF NOT EXISTS idx_status_updated ON generations(status, updated_at);

    -- Index for recent listings
    CREATE INDEX IF NOT EXISTS idx_created ON generations(created_at);

    -- Durable handoff queue
    CREATE TABLE IF NOT EXISTS stage_tasks (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        stage TEXT NOT NULL,
        generation_id TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'queued',
        attempts INTEGER NOT NULL DEFAULT 0,
        error TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_task_status ON stage_tasks(status, id);
    """

    # Columns added after the first schema, applied with ALTER TABLE
    MIGRATIONS: dict[str, str] = {
        "generation_context": "TEXT",
        "generated_at": "TEXT",
        "run_token": "TEXT",
        "lease_until": "TEXT",
    }

    path: Path
    conn: sqlite3.Connection

    def __init__(self, path: Path | str):
        """Initialize database connection.

        Creates the database file if it doesn't exist and sets up
        the schema. Uses WAL mode for better concurrent access.

        Args:
            path: Path to SQLite database file
        """
        self.path = Path(path)
        self.conn = sqlite3.connect(str(self.path))
        self.conn.row_factory = sqlite3.Row

        self.conn.execute("PRAGMA journal_mode=WAL")
        self._init_schema()
        logger.debug("Database initialized | path=%s", self.path)

    def _init_schema(self) -> None:
        self.conn.executescript(self.SCHEMA)
        self.conn.commit()
        self._migrate()

    def _migrate(self) -> None:
        """Add columns missing from databases created by older versions."""
        cursor = self.conn.execute("PRAGMA table_info(generations)")
        columns = {row["name"] for row in cursor.fetchall()}

        for column, column_type in self.MIGRATIONS.items():
            if column not in columns:
                self.conn.execute(f"ALTER TABLE generations ADD COLUMN {column} {column_type}")
                self.conn.commit()
                logger.info("Database migrated | added column=%s", column)

    # --- Generation records ---

    def create(self, topic: str, schedule: str) -> GenerationJob:
        """Create a pending generation record.

        Returns:
            The new record (PendingJob)
        """
        generation_id = uuid.uuid4().hex
        now = _timestamp()
        self.conn.execute(
            """
            INSERT INTO generations (id, topic, schedule, status, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (generation_id, topic, schedule, GenerationStatus.PENDING.value, now, now),
        )
        self.conn.commit()
        logger.info("Generation created | id=%s topic='%s' schedule='%s'", generation_id, topic[:50], schedule)
        return self.fetch(generation_id)

    def _row_to_job(self, row: sqlite3.Row) -> GenerationJob:
        data = dict(row)
        for column in _JSON_COLUMNS:
            if data.get(column) is not None:
                data[column] = json.loads(data[column])
        # Variants without content/error/generated_at must not see them
        for column in ("content", "error", "generated_at"):
            if data.get(column) is None:
                data.pop(column, None)
        data.pop("run_token", None)
        data.pop("lease_until", None)
        return parse_job(data)

    def fetch(self, generation_id: str) -> GenerationJob | None:
        """Get a generation record by id.

        Returns:
            The record's status variant, or None if not found
        """
        cursor = self.conn.execute("SELECT * FROM generations WHERE id = ?", (generation_id,))
        row = cursor.fetchone()
        return self._row_to_job(row) if row else None

    def _lease_state(self, generation_id: str) -> sqlite3.Row | None:
        cursor = self.conn.execute(
            "SELECT status, run_token, lease_until FROM generations WHERE id = ?",
            (generation_id,),
        )
        return cursor.fetchone()

    def _raise_guard_failure(self, generation_id: str, target: GenerationStatus) -> None:
        row = self._lease_state(generation_id)
        if row is None:
            raise RecordNotFoundError(generation_id)
        if row["status"] not in {s.value for s in allowed_predecessors(target)}:
            raise InvalidTransitionError(generation_id, row["status"], target.value)
        raise StageLeaseError(generation_id, row["lease_until"])

    def _guarded_update(
        self,
        generation_id: str,
        target: GenerationStatus,
        assignments: str,
        values: tuple,
        run_token: str | None,
        now: str,
    ) -> None:
        """Apply a status change if the status guard and the lease allow it.

        The lease allows the write when run_token holds it, when no lease is
        set, or when the lease has expired.
        """
        predecessors = sorted(s.value for s in allowed_predecessors(target))
        placeholders = ",".join("?" * len(predecessors))
        cursor = self.conn.execute(
            f"""
            UPDATE generations
            SET {assignments}, updated_at = ?
            WHERE id = ? AND status IN ({placeholders})
              AND (run_token = ? OR lease_until IS NULL OR lease_until < ?)
            """,
            (*values, now, generation_id, *predecessors, run_token, now),
        )
        self.conn.commit()
        if cursor.rowcount == 0:
            self._raise_guard_failure(generation_id, target)

    def claim_stage(
        self,
        generation_id: str,
        status: GenerationStatus,
        lease: timedelta,
        now: datetime | None = None,
    ) -> str:
        """Move a record into a stage's status and take the stage lease.

        A record may re-enter the status it is already in (resuming a stalled
        stage), but only once nobody holds an unexpired lease on it.

        Args:
            generation_id: Record id
            status: The stage's in-progress status
            lease: How long the lease lasts without renewal
            now: Reference time (defaults to current UTC time)

        Returns:
            Run token to pass to later writes of this stage run

        Raises:
            RecordNotFoundError: If the record does not exist
            InvalidTransitionError: If the transition is not allowed
            StageLeaseError: If another run holds the lease
        """
        target = GenerationStatus(status)
        if target not in IN_PROGRESS_STATUSES:
            raise ValueError(f"Stages only claim in-progress statuses, got '{target.value}'")

        current = now or datetime.now(timezone.utc)
        run_token = uuid.uuid4().hex
        self._guarded_update(
            generation_id,
            target,
            "status = ?, error = NULL, content = NULL, run_token = ?, lease_until = ?",
            (target.value, run_token, _timestamp(current + lease)),
            None,
            _timestamp(current),
        )
        logger.debug("Stage claimed | id=%s status=%s lease=%.0fs", generation_id, target.value, lease.total_seconds())
        return run_token

    def renew_lease(
        self,
        generation_id: str,
        run_token: str,
        lease: timedelta,
        now: datetime | None = None,
    ) -> bool:
        """Extend a held lease.

        Returns:
            False if run_token no longer holds the lease
        """
        current = now or datetime.now(timezone.utc)
        cursor = self.conn.execute(
            "UPDATE generations SET lease_until = ? WHERE id = ? AND run_token = ?",
            (_timestamp(current + lease), generation_id, run_token),
        )
        self.conn.commit()
        return cursor.rowcount == 1

    def release_stage(self, generation_id: str, run_token: str) -> None:
        """Drop a held lease. Does nothing if run_token no longer holds it."""
        self.conn.execute(
            "UPDATE generations SET run_token = NULL, lease_until = NULL WHERE id = ? AND run_token = ?",
            (generation_id, run_token),
        )
        self.conn.commit()

    def update_status(
        self,
        generation_id: str,
        status: GenerationStatus,
        error: str | None = None,
        run_token: str | None = None,
    ) -> None:
        """Move a record to a new status.

        The update only applies when the record's current status is an
        allowed predecessor of the target and no other stage run holds an
        unexpired lease. Moving to failed records the error message; any
        other status clears it. The lease is released either way.

        Args:
            generation_id: Record id
            status: Target status (success must go through mark_success)
            error: Failure message, used only when status is failed
            run_token: Token of the stage run making the change, if any

        Raises:
            RecordNotFoundError: If the record does not exist
            InvalidTransitionError: If the transition is not allowed
            StageLeaseError: If another run holds the lease
            ValueError: If status is success
        """
        target = GenerationStatus(status)
        if target == GenerationStatus.SUCCESS:
            raise ValueError("success requires content, use mark_success()")

        error_value = (error or "Unknown error") if target == GenerationStatus.FAILED else None
        self._guarded_update(
            generation_id,
            target,
            "status = ?, error = ?, content = NULL, run_token = NULL, lease_until = NULL",
            (target.value, error_value),
            run_token,
            _timestamp(),
        )
        logger.debug("Status updated | id=%s status=%s", generation_id, target.value)

    def update_fields(self, generation_id: str, run_token: str | None = None, **fields: Any) -> None:
        """Persist stage outputs on a record.

        With a run_token the write only applies while that token holds the
        lease. Without one it only applies while no unexpired lease is held.

        Args:
            generation_id: Record id
            run_token: Token returned by claim_stage
            **fields: Any of generation_context, generated_queries,
                research_results (models or JSON-compatible values)

        Raises:
            RecordNotFoundError: If the record does not exist
            StageLeaseError: If the lease is held by another run or was lost
            ValueError: If a field is not writable
        """
        if not fields:
            return
        unknown = set(fields) - WRITABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields not writable: {', '.join(sorted(unknown))}")

        assignments = ", ".join(f"{name} = ?" for name in fields)
        values = [_to_json(value) for value in fields.values()]
        now = _timestamp()
        if run_token is not None:
            guard, params = "run_token = ?", (run_token,)
        else:
            guard, params = "(lease_until IS NULL OR lease_until < ?)", (now,)
        cursor = self.conn.execute(
            f"UPDATE generations SET {assignments}, updated_at = ? WHERE id = ? AND {guard}",
            (*values, now, generation_id, *params),
        )
        self.conn.commit()
        if cursor.rowcount == 0:
            row = self._lease_state(generation_id)
            if row is None:
                raise RecordNotFoundError(generation_id)
            raise StageLeaseError(generation_id, row["lease_until"])
        logger.debug("Fields updated | id=%s fields=%s", generation_id, ",".join(fields))

    def mark_success(
        self,
        generation_id: str,
        content: PressReviewContent,
        run_token: str | None = None,
    ) -> None:
        """Write content, generated_at and status=success in one statement.

        Raises:
            RecordNotFoundError: If the record does not exist
            InvalidTransitionError: If the record is not synthesizing content
            StageLeaseError: If another run holds the lease
        """
        now = _timestamp()
        self._guarded_update(
            generation_id,
            GenerationStatus.SUCCESS,
            "status = ?, content = ?, error = NULL, generated_at = ?, run_token = NULL, lease_until = NULL",
            (GenerationStatus.SUCCESS.value, _to_json(content), now),
            run_token,
            now,
        )
        logger.debug("Generation completed | id=%s sections=%d", generation_id, len(content.sections))

    def list_recent(self, limit: int = 20, status: GenerationStatus | None = None) -> list[GenerationJob]:
        """Get the most recently created records, newest first."""
        if status is not None:
            cursor = self.conn.execute(
                "SELECT * FROM generations WHERE status = ? ORDER BY created_at DESC, rowid DESC LIMIT ?",
                (GenerationStatus(status).value, limit),
            )
        else:
            cursor = self.conn.execute(
                "SELECT * FROM generations ORDER BY created_at DESC, rowid DESC LIMIT ?",
                (limit,),
            )
        return [self._row_to_job(row) for row in cursor.fetchall()]

    def find_stalled(self, older_than: timedelta, now: datetime | None = None) -> list[GenerationJob]:
        """Get non-terminal records not updated within the given age.

        Records whose stage lease is still live are not stalled, however old
        their last update.

        Args:
            older_than: Minimum age of the last update
            now: Reference time (defaults to current UTC time)

        Returns:
            Stalled records, oldest update first
        """
        reference = now or datetime.now(timezone.utc)
        cutoff = _timestamp(reference - older_than)
        statuses = [s.value for s in IN_PROGRESS_STATUSES]
        placeholders = ",".join("?" * len(statuses))
        cursor = self.conn.execute(
            f"""
            SELECT * FROM generations
            WHERE status IN ({placeholders}) AND updated_at < ?
              AND (lease_until IS NULL OR lease_until < ?)
            ORDER BY updated_at
            """,
            (*statuses, cutoff, _timestamp(reference)),
        )
        return [self._row_to_job(row) for row in cursor.fetchall()]

    def stats(self) -> dict[str, int]:
        """Get database statistics.

        Returns:
            Dictionary with total record count, a count per status and the
            number of queued stage tasks
        """
        counts = {status.value: 0 for status in GenerationStatus}
        cursor = self.conn.execute("SELECT status, COUNT(*) as n FROM generations GROUP BY status")
        for row in cursor.fetchall():
            counts[row["status"]] = row["n"]

        cursor = self.conn.execute("SELECT COUNT(*) as queued FROM stage_tasks WHERE status = 'queued'")
        queued = cursor.fetchone()["queued"] or 0

        return {"total": sum(counts.values()), **counts, "queued_tasks": queued}

    # --- Stage task queue ---

    def enqueue_task(self, stage: str, generation_id: str) -> int:
        """Queue a stage invocation.

        Returns:
            The new task id
        """
        now = _timestamp()
        cursor = self.conn.execute(
            """
            INSERT INTO stage_tasks (stage, generation_id, status, created_at, updated_at)
            VALUES (?, ?, 'queued', ?, ?)
            """,
            (stage, generation_id, now, now),
        )
        self.conn.commit()
        logger.debug("Task queued | task=%d stage=%s id=%s", cursor.lastrowid, stage, generation_id)
        return cursor.lastrowid

    def claim_task(self) -> StageTask | None:
        """Claim the oldest queued task.

        Returns:
            The claimed task, or None if the queue is empty
        """
        while True:
            cursor = self.conn.execute(
                "SELECT id, stage, generation_id, attempts FROM stage_tasks WHERE status = 'queued' ORDER BY id LIMIT 1"
            )
            row = cursor.fetchone()
            if row is None:
                return None

            cursor = self.conn.execute(
                """
                UPDATE stage_tasks SET status = 'running', attempts = attempts + 1, updated_at = ?
                WHERE id = ? AND status = 'queued'
                """,
                (_timestamp(), row["id"]),
            )
            self.conn.commit()
            # Another worker may have claimed it between the select and update
            if cursor.rowcount == 1:
                return StageTask(
                    id=row["id"],
                    stage=row["stage"],
                    generation_id=row["generation_id"],
                    attempts=row["attempts"] + 1,
                )

    def complete_task(self, task_id: int, error: str | None = None) -> None:
        """Mark a claimed task done, or failed with an error message."""
        status = "failed" if error else "done"
        self.conn.execute(
            "UPDATE stage_tasks SET status = ?, error = ?, updated_at = ? WHERE id = ?",
            (status, error, _timestamp(), task_id),
        )
        self.conn.commit()
        logger.debug("Task completed | task=%d status=%s", task_id, status)

    def pending_tasks(self) -> int:
        cursor = self.conn.execute("SELECT COUNT(*) as n FROM stage_tasks WHERE status = 'queued'")
        return cursor.fetchone()["n"] or 0

    def close(self) -> None:
        """Close the database connection."""
        self.conn.close()

    def __enter__(self) -> "Database":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()
