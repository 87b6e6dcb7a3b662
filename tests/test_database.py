import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from database import Database
from errors import InvalidTransitionError, RecordNotFoundError, StageLeaseError
from models import FailedJob, GenerationStatus, PendingJob, SuccessJob
from tests.fakes import make_article, make_content, make_context

S = GenerationStatus


def _advance(db, job_id, *statuses):
    for status in statuses:
        db.update_status(job_id, status)


def test_create_and_fetch(db):
    job = db.create("Artificial Intelligence", "0 8 * * *")
    assert isinstance(job, PendingJob)

    fetched = db.fetch(job.id)
    assert fetched.topic == "Artificial Intelligence"
    assert fetched.schedule == "0 8 * * *"
    assert fetched.generated_queries is None
    assert db.fetch("missing") is None


def test_status_moves_forward_only(db):
    job = db.create("AI", "0 8 * * *")
    _advance(db, job.id, S.GENERATING_QUERIES, S.RESEARCHING_SOURCES)

    with pytest.raises(InvalidTransitionError):
        db.update_status(job.id, S.GENERATING_QUERIES)
    with pytest.raises(InvalidTransitionError):
        db.update_status(job.id, S.PENDING)
    assert db.fetch(job.id).status == "researching_sources"

    # Re-entering the same stage is allowed
    db.update_status(job.id, S.RESEARCHING_SOURCES)


def test_terminal_status_is_final(db):
    job = db.create("AI", "0 8 * * *")
    db.update_status(job.id, S.FAILED, error="boom")

    for status in (S.GENERATING_QUERIES, S.FAILED):
        with pytest.raises(InvalidTransitionError):
            db.update_status(job.id, status, error="again")
    assert db.fetch(job.id).error == "boom"


def test_update_status_unknown_record(db):
    with pytest.raises(RecordNotFoundError):
        db.update_status("missing", S.GENERATING_QUERIES)


def test_success_only_through_mark_success(db):
    job = db.create("AI", "0 8 * * *")
    _advance(db, job.id, S.GENERATING_QUERIES, S.RESEARCHING_SOURCES, S.SYNTHESIZING_CONTENT)
    with pytest.raises(ValueError):
        db.update_status(job.id, S.SUCCESS)


def test_mark_success_writes_content_and_status_together(db):
    job = db.create("AI", "0 8 * * *")
    content = make_content("https://a.com/1")

    with pytest.raises(InvalidTransitionError):
        db.mark_success(job.id, content)
    assert db.fetch(job.id).status == "pending"

    _advance(db, job.id, S.GENERATING_QUERIES, S.RESEARCHING_SOURCES, S.SYNTHESIZING_CONTENT)
    db.mark_success(job.id, content)

    done = db.fetch(job.id)
    assert isinstance(done, SuccessJob)
    assert done.content == content
    assert done.generated_at is not None


def test_failed_record_has_no_content(db):
    job = db.create("AI", "0 8 * * *")
    db.update_status(job.id, S.FAILED)

    failed = db.fetch(job.id)
    assert isinstance(failed, FailedJob)
    assert failed.error
    row = db.conn.execute("SELECT content FROM generations WHERE id = ?", (job.id,)).fetchone()
    assert row["content"] is None


def test_update_fields_round_trip(db):
    job = db.create("AI", "0 8 * * *")
    context = make_context()
    articles = [make_article("https://a.com/1"), make_article("https://b.com/2")]

    db.update_fields(job.id, generation_context=context, generated_queries=["q1", "q2", "q3"])
    db.update_fields(job.id, research_results=articles)

    fetched = db.fetch(job.id)
    assert fetched.generation_context == context
    assert fetched.generated_queries == ["q1", "q2", "q3"]
    assert fetched.research_results == articles

    raw = db.conn.execute("SELECT research_results FROM generations WHERE id = ?", (job.id,)).fetchone()
    assert '"keyFacts"' in raw["research_results"]


def test_update_fields_empty_research_results_is_distinct_from_missing(db):
    job = db.create("AI", "0 8 * * *")
    assert db.fetch(job.id).research_results is None
    db.update_fields(job.id, research_results=[])
    assert db.fetch(job.id).research_results == []


def test_update_fields_rejects_guarded_columns(db):
    job = db.create("AI", "0 8 * * *")
    for field in ("status", "content", "error"):
        with pytest.raises(ValueError):
            db.update_fields(job.id, **{field: "x"})
    with pytest.raises(RecordNotFoundError):
        db.update_fields("missing", generated_queries=["q"])


def test_find_stalled(db):
    stalled = db.create("stalled", "0 8 * * *")
    finished = db.create("finished", "0 8 * * *")
    db.update_status(finished.id, S.FAILED, error="x")

    later = datetime.now(timezone.utc) + timedelta(hours=1)
    ids = {job.id for job in db.find_stalled(timedelta(minutes=30), now=later)}
    assert ids == {stalled.id}
    assert db.find_stalled(timedelta(minutes=30)) == []


def test_claim_stage_takes_lease(db):
    job = db.create("AI", "0 8 * * *")
    token = db.claim_stage(job.id, S.GENERATING_QUERIES, timedelta(minutes=5))

    assert db.fetch(job.id).status == "generating_queries"
    with pytest.raises(StageLeaseError):
        db.claim_stage(job.id, S.GENERATING_QUERIES, timedelta(minutes=5))
    with pytest.raises(StageLeaseError):
        db.update_fields(job.id, generated_queries=["q1"])

    db.update_fields(job.id, token, generated_queries=["q1", "q2", "q3"])
    assert db.renew_lease(job.id, token, timedelta(minutes=5))
    db.release_stage(job.id, token)

    assert not db.renew_lease(job.id, token, timedelta(minutes=5))
    db.claim_stage(job.id, S.RESEARCHING_SOURCES, timedelta(minutes=5))


def test_claim_stage_guards_status(db):
    job = db.create("AI", "0 8 * * *")
    with pytest.raises(InvalidTransitionError):
        db.claim_stage(job.id, S.RESEARCHING_SOURCES, timedelta(minutes=5))
    with pytest.raises(RecordNotFoundError):
        db.claim_stage("missing", S.GENERATING_QUERIES, timedelta(minutes=5))
    with pytest.raises(ValueError):
        db.claim_stage(job.id, S.SUCCESS, timedelta(minutes=5))


def test_expired_lease_can_be_reclaimed(db):
    job = db.create("AI", "0 8 * * *")
    stale = db.claim_stage(job.id, S.GENERATING_QUERIES, timedelta(minutes=5))

    later = datetime.now(timezone.utc) + timedelta(hours=1)
    fresh = db.claim_stage(job.id, S.GENERATING_QUERIES, timedelta(minutes=5), now=later)

    assert fresh != stale
    with pytest.raises(StageLeaseError):
        db.update_fields(job.id, stale, generated_queries=["q1"])
    assert not db.renew_lease(job.id, stale, timedelta(minutes=5))
    db.release_stage(job.id, stale)
    with pytest.raises(StageLeaseError):
        db.update_status(job.id, S.FAILED, error="stale run", run_token=stale)
    assert db.fetch(job.id).generated_queries is None

    db.update_fields(job.id, fresh, generated_queries=["q1", "q2", "q3"])
    db.update_status(job.id, S.FAILED, error="boom", run_token=fresh)
    row = db.conn.execute("SELECT run_token, lease_until FROM generations WHERE id = ?", (job.id,)).fetchone()
    assert row["run_token"] is None and row["lease_until"] is None


def test_mark_success_requires_lease_holder(db):
    job = db.create("AI", "0 8 * * *")
    _advance(db, job.id, S.GENERATING_QUERIES, S.RESEARCHING_SOURCES)
    token = db.claim_stage(job.id, S.SYNTHESIZING_CONTENT, timedelta(minutes=5))
    content = make_content("https://a.com/1")

    with pytest.raises(StageLeaseError):
        db.mark_success(job.id, content)
    db.mark_success(job.id, content, token)

    assert isinstance(db.fetch(job.id), SuccessJob)


def test_find_stalled_skips_live_leases(db):
    job = db.create("AI", "0 8 * * *")
    db.claim_stage(job.id, S.GENERATING_QUERIES, timedelta(hours=2))

    later = datetime.now(timezone.utc) + timedelta(hours=1)
    assert db.find_stalled(timedelta(minutes=30), now=later) == []

    much_later = datetime.now(timezone.utc) + timedelta(hours=3)
    assert [j.id for j in db.find_stalled(timedelta(minutes=30), now=much_later)] == [job.id]


def test_list_recent_and_stats(db):
    first = db.create("one", "0 8 * * *")
    db.create("two", "0 8 * * *")
    db.update_status(first.id, S.FAILED, error="x")

    assert [job.topic for job in db.list_recent()] == ["two", "one"]
    assert [job.topic for job in db.list_recent(status=S.FAILED)] == ["one"]

    stats = db.stats()
    assert stats["total"] == 2
    assert stats["pending"] == 1
    assert stats["failed"] == 1
    assert stats["queued_tasks"] == 0


def test_task_queue(db):
    first = db.enqueue_task("execute-research", "g1")
    db.enqueue_task("synthesize-content", "g2")
    assert db.pending_tasks() == 2

    task = db.claim_task()
    assert (task.id, task.stage, task.generation_id, task.attempts) == (first, "execute-research", "g1", 1)
    db.complete_task(task.id)

    task = db.claim_task()
    db.complete_task(task.id, error="boom")
    assert db.claim_task() is None

    rows = db.conn.execute("SELECT status, error FROM stage_tasks ORDER BY id").fetchall()
    assert [(r["status"], r["error"]) for r in rows] == [("done", None), ("failed", "boom")]


def test_migrates_older_schema(tmp_path):
    path = tmp_path / "old.db"
    conn = sqlite3.connect(str(path))
    conn.execute(
        """
        CREATE TABLE generations (
            id TEXT PRIMARY KEY, topic TEXT NOT NULL, schedule TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'pending', generated_queries TEXT,
            research_results TEXT, content TEXT, error TEXT,
            created_at TEXT NOT NULL, updated_at TEXT NOT NULL
        )
        """
    )
    conn.commit()
    conn.close()

    with Database(path) as db:
        columns = {row["name"] for row in db.conn.execute("PRAGMA table_info(generations)")}
        assert {"generation_context", "generated_at", "run_token", "lease_until"} <= columns
        job = db.create("AI", "0 8 * * *")
        assert db.fetch(job.id).generation_context is None
