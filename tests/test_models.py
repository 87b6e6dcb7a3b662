from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from models import (
    FailedJob,
    GenerationContext,
    GenerationStatus,
    NewsAngle,
    QueryPlan,
    RelevanceVerdict,
    ResearchArticle,
    SuccessJob,
    can_transition,
    normalize_url,
    parse_job,
)
from tests.fakes import make_content, make_context

S = GenerationStatus


def _row(**fields):
    now = datetime(2025, 3, 10, tzinfo=timezone.utc)
    data = {"id": "g1", "topic": "AI", "schedule": "0 8 * * *", "created_at": now, "updated_at": now}
    data.update(fields)
    return data


class TestStatusTransitions:
    def test_forward_chain(self):
        chain = [S.PENDING, S.GENERATING_QUERIES, S.RESEARCHING_SOURCES, S.SYNTHESIZING_CONTENT, S.SUCCESS]
        for current, target in zip(chain, chain[1:]):
            assert can_transition(current, target)

    def test_stage_reentry_allowed(self):
        assert can_transition(S.RESEARCHING_SOURCES, S.RESEARCHING_SOURCES)

    def test_backward_and_skip_rejected(self):
        assert not can_transition(S.RESEARCHING_SOURCES, S.GENERATING_QUERIES)
        assert not can_transition(S.PENDING, S.SYNTHESIZING_CONTENT)
        assert not can_transition(S.GENERATING_QUERIES, S.SUCCESS)

    def test_terminal_statuses_are_final(self):
        for terminal in (S.SUCCESS, S.FAILED):
            assert terminal.is_terminal
            for target in S:
                assert not can_transition(terminal, target)

    def test_failed_reachable_from_every_in_progress_status(self):
        for status in (S.PENDING, S.GENERATING_QUERIES, S.RESEARCHING_SOURCES, S.SYNTHESIZING_CONTENT):
            assert can_transition(status, S.FAILED)


class TestGenerationJob:
    def test_success_requires_content(self):
        with pytest.raises(ValidationError):
            parse_job(_row(status="success"))

    def test_failed_requires_error(self):
        with pytest.raises(ValidationError):
            parse_job(_row(status="failed"))

    def test_variants_carry_only_their_fields(self):
        job = parse_job(_row(status="success", content=make_content("https://a.com/1").model_dump(),
                             generated_at=datetime.now(timezone.utc)))
        assert isinstance(job, SuccessJob)
        assert not hasattr(job, "error")

        failed = parse_job(_row(status="failed", error="boom"))
        assert isinstance(failed, FailedJob)
        assert not hasattr(failed, "content")
        assert failed.is_terminal

    def test_pending_is_not_terminal(self):
        job = parse_job(_row(status="pending"))
        assert job.state == S.PENDING
        assert not job.is_terminal


class TestQueryPlan:
    def test_normalizes_and_dedupes(self):
        plan = QueryPlan(queries=["AI  regulation", "ai regulation", "AI chips", "AI funding"])
        assert plan.queries == ["AI regulation", "AI chips", "AI funding"]

    def test_rejects_long_queries(self):
        with pytest.raises(ValidationError):
            QueryPlan(queries=["one two three four five six seven eight", "a b", "c d"])

    def test_requires_three_distinct_queries(self):
        with pytest.raises(ValidationError):
            QueryPlan(queries=["AI news", "ai news", "AI NEWS"])


def test_context_angle_bounds():
    context = make_context()
    with pytest.raises(ValidationError):
        GenerationContext(audience="a", persona="p", goal="g", news_angles=context.news_angles[:2])
    with pytest.raises(ValidationError):
        NewsAngle(name="n", description="d", keywords=["one", "two"])


def test_wire_aliases():
    verdict = RelevanceVerdict.model_validate({"isRelevant": True, "reasoning": "on topic"})
    assert verdict.is_relevant

    article = ResearchArticle(title="t", url="https://a.com", summary="s", key_facts=["f"], published_date="2025-03-01")
    dumped = article.model_dump(by_alias=True)
    assert dumped["keyFacts"] == ["f"]
    assert dumped["publishedDate"] == "2025-03-01"


def test_normalize_url():
    assert normalize_url("  https://example.com/a/ ") == "https://example.com/a"
