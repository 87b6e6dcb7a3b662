from datetime import datetime, timedelta, timezone

import pytest

from agents.researcher import ResearchExecutor, dedupe_documents
from errors import GenerationError
from models import RelevanceVerdict, SourceExtraction
from tests.fakes import FakeGenerator, FakeSearch, make_doc, make_extraction, relevant_unless
from tools.search import SearchError

END = datetime(2025, 3, 10, 8, 0, tzinfo=timezone.utc)
START = END - timedelta(days=1)

A, B, C = "https://a.com/1", "https://b.com/2", "https://c.com/3"


def _executor(config, search, evaluation=None, extraction=None):
    generator = FakeGenerator({
        RelevanceVerdict: evaluation or relevant_unless(),
        SourceExtraction: extraction or make_extraction(),
    })
    return ResearchExecutor(generator, search, config), generator


def test_dedupe_documents_keeps_first_occurrence():
    batches = [
        [make_doc(A + "/", title="first"), make_doc(B)],
        [make_doc(A, title="second"), make_doc(""), make_doc(C)],
    ]

    unique = dedupe_documents(batches)

    assert [doc.url for doc in unique] == [A, B, C]
    assert unique[0].title == "first"


@pytest.mark.asyncio
async def test_failed_query_is_skipped(config):
    search = FakeSearch({
        "q1": [make_doc(A), make_doc(B)],
        "q2": SearchError("Exa quota exceeded"),
        "q3": [make_doc(B), make_doc(C)],
    })
    executor, _ = _executor(config, search)

    articles, stats = await executor.research("AI", ["q1", "q2", "q3"], START, END)

    assert [a.url for a in articles] == [A, B, C]
    assert stats.queries == 3
    assert stats.failed_queries == 1
    assert stats.results == 4
    assert stats.unique == 3


@pytest.mark.asyncio
async def test_search_receives_window_and_result_count(config):
    config.search_results_limit = 7
    search = FakeSearch()
    executor, generator = _executor(config, search)

    articles, stats = await executor.research("AI", ["q1", "q2"], START, END)

    assert articles == []
    assert stats.unique == 0
    assert sorted(search.calls) == [("q1", 7, START, END), ("q2", 7, START, END)]
    assert generator.calls == []


@pytest.mark.asyncio
async def test_irrelevant_sources_are_dropped(config):
    search = FakeSearch(default=[make_doc(A), make_doc(B), make_doc(C)])
    executor, generator = _executor(config, search, evaluation=relevant_unless(B))

    articles, stats = await executor.research("AI", ["q1"], START, END)

    assert [a.url for a in articles] == [A, C]
    assert (stats.relevant, stats.irrelevant) == (2, 1)
    assert len(generator.calls_for(SourceExtraction)) == 2


@pytest.mark.asyncio
async def test_evaluation_failure_counts_as_irrelevant(config):
    def evaluate(prompt):
        if B in prompt:
            return GenerationError("RelevanceVerdict generation timed out after 120s")
        return RelevanceVerdict(is_relevant=True, reasoning="on topic")

    search = FakeSearch(default=[make_doc(A), make_doc(B)])
    executor, generator = _executor(config, search, evaluation=evaluate)

    articles, stats = await executor.research("AI", ["q1"], START, END)

    assert [a.url for a in articles] == [A]
    assert stats.irrelevant == 1
    assert all(B not in prompt for prompt in generator.calls_for(SourceExtraction))


@pytest.mark.asyncio
async def test_extraction_failure_drops_source(config):
    def extract(prompt):
        if A in prompt:
            raise GenerationError("SourceExtraction generation failed (ValueError): bad output")
        return make_extraction("Second summary.")

    search = FakeSearch(default=[make_doc(A), make_doc(B)])
    executor, _ = _executor(config, search, extraction=extract)

    articles, stats = await executor.research("AI", ["q1"], START, END)

    assert [a.url for a in articles] == [B]
    assert articles[0].summary == "Second summary."
    assert (stats.extracted, stats.extraction_failures) == (1, 1)


@pytest.mark.asyncio
async def test_article_combines_metadata_and_extraction(config):
    search = FakeSearch(default=[make_doc(A, title="EU fines chipmaker")])
    executor, _ = _executor(config, search)

    articles, _ = await executor.research("AI", ["q1"], START, END)

    article = articles[0]
    assert article.title == "EU fines chipmaker"
    assert article.author == "Reporter"
    assert article.published_date == "2025-03-09T10:00:00.000Z"
    assert article.key_facts == ["The regulator issued a 10M fine on March 3."]
    assert article.opinions == ["Analysts called the move overdue."]


@pytest.mark.asyncio
async def test_source_text_is_truncated_in_prompts(config):
    config.max_source_chars = 50
    search = FakeSearch(default=[make_doc(A, text="x" * 200)])
    executor, generator = _executor(config, search)

    await executor.research("AI", ["q1"], START, END)

    for prompt in generator.calls_for(RelevanceVerdict) + generator.calls_for(SourceExtraction):
        assert "x" * 50 in prompt
        assert "x" * 51 not in prompt
