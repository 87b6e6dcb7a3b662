import json
from datetime import datetime, timezone

import pytest

from models import FailedJob, SuccessJob
from notifications import _sanitize_filename, notify, render_markdown, send_webhook
from tests.fakes import make_content

NOW = datetime(2025, 3, 10, 9, 30, tzinfo=timezone.utc)


def _success():
    return SuccessJob(
        id="g1",
        topic="Artificial Intelligence",
        schedule="0 9 * * 1",
        created_at=NOW,
        updated_at=NOW,
        content=make_content("https://a.com/1", "https://b.com/2"),
        generated_at=NOW,
    )


def _failed():
    return FailedJob(
        id="g2",
        topic="Artificial Intelligence",
        schedule="0 9 * * 1",
        created_at=NOW,
        updated_at=NOW,
        error="QueryPlan generation timed out after 120s",
    )


def test_render_markdown():
    text = render_markdown(_success())

    assert text.startswith("# AI moves from labs to lawbooks\n")
    assert "**Schedule:** Every Monday at 9:00 AM" in text
    assert "**Generated:** 2025-03-10 09:30" in text
    assert "## Regulation" in text
    assert "[1] [Source 1](https://a.com/1)" in text
    assert "[2] [Source 2](https://b.com/2)" in text


def test_sanitize_filename():
    assert _sanitize_filename('AI: "big" news/today') == "AI big news today"
    assert _sanitize_filename("???") == "press_review"
    assert len(_sanitize_filename("word " * 30)) <= 50


@pytest.mark.asyncio
async def test_notify_success_writes_report_and_alert(config, tmp_path):
    config.alerts_file = str(tmp_path / "alerts" / "alerts.jsonl")

    assert await notify(_success(), config)

    report = config.reports_dir / "20250310_093000_AI moves from labs to lawbooks.md"
    assert report.exists()

    alert = json.loads((tmp_path / "alerts" / "alerts.jsonl").read_text(encoding="utf-8"))
    assert alert["type"] == "press_review_success"
    assert alert["headline"] == "AI moves from labs to lawbooks"
    assert alert["sources"] == ["https://a.com/1", "https://b.com/2"]
    assert "error" not in alert


@pytest.mark.asyncio
async def test_notify_failure_writes_alert_only(config, tmp_path):
    config.alerts_file = str(tmp_path / "alerts.jsonl")

    assert await notify(_failed(), config)

    assert not config.reports_dir.exists()
    alert = json.loads((tmp_path / "alerts.jsonl").read_text(encoding="utf-8"))
    assert alert["type"] == "press_review_failed"
    assert alert["error"] == "QueryPlan generation timed out after 120s"
    assert "headline" not in alert


@pytest.mark.asyncio
async def test_webhook_without_url_is_noop():
    assert await send_webhook(_success(), "")
