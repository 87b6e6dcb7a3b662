"""Notifications for finished generations.

This module handles all output when a generation record reaches a terminal
status:
- Markdown press review saved to disk (success only)
- Webhook POST notification (success and failure)
- JSONL alerts file (success and failure)

All notification methods are async and fail gracefully (errors are logged
but never change the generation record).

Output Formats:
    Markdown: Headline, intro and sections with numbered source links
    Webhook: JSON payload for integration with external systems
    JSONL: One JSON object per line for log aggregation
"""

import asyncio
import json
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiohttp

from config import Config
from models.content import PressReviewContent
from models.generation import FailedJob, GenerationJob, SuccessJob
from schedule import format_cron_to_readable
from tools.utils import create_ssl_context

logger = logging.getLogger(__name__)


def _sanitize_filename(title: str, max_length: int = 50) -> str:
    """Sanitize a headline for use as filename.

    Removes characters that are invalid in filenames and truncates
    to a reasonable length while preserving word boundaries.
    """
    s = re.sub(r'[<>:"/\\|?*\n\r\t]', " ", title)
    s = re.sub(r"\s+", " ", s).strip()

    if len(s) > max_length:
        s = s[:max_length]
        last_space = s.rfind(" ")
        if last_space > max_length // 2:
            s = s[:last_space]

    return s.strip() or "press_review"


def render_markdown(job: SuccessJob) -> str:
    """Render a finished press review as markdown."""
    content: PressReviewContent = job.content
    lines = [
        f"# {content.headline}",
        "",
        f"**Topic:** {job.topic}",
        f"**Schedule:** {format_cron_to_readable(job.schedule)}",
        f"**Generated:** {job.generated_at.strftime('%Y-%m-%d %H:%M')}",
        "",
        "---",
        "",
        content.intro,
    ]

    for section in content.sections:
        lines.extend(["", f"## {section.title}", "", section.text, ""])
        for i, source in enumerate(section.sources, 1):
            marker = source.id or str(i)
            lines.append(f"[{marker}] [{source.title}]({source.url})")

    return "\n".join(lines) + "\n"


async def save_markdown_report(job: SuccessJob, reports_dir: Path) -> Path | None:
    """Save markdown rendering of a successful generation."""
    try:
        reports_dir.mkdir(parents=True, exist_ok=True)

        timestamp = job.generated_at.strftime("%Y%m%d_%H%M%S")
        filename = f"{timestamp}_{_sanitize_filename(job.content.headline)}.md"
        filepath = reports_dir / filename
        filepath.write_text(render_markdown(job), encoding="utf-8")
        logger.info("Report saved | file=%s", filepath.name)
        return filepath

    except OSError as e:
        logger.error("Report save failed: %s", e, exc_info=True)
        return None


def _build_payload(job: GenerationJob) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "type": "press_review_" + job.status,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "generation_id": job.id,
        "topic": job.topic,
        "schedule": job.schedule,
        "status": job.status,
    }
    if isinstance(job, SuccessJob):
        payload["headline"] = job.content.headline
        payload["intro"] = job.content.intro
        payload["sections"] = len(job.content.sections)
        payload["sources"] = sorted(job.content.source_urls())
    elif isinstance(job, FailedJob):
        payload["error"] = job.error
    return payload


async def send_webhook(job: GenerationJob, url: str) -> bool:
    """Send notification via webhook POST."""
    if not url:
        return True

    try:
        async with aiohttp.ClientSession() as session:
            async with session.post(
                url,
                json=_build_payload(job),
                timeout=aiohttp.ClientTimeout(total=10),
                ssl=create_ssl_context(),
            ) as resp:
                if resp.status < 300:
                    logger.debug("Webhook sent | id=%s status=%s", job.id, job.status)
                    return True
                logger.warning("Webhook failed | http_status=%d id=%s", resp.status, job.id)
                return False
    except asyncio.TimeoutError:
        logger.warning("Webhook timeout | url=%s id=%s", url[:50], job.id)
        return False
    except aiohttp.ClientError as e:
        logger.error("Webhook error: %s (%s)", e, type(e).__name__)
        return False


async def append_alerts_file(job: GenerationJob, filepath: str) -> bool:
    """Append alert to JSONL file."""
    if not filepath:
        return True

    try:
        path = Path(filepath)
        path.parent.mkdir(parents=True, exist_ok=True)

        # Warn if file is getting large (> 100MB)
        if path.exists():
            size_mb = path.stat().st_size / (1024 * 1024)
            if size_mb > 100:
                logger.warning("Alerts file large | size=%.1fMB path=%s", size_mb, filepath)

        with open(path, "a", encoding="utf-8") as f:
            f.write(json.dumps(_build_payload(job), ensure_ascii=False) + "\n")
        return True
    except OSError as e:
        logger.error("Alerts file error: %s (%s)", e, type(e).__name__)
        return False


async def notify(job: GenerationJob, config: Config) -> bool:
    """Send all configured notifications for a terminal record.

    Returns:
        True if every configured output succeeded
    """
    if not job.is_terminal:
        return True

    report_ok = True
    if isinstance(job, SuccessJob):
        report_ok = await save_markdown_report(job, config.reports_dir) is not None

    webhook_ok, alerts_ok = await asyncio.gather(
        send_webhook(job, config.webhook_url),
        append_alerts_file(job, config.alerts_file),
    )
    return report_ok and webhook_ok and alerts_ok
