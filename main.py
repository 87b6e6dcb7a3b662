#!/usr/bin/env python3
"""Press review generation pipeline powered by PydanticAI agents.

This CLI creates generation records and drives them through the three
pipeline stages: query planning, web research and content synthesis.

Commands:
    create      Create a pending generation record (optionally run it)
    run         Run every remaining stage for a record
    stage       Invoke a single stage (generate-queries, execute-research, synthesize-content)
    worker      Process queued stage tasks (once or continuously)
    sweep       Re-trigger records stalled in a non-terminal status
    show        Show a generation record
    recent      List recent generation records
    status      Show configuration and database statistics
    schedule    Explain a schedule string and its research window

Examples:
    python main.py create --topic "Artificial Intelligence" --schedule "0 8 * * *" --run
    python main.py create --topic "Chip exports" --frequency weekly --time 9 --day-of-week monday
    python main.py stage execute-research 3f2a...
    python main.py worker -c
    python main.py show 3f2a... --markdown
    python main.py schedule "0 9 * * 1"

Environment:
    OPENAI_API_KEY, EXA_API_KEY: Required for the pipeline stages
    See config.py for all configuration options
"""

import argparse
import asyncio
import json
import logging
import sys
from datetime import timedelta

from config import Config
from database import Database
from models.generation import FailedJob, GenerationStatus, SuccessJob
from observability.logging import setup_logging
from schedule import (
    ScheduleConfig,
    ScheduleFrequency,
    build_cron_expression,
    format_cron_to_readable,
    parse_cron_expression,
    schedule_frequency,
    search_window,
)

logger = logging.getLogger(__name__)


def _print_results(results) -> bool:
    """Print stage acknowledgements, return True if the last one succeeded."""
    for result in results:
        print(json.dumps(result.to_dict(), indent=2, default=str))
    return bool(results) and results[-1].success


def _run_pipeline(config: Config, coro_factory) -> int:
    """Run an async pipeline operation with standard exit codes."""
    from pipeline import Pipeline

    pipeline = Pipeline.from_config(config)
    try:
        return asyncio.run(coro_factory(pipeline))
    except KeyboardInterrupt:
        logger.info("Stopped by user (Ctrl+C)")
        return 130  # Standard exit code for SIGINT
    finally:
        pipeline.close()


def cmd_create(args: argparse.Namespace, config: Config) -> int:
    """Create a pending generation record."""
    if args.frequency:
        schedule = build_cron_expression(ScheduleConfig(
            schedule=ScheduleFrequency(args.frequency),
            time=str(args.time),
            day_of_week=args.day_of_week,
            day_of_month=str(args.day_of_month) if args.day_of_month else None,
        ))
    else:
        schedule = args.schedule
    if parse_cron_expression(schedule) is None:
        logger.warning("Unsupported schedule shape, research window falls back | schedule='%s'", schedule)

    with Database(config.db_path) as db:
        job = db.create(args.topic, schedule)
    print(f"Created {job.id} ({format_cron_to_readable(schedule)})")

    if not args.run:
        return 0

    async def run(pipeline) -> int:
        return 0 if _print_results(await pipeline.run_chain(job.id)) else 1

    return _run_pipeline(config, run)


def cmd_run(args: argparse.Namespace, config: Config) -> int:
    """Run every remaining stage for a record."""
    async def run(pipeline) -> int:
        return 0 if _print_results(await pipeline.run_chain(args.id)) else 1

    return _run_pipeline(config, run)


def cmd_stage(args: argparse.Namespace, config: Config) -> int:
    """Invoke one stage; the configured dispatcher handles the handoff."""
    async def run(pipeline) -> int:
        result = await pipeline.invoke(args.name, args.id)
        print(json.dumps(result.to_dict(), indent=2, default=str))
        return 0 if result.final.success else 1

    return _run_pipeline(config, run)


def cmd_worker(args: argparse.Namespace, config: Config) -> int:
    """Process queued stage tasks."""
    from dispatch import Worker

    async def run(pipeline) -> int:
        worker = Worker(pipeline, poll_interval=args.interval or config.poll_interval_seconds)
        if args.continuous:
            await worker.run_continuous(stall_timeout_minutes=config.stall_timeout_minutes)
            return 0
        processed = await worker.run_once()
        print(f"Processed {processed} task(s)")
        return 0

    return _run_pipeline(config, run)


def cmd_sweep(args: argparse.Namespace, config: Config) -> int:
    """Re-trigger stalled records."""
    from dispatch import sweep_stalled

    minutes = args.minutes or config.stall_timeout_minutes

    async def run(pipeline) -> int:
        resumed = await sweep_stalled(pipeline, timedelta(minutes=minutes))
        for generation_id, stage in resumed:
            print(f"{generation_id} -> {stage}")
        print(f"Resumed {len(resumed)} record(s)")
        return 0

    return _run_pipeline(config, run)


def cmd_show(args: argparse.Namespace, config: Config) -> int:
    """Show one generation record."""
    from notifications import render_markdown

    with Database(config.db_path) as db:
        job = db.fetch(args.id)

    if job is None:
        print(f"Generation record not found: {args.id}", file=sys.stderr)
        return 1

    if args.markdown:
        if not isinstance(job, SuccessJob):
            print(f"No content: record status is {job.status}", file=sys.stderr)
            return 1
        print(render_markdown(job))
        return 0

    print(json.dumps(job.model_dump(mode="json", by_alias=True), indent=2, ensure_ascii=False))
    return 0


def cmd_recent(args: argparse.Namespace, config: Config) -> int:
    """List recent generation records."""
    status = GenerationStatus(args.status) if args.status else None
    with Database(config.db_path) as db:
        jobs = db.list_recent(limit=args.limit, status=status)

    if not jobs:
        print("No generation records.")
        return 0

    print(f"\n=== Recent generations ({len(jobs)}) ===\n")
    for job in jobs:
        print(f"{job.id}  [{job.status}]  {job.topic}")
        print(f"   Schedule: {format_cron_to_readable(job.schedule)}")
        print(f"   Updated: {job.updated_at.strftime('%Y-%m-%d %H:%M')}")
        if isinstance(job, SuccessJob):
            print(f"   Headline: {job.content.headline}")
        elif isinstance(job, FailedJob):
            print(f"   Error: {job.error[:200]}")
        print()
    return 0


def cmd_status(args: argparse.Namespace, config: Config) -> int:
    """Display configuration and database statistics."""
    with Database(config.db_path) as db:
        db_stats = db.stats()

    status = {
        "config": {
            "context_model": config.context_model,
            "query_model": config.query_model,
            "evaluation_model": config.evaluation_model,
            "extraction_model": config.extraction_model,
            "synthesis_model": config.synthesis_model,
            "search_results_limit": config.search_results_limit,
            "dispatch_mode": config.dispatch_mode,
            "stall_timeout_minutes": config.stall_timeout_minutes,
            "enable_logfire": config.enable_logfire,
        },
        "database": {
            "path": str(config.db_path),
            **db_stats,
        },
    }

    print(json.dumps(status, indent=2))
    return 0


def cmd_schedule(args: argparse.Namespace, config: Config) -> int:
    """Explain a schedule string."""
    start, end = search_window(args.cron)
    print(json.dumps({
        "schedule": args.cron,
        "readable": format_cron_to_readable(args.cron),
        "frequency": schedule_frequency(args.cron).value,
        "window_start": start.isoformat(),
        "window_end": end.isoformat(),
    }, indent=2))
    return 0


def main() -> int:
    """Main entry point.

    Returns:
        Exit code
    """
    parser = argparse.ArgumentParser(
        description="Press review generation pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # create command
    create_parser = subparsers.add_parser("create", help="Create a generation record")
    create_parser.add_argument("--topic", required=True, help="Press review topic")
    create_parser.add_argument(
        "--schedule",
        default="0 8 * * *",
        help="Cron schedule (default: daily at 8)",
    )
    create_parser.add_argument(
        "--frequency",
        choices=[f.value for f in ScheduleFrequency],
        help="Build the schedule from parts instead of --schedule",
    )
    create_parser.add_argument("--time", type=int, default=8, help="Hour of day, 0-23 (with --frequency)")
    create_parser.add_argument("--day-of-week", help="Weekday name (weekly)")
    create_parser.add_argument("--day-of-month", type=int, help="Day 1-31 (monthly)")
    create_parser.add_argument("--run", action="store_true", help="Run the whole chain after creating")

    # run command
    run_parser = subparsers.add_parser("run", help="Run all remaining stages for a record")
    run_parser.add_argument("id", help="Generation record id")

    # stage command
    stage_parser = subparsers.add_parser("stage", help="Invoke a single stage")
    stage_parser.add_argument(
        "name",
        choices=["generate-queries", "execute-research", "synthesize-content"],
        help="Stage name",
    )
    stage_parser.add_argument("id", help="Generation record id")

    # worker command
    worker_parser = subparsers.add_parser("worker", help="Process queued stage tasks")
    worker_parser.add_argument(
        "-c", "--continuous",
        action="store_true",
        help="Poll continuously and sweep stalled records",
    )
    worker_parser.add_argument("--interval", type=int, help="Poll interval in seconds")

    # sweep command
    sweep_parser = subparsers.add_parser("sweep", help="Resume stalled records")
    sweep_parser.add_argument("--minutes", type=int, help="Stall timeout (default: STALL_TIMEOUT_MINUTES)")

    # show command
    show_parser = subparsers.add_parser("show", help="Show a generation record")
    show_parser.add_argument("id", help="Generation record id")
    show_parser.add_argument("--markdown", action="store_true", help="Render content as markdown")

    # recent command
    recent_parser = subparsers.add_parser("recent", help="List recent generation records")
    recent_parser.add_argument("--limit", type=int, default=20, help="Max records (default: 20)")
    recent_parser.add_argument(
        "--status",
        choices=[s.value for s in GenerationStatus],
        help="Only records in this status",
    )

    # status command
    subparsers.add_parser("status", help="Show configuration and statistics")

    # schedule command
    schedule_parser = subparsers.add_parser("schedule", help="Explain a schedule string")
    schedule_parser.add_argument("cron", help='Cron string, e.g. "0 9 * * 1"')

    args = parser.parse_args()

    config = Config.load()
    setup_logging(config, verbose=args.verbose)

    needs_providers = args.command in ("run", "stage", "worker", "sweep") or (
        args.command == "create" and args.run
    )
    if needs_providers:
        error = config.validate()
        if error:
            print(f"Configuration error: {error}", file=sys.stderr)
            return 1

    commands = {
        "create": cmd_create,
        "run": cmd_run,
        "stage": cmd_stage,
        "worker": cmd_worker,
        "sweep": cmd_sweep,
        "show": cmd_show,
        "recent": cmd_recent,
        "status": cmd_status,
        "schedule": cmd_schedule,
    }

    if args.command in commands:
        try:
            return commands[args.command](args, config)
        except Exception as e:
            logger.error("Command failed | cmd=%s error=%s", args.command, e, exc_info=True)
            print(f"Error: {e}", file=sys.stderr)
            return 1
    else:
        parser.print_help()
        return 0


if __name__ == "__main__":
    sys.exit(main())
