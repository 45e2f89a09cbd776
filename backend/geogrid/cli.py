# backend/geogrid/cli.py
"""
Command line entry point.

``serve`` runs the long-lived worker process; every other command performs one
pass or one schedule operation against the database and exits.
"""

import argparse
import asyncio
import json
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .config import settings
from .database import async_db
from .database.exceptions import DatabaseOperationError
from .enums import LoggerName, LogSource
from .exceptions import GeoGridError
from .services.logger import configure_logging, get_service_logger
from .utils.time_utils import parse_time_of_day
from .workers.service_locator import ServiceLocator, create_worker_ecosystem

logger = get_service_logger(LoggerName.CLI, LogSource.CLI)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_SKIPPED = 2


def _time_of_day(value: str):
    parsed = parse_time_of_day(value)
    if parsed is None:
        raise argparse.ArgumentTypeError(f"invalid time '{value}', expected HH:MM")
    return parsed


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="geogrid",
        description="Weekly geo-grid search rank scheduling and measurement.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("serve", help="Run the scheduler, claimer and engine until stopped")

    claim = subparsers.add_parser("claim", help="Run one claim pass")
    claim.add_argument("--limit", type=int, default=None, help="Maximum schedules to claim")

    subparsers.add_parser("measure", help="Run one engine pass over active runs")
    subparsers.add_parser("reset-stuck", help="Reschedule active schedules without a next run")

    init = subparsers.add_parser("init-schedule", help="Create a business's schedule")
    init.add_argument("business_id", type=int)

    active = subparsers.add_parser("set-active", help="Activate or deactivate a schedule")
    active.add_argument("business_id", type=int)
    active.add_argument("state", choices=["on", "off"])

    set_time = subparsers.add_parser("set-time", help="Move a schedule to a new local time")
    set_time.add_argument("business_id", type=int)
    set_time.add_argument("time", type=_time_of_day, help="Local time 'HH:MM'")
    set_time.add_argument(
        "--day", type=int, default=None, help="Day of week, 0 (Sunday) to 6 (Saturday)"
    )

    keywords = subparsers.add_parser("set-keywords", help="Replace a schedule's keywords")
    keywords.add_argument("business_id", type=int)
    keywords.add_argument("keywords", nargs="*")

    return parser


def _print(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


async def _run_claim(locator: ServiceLocator, args: argparse.Namespace) -> int:
    limit = args.limit or settings.claim_batch_limit
    summary = await locator.get_claimer().run_claim_cycle(limit=limit)
    _print(
        {
            "claimed": summary.claimed,
            "created": summary.created,
            "skipped": summary.skipped,
            "failed": summary.failed,
            "run_ids": summary.run_ids,
        }
    )
    return EXIT_FAILED if summary.failed else EXIT_OK


async def _run_measure(locator: ServiceLocator, args: argparse.Namespace) -> int:
    summary = await locator.create_geogrid_worker().run_measure_pass()
    if summary is None:
        return EXIT_SKIPPED
    _print(
        {
            "runs_processed": summary.runs_processed,
            "runs_failed": summary.runs_failed,
            "runs": [
                {
                    "run_id": result.run_id,
                    "succeeded": result.succeeded,
                    "failed": result.failed,
                    "not_found_ratio": round(result.not_found_ratio, 3),
                    "pauses": result.pauses,
                    "status": result.final_status.value if result.final_status else None,
                }
                for result in summary.results
            ],
        }
    )
    return EXIT_FAILED if summary.runs_failed else EXIT_OK


async def _run_reset_stuck(locator: ServiceLocator, args: argparse.Namespace) -> int:
    reset = await locator.get_schedule_service().reset_stuck_schedules()
    _print({"reset": reset})
    return EXIT_OK


async def _run_init_schedule(locator: ServiceLocator, args: argparse.Namespace) -> int:
    schedule = await locator.get_schedule_service().initialize(args.business_id)
    _print(schedule.model_dump(mode="json"))
    return EXIT_OK


async def _run_set_active(locator: ServiceLocator, args: argparse.Namespace) -> int:
    schedule = await locator.get_schedule_service().set_active(
        args.business_id, args.state == "on"
    )
    _print(schedule.model_dump(mode="json"))
    return EXIT_OK


async def _run_set_time(locator: ServiceLocator, args: argparse.Namespace) -> int:
    hour, minute = args.time
    service = locator.get_schedule_service()
    if args.day is None:
        schedule = await service.update_time(args.business_id, hour, minute)
    else:
        schedule = await service.update_day_and_time(args.business_id, args.day, hour, minute)
    _print(schedule.model_dump(mode="json"))
    return EXIT_OK


async def _run_set_keywords(locator: ServiceLocator, args: argparse.Namespace) -> int:
    stored = await locator.get_schedule_service().set_keywords(
        args.business_id, args.keywords
    )
    _print({"business_id": args.business_id, "keywords": stored})
    return EXIT_OK


COMMANDS: Dict[str, Callable[[ServiceLocator, argparse.Namespace], Awaitable[int]]] = {
    "claim": _run_claim,
    "measure": _run_measure,
    "reset-stuck": _run_reset_stuck,
    "init-schedule": _run_init_schedule,
    "set-active": _run_set_active,
    "set-time": _run_set_time,
    "set-keywords": _run_set_keywords,
}


async def run_command(args: argparse.Namespace) -> int:
    await async_db.initialize()
    try:
        locator = create_worker_ecosystem(async_db)
        return await COMMANDS[args.command](locator, args)
    except (GeoGridError, DatabaseOperationError) as e:
        logger.error(f"Command '{args.command}' failed: {e}")
        return EXIT_FAILED
    finally:
        await async_db.close()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_arg_parser().parse_args(argv)
    configure_logging(
        level=settings.log_level,
        log_file_path=settings.log_file_path,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )

    if args.command == "serve":
        from .main_worker import main as serve

        asyncio.run(serve())
        return EXIT_OK

    return asyncio.run(run_command(args))


if __name__ == "__main__":
    raise SystemExit(main())
