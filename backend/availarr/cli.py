"""
Availarr Command Line

One subcommand per job. Every job logs to the console and to
``{LOG_DIR}/{job}-{timestamp}.log``, connects to the database with retries,
and exits 1 on a configuration or database error.

Examples:
  availarr movies --concurrency 20          Resume the movie page sync
  availarr tv --start-page 40 --dry-run     Probe series from page 40, write nothing
  availarr episodes --limit 25              Probe episodes of 25 popular series
  availarr refresh --workers 4              Re-probe every stored record
  availarr fetch-all --max-pages 50         Crawl 50 discover pages per kind
  availarr refill --yes                     Wipe the store and rebuild from popular listings
  availarr cleanup --days 7                 Delete records not checked for a week
  availarr status                           Print store statistics
  availarr serve --port 8000                Start the HTTP API
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from availarr.config import Config
from availarr.database import SessionLocal, init_db
from availarr.models.content import ContentKind
from availarr.services.content_store import ContentStore
from availarr.services.exceptions import ConfigurationError, StoreUnavailableError
from availarr.services.prober import ProbeMethod
from availarr.services.reconciliation import EvictionPolicy
from availarr.services.structured_logging import setup_job_logging
from availarr.jobs.runtime import JobRuntime, build_runtime
from availarr.jobs.page_sync import PageSyncJob
from availarr.jobs.episode_sync import EpisodeSyncJob
from availarr.jobs.refresh import RefreshJob
from availarr.jobs.fetch_all import FetchAllJob
from availarr.jobs.maintenance import cleanup_old_content, collect_status, refill

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="availarr",
        description="Reconcile catalog titles against embed streaming availability",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__.split("Examples:")[1] if __doc__ else None,
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    eviction_choices = [policy.value for policy in EvictionPolicy]

    for name, kind in (("movies", ContentKind.MOVIE), ("tv", ContentKind.SERIES)):
        sub = subparsers.add_parser(name, help=f"Page sync of the {kind.tmdb_path} discover listing")
        sub.set_defaults(kind=kind)
        sub.add_argument("--start-page", type=int, default=None, help="Start at this page, ignoring the checkpoint")
        sub.add_argument("--max-pages", type=int, default=None, help="Stop after this page number")
        sub.add_argument("--concurrency", type=int, default=Config.DEFAULT_CONCURRENCY,
                         help=f"Titles probed concurrently (default: {Config.DEFAULT_CONCURRENCY})")
        sub.add_argument("--eviction", choices=eviction_choices, default=EvictionPolicy.MARK_ONLY.value,
                         help="What to do with unavailable titles (default: mark-only)")
        sub.add_argument("--dry-run", action="store_true", help="Probe and log only")

    episodes = subparsers.add_parser("episodes", help="Probe episodes of available series")
    episodes.add_argument("--limit", type=int, default=10, help="Series per run (default: 10)")
    episodes.add_argument("--concurrency", type=int, default=Config.EPISODE_CONCURRENCY,
                          help=f"Episodes probed concurrently (default: {Config.EPISODE_CONCURRENCY})")
    episodes.add_argument("--dry-run", action="store_true", help="Probe and log only")

    refresh = subparsers.add_parser("refresh", help="Re-probe every stored record")
    refresh.add_argument("--workers", type=int, default=Config.NUM_WORKERS,
                         help=f"Probe workers (default: {Config.NUM_WORKERS})")
    refresh.add_argument("--batch-size", type=int, default=Config.REFRESH_BATCH_SIZE,
                         help=f"Records per batch (default: {Config.REFRESH_BATCH_SIZE})")
    refresh.add_argument("--eviction", choices=eviction_choices, default=EvictionPolicy.MARK_THEN_DELETE.value,
                         help="What to do with unavailable records (default: mark-then-delete)")
    refresh.add_argument("--dry-run", action="store_true", help="Probe and log only")

    fetch_all = subparsers.add_parser("fetch-all", help="Crawl every discover page of both kinds")
    fetch_all.add_argument("--max-pages", type=int, default=Config.TMDB_MAX_PAGES,
                           help=f"Pages per kind (default: {Config.TMDB_MAX_PAGES})")
    fetch_all.add_argument("--concurrency", type=int, default=Config.EPISODE_CONCURRENCY,
                           help=f"Titles probed concurrently (default: {Config.EPISODE_CONCURRENCY})")
    fetch_all.add_argument("--dry-run", action="store_true", help="Probe and log only")

    refill_parser = subparsers.add_parser("refill", help="Delete everything and rebuild from popular listings")
    refill_parser.add_argument("--max-pages", type=int, default=10, help="Popular pages per kind (default: 10)")
    refill_parser.add_argument("--concurrency", type=int, default=Config.DEFAULT_CONCURRENCY,
                               help=f"Titles probed concurrently (default: {Config.DEFAULT_CONCURRENCY})")
    refill_parser.add_argument("--yes", action="store_true", help="Skip the confirmation prompt")

    cleanup = subparsers.add_parser("cleanup", help="Delete records not checked recently")
    cleanup.add_argument("--days", type=int, default=None,
                         help=f"Age threshold in days (default: {Config.CLEANUP_MAX_AGE_DAYS})")
    cleanup.add_argument("--cache", action="store_true",
                         help=f"Use the cache retention of {Config.CACHE_CLEANUP_MAX_AGE_DAYS} days")

    subparsers.add_parser("status", help="Print store statistics")

    serve = subparsers.add_parser("serve", help="Start the HTTP API")
    serve.add_argument("--host", default=Config.APP_HOST, help=f"Server host (default: {Config.APP_HOST})")
    serve.add_argument("--port", type=int, default=Config.APP_PORT, help=f"Server port (default: {Config.APP_PORT})")

    return parser


# =============================================================================
# JOB RUNNERS
# =============================================================================

async def run_page_sync(runtime: JobRuntime, args: argparse.Namespace) -> None:
    engine = runtime.engine(args.kind, eviction=EvictionPolicy(args.eviction), dry_run=args.dry_run)
    job = PageSyncJob(
        engine,
        runtime.catalog,
        runtime.page_checkpoints(args.kind),
        concurrency=args.concurrency,
        start_page=args.start_page,
        max_pages=args.max_pages,
    )
    await job.run()


async def run_episode_sync(runtime: JobRuntime, args: argparse.Namespace) -> None:
    engine = runtime.engine(ContentKind.SERIES, dry_run=args.dry_run)
    job = EpisodeSyncJob(
        engine,
        runtime.catalog,
        runtime.episode_checkpoints(),
        limit=args.limit,
        concurrency=args.concurrency,
    )
    await job.run()


async def run_refresh(runtime: JobRuntime, args: argparse.Namespace) -> None:
    job = RefreshJob(
        runtime.store,
        runtime.prober,
        catalog=runtime.catalog,
        num_workers=args.workers,
        batch_size=args.batch_size,
        eviction=EvictionPolicy(args.eviction),
        dry_run=args.dry_run,
    )
    await job.run()


async def run_fetch_all(runtime: JobRuntime, args: argparse.Namespace) -> None:
    job = FetchAllJob(runtime, concurrency=args.concurrency, max_pages=args.max_pages, dry_run=args.dry_run)
    await job.run()


async def run_refill(runtime: JobRuntime, args: argparse.Namespace) -> None:
    await refill(runtime, max_pages=args.max_pages, concurrency=args.concurrency)


def _confirm_refill() -> bool:
    answer = input("This deletes every stored record before rebuilding. Continue? [y/N] ")
    return answer.strip().lower() in ("y", "yes")


def _run_store_command(args: argparse.Namespace) -> None:
    Config.validate(require_catalog=False)
    store = ContentStore(SessionLocal())
    try:
        if args.command == "cleanup":
            days = args.days if args.days is not None else (
                Config.CACHE_CLEANUP_MAX_AGE_DAYS if args.cache else Config.CLEANUP_MAX_AGE_DAYS
            )
            cleanup_old_content(store, days)
        else:
            collect_status(store)
    finally:
        store.db.close()


def _run_job(args: argparse.Namespace) -> None:
    runners = {
        "movies": run_page_sync,
        "tv": run_page_sync,
        "episodes": run_episode_sync,
        "refresh": run_refresh,
        "fetch-all": run_fetch_all,
        "refill": run_refill,
    }

    if args.command == "refresh":
        runtime = build_runtime(
            SessionLocal, require_catalog=False, probe_method=ProbeMethod.GET, not_found_is_final=True
        )
    else:
        runtime = build_runtime(SessionLocal)

    try:
        asyncio.run(runners[args.command](runtime, args))
    finally:
        runtime.close()


def _serve(args: argparse.Namespace) -> None:
    import uvicorn

    uvicorn.run(
        "availarr.main:app",
        host=args.host,
        port=args.port,
        log_level="debug" if args.verbose else "info",
    )


def main(argv: Optional[List[str]] = None) -> int:
    """
    Parse arguments and run one job.

    Returns:
        Process exit code (0 on success, 1 on configuration or database errors)
    """
    args = build_parser().parse_args(argv)

    if args.command == "serve":
        _serve(args)
        return 0

    if args.command == "refill" and not args.yes and not _confirm_refill():
        print("Aborted.")
        return 0

    setup_job_logging(
        args.command,
        log_dir=Config.LOG_DIR,
        level=logging.DEBUG if args.verbose else logging.INFO,
        json_output=Config.LOG_JSON,
    )

    try:
        init_db()
        if args.command in ("cleanup", "status"):
            _run_store_command(args)
        else:
            _run_job(args)
    except ConfigurationError as e:
        logger.error(f"✗ Configuration error: {e}")
        return 1
    except StoreUnavailableError as e:
        logger.error(f"✗ Database unavailable: {e}")
        return 1
    except KeyboardInterrupt:
        logger.warning("⚠ Interrupted, progress is saved in the checkpoint files")
        return 130

    logger.info(f"✓ {args.command} finished")
    return 0


if __name__ == "__main__":
    sys.exit(main())
