"""CLI entry point for the marketplace price worker."""

import argparse
import asyncio
import contextlib
import logging
import signal
import sys

from pricehound.browser.session import BrowserSession
from pricehound.core.config import Settings
from pricehound.core.errors import BrowserLaunchError, QueueIOError
from pricehound.core.input import read_models, unique_models
from pricehound.pipeline.search_runner import export_results_json, format_summary, run_searches
from pricehound.pipeline.worker import JobWorker
from pricehound.platforms.gmarket.adapter import GmarketAdapter
from pricehound.queue import create_queue
from pricehound.queue.sqlite_queue import SqliteJobQueue


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Marketplace price worker - drain price lookup jobs with a real browser",
    )
    subparsers = parser.add_subparsers(dest="command")

    # --- work subcommand (default) ---
    work_parser = subparsers.add_parser("work", help="Poll the job queue and process jobs")
    work_parser.add_argument(
        "--config",
        default="config/settings.yaml",
        help="Path to settings YAML file (default: config/settings.yaml)",
    )
    work_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show configuration and the next pending job without launching a browser",
    )
    work_parser.add_argument(
        "--headed",
        action="store_true",
        help="Show the browser window (overrides browser.headless)",
    )
    work_parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )

    # --- search subcommand ---
    search_parser = subparsers.add_parser("search", help="Search models directly, outside the queue")
    search_parser.add_argument(
        "--model", "-m",
        action="append",
        default=[],
        help="Model name to search (repeatable)",
    )
    search_parser.add_argument(
        "--input", "-i",
        help="File with model names (.txt one per line, .csv first column)",
    )
    search_parser.add_argument(
        "--config",
        default="config/settings.yaml",
        help="Path to settings YAML file (default: config/settings.yaml)",
    )
    search_parser.add_argument(
        "--min-delay",
        type=float,
        default=2.0,
        help="Minimum delay between searches in seconds (default: 2)",
    )
    search_parser.add_argument(
        "--max-delay",
        type=float,
        default=5.0,
        help="Maximum delay between searches in seconds (default: 5)",
    )
    search_parser.add_argument(
        "--screenshots",
        action="store_true",
        help="Save a screenshot of every result page",
    )
    search_parser.add_argument(
        "--headed",
        action="store_true",
        help="Show the browser window (overrides browser.headless)",
    )
    search_parser.add_argument(
        "--export",
        choices=["json"],
        help="Export results to format (json)",
    )
    search_parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )

    # --- enqueue subcommand ---
    enqueue_parser = subparsers.add_parser(
        "enqueue",
        help="Create a job in the local SQLite queue",
    )
    enqueue_parser.add_argument("--model", "-m", action="append", default=[], help="Model name (repeatable)")
    enqueue_parser.add_argument("--input", "-i", help="File with model names (.txt or .csv)")
    enqueue_parser.add_argument(
        "--config",
        default="config/settings.yaml",
        help="Path to settings YAML file (default: config/settings.yaml)",
    )
    enqueue_parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )

    # --- backward compat: top-level flags for work ---
    parser.add_argument("--config", default="config/settings.yaml", help=argparse.SUPPRESS)
    parser.add_argument("--dry-run", action="store_true", help=argparse.SUPPRESS)
    parser.add_argument("--verbose", "-v", action="store_true", help=argparse.SUPPRESS)

    args = parser.parse_args(argv)

    # Default to work when no subcommand given
    if args.command is None:
        args.command = "work"

    return args


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    """Apply command-line overrides on top of the YAML settings."""
    if getattr(args, "headed", False):
        settings.browser.headless = False
    return settings


def collect_models(args: argparse.Namespace) -> list[str]:
    """Merge -m values and the input file, de-duplicated in order."""
    models = list(args.model)
    if args.input:
        file_models = read_models(args.input)
        print(f"Loaded {len(file_models)} model names from {args.input}")
        models.extend(file_models)
    return unique_models(models)


async def dry_run(settings: Settings) -> None:
    """Print what the worker would do without launching a browser."""
    worker_cfg = settings.worker
    rotation = settings.rotation
    print(f"[DRY RUN] Queue backend: {settings.queue.backend}")
    print(f"[DRY RUN] Concurrency {worker_cfg.concurrency}, "
          f"delay {worker_cfg.delay_min_s}-{worker_cfg.delay_max_s}s, "
          f"poll every {worker_cfg.poll_interval_s}s, retries {worker_cfg.max_retries}")
    print(f"[DRY RUN] Browser restart: every {rotation.restart_interval_hours}h, "
          f"after {rotation.restart_after_jobs} jobs, "
          f"every {rotation.restart_every_n_searches} searches")

    queue = create_queue(settings.queue)
    await queue.check_connection()
    job = await queue.fetch_oldest_pending_job()
    if job is None:
        print("[DRY RUN] No pending jobs")
        return
    items = await queue.fetch_pending_items(job.id)
    print(f"[DRY RUN] Next job {job.id}: {len(items)} pending of {job.total_models} models")
    for item in items[:10]:
        print(f"  {item.sequence}. {item.model_name}")
    if len(items) > 10:
        print(f"  ... and {len(items) - 10} more")


async def run_worker(settings: Settings) -> None:
    """Run the queue worker until SIGINT/SIGTERM."""
    queue = create_queue(settings.queue)
    await queue.check_connection()

    async with BrowserSession(settings.browser) as session:
        adapter = GmarketAdapter(session, settings.marketplace)
        worker = JobWorker(settings, queue, session, adapter)

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            # Unsupported on Windows; Ctrl+C then cancels the run instead
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, worker.stop)

        await worker.run()


async def run_search(settings: Settings, models: list[str], args: argparse.Namespace) -> None:
    """Search the given models with a real browser and print the selections."""
    async with BrowserSession(settings.browser) as session:
        adapter = GmarketAdapter(session, settings.marketplace, take_screenshot=args.screenshots)
        results = await run_searches(
            models, adapter, delay_min_s=args.min_delay, delay_max_s=args.max_delay,
        )

    print(f"\n{format_summary(results)}")

    if args.export == "json" and results:
        print(f"\n{export_results_json(results)}")


def cmd_enqueue(settings: Settings, models: list[str]) -> None:
    """Handle enqueue subcommand."""
    if settings.queue.backend != "sqlite":
        msg = "enqueue only supports the local sqlite queue backend"
        raise ValueError(msg)
    queue = SqliteJobQueue.open(settings.queue.path)
    try:
        job = queue.create_job(models)
    finally:
        queue.close()
    print(f"Created job {job.id} with {job.total_models} models in {settings.queue.path}")


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        settings = Settings.from_yaml(args.config)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)
    settings = apply_overrides(settings, args)

    if args.command in ("search", "enqueue"):
        try:
            models = collect_models(args)
        except (FileNotFoundError, ValueError) as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
        if not models:
            print("Error: no model names given (use -m or --input)", file=sys.stderr)
            sys.exit(1)

        if args.command == "search":
            try:
                asyncio.run(run_search(settings, models, args))
            except BrowserLaunchError as e:
                print(f"Error: {e}", file=sys.stderr)
                sys.exit(1)
        else:
            try:
                cmd_enqueue(settings, models)
            except (QueueIOError, ValueError) as e:
                print(f"Error: {e}", file=sys.stderr)
                sys.exit(1)
        return

    # work (default)
    try:
        if args.dry_run:
            asyncio.run(dry_run(settings))
        else:
            asyncio.run(run_worker(settings))
    except (QueueIOError, BrowserLaunchError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print("Interrupted", file=sys.stderr)


if __name__ == "__main__":
    main()
