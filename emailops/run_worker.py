"""Email platform job worker - Main Entry Point.

Starts one worker pool per queue (sync, verification, analytics,
maintenance) and the cron scheduler that seeds the recurring jobs, then
runs until SIGINT or SIGTERM, draining in-flight jobs before exiting.

Usage:
    # Run workers and scheduler
    python -m emailops.run_worker

    # Load queue concurrency, retry and schedule overrides from YAML
    python -m emailops.run_worker --config worker.yml

    # Workers only (another process owns the schedules)
    python -m emailops.run_worker --no-scheduler

    # Print the recurring schedules and exit
    python -m emailops.run_worker --list-schedules

Environment Variables:
    ENCRYPTION_KEY: 64 hex characters, key of the credential cipher
    LOG_LEVEL: loguru level (default: INFO)
    LOG_FILE: Optional rotating log file
    WORKER_CONFIG: Default for --config
    SCHEDULER_ENABLED: Set to 'false' to disable the scheduler
    WORKER_POLL_INTERVAL: Seconds an idle worker waits for new jobs (default: 0.5)
"""

import argparse
import signal
import sys
import threading
from pathlib import Path
from typing import Optional

from loguru import logger

from emailops import __version__
from emailops.core.config import WorkerConfig
from emailops.core.constants import ENV_WORKER_CONFIG
from emailops.core.exceptions import ConfigurationError, EmailOpsError
from emailops.jobs.runtime import WorkerRuntime
from shared.utils.env import get_env
from shared.utils.logging import setup_logging


def parse_arguments(argv: Optional[list] = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        Parsed arguments
    """
    parser = argparse.ArgumentParser(
        description="Email platform sync and verification worker",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR"],
        help="Log level (default: LOG_LEVEL or INFO)",
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=get_env(ENV_WORKER_CONFIG),
        help="YAML worker configuration file",
    )

    parser.add_argument(
        "--no-scheduler",
        action="store_true",
        help="Do not register the recurring cron jobs",
    )

    parser.add_argument(
        "--list-schedules",
        action="store_true",
        help="Print the recurring job schedules and exit",
    )

    return parser.parse_args(argv)


def load_config(args: argparse.Namespace) -> WorkerConfig:
    config = WorkerConfig.from_yaml(args.config) if args.config else WorkerConfig.from_env()
    if args.log_level:
        config.log_level = args.log_level
    if args.no_scheduler:
        config.scheduler_enabled = False
    return config


def print_schedules(runtime: WorkerRuntime) -> None:
    runtime.scheduler.register()
    logger.info("Recurring job schedules:")
    for entry in runtime.scheduler.list_scheduled_jobs():
        next_run = entry["next_run"].isoformat() if entry["next_run"] else "-"
        logger.info(f"  [{entry['queue']}] {entry['name']:<24} {entry['pattern']:<14} next: {next_run}")


def main(argv: Optional[list] = None) -> int:
    """Main entry point for the worker.

    Returns:
        Exit code (0 = clean shutdown, non-zero = failure)
    """
    args = parse_arguments(argv)
    setup_logging(level=args.log_level or "INFO")

    try:
        config = load_config(args)
        setup_logging(level=config.log_level, log_file=config.log_file)
        logger.info(f"emailops worker {__version__}")

        runtime = WorkerRuntime(config)

        if args.list_schedules:
            print_schedules(runtime)
            return 0

        stop = threading.Event()

        def handle_signal(signum, _frame):
            logger.warning(f"Received {signal.Signals(signum).name}, draining in-flight jobs...")
            stop.set()

        signal.signal(signal.SIGINT, handle_signal)
        signal.signal(signal.SIGTERM, handle_signal)

        runtime.start()
        logger.info("Worker started, waiting for jobs")
        while not stop.is_set():
            stop.wait(1.0)

        runtime.shutdown()
        return 0

    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 2
    except EmailOpsError as e:
        logger.error(f"Worker error: {e}")
        return 4
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
