"""
scheduler.py — Daily Compliance Sweep.

Runs the full compliance pipeline (analysis, Excel workbook, JSON export)
once a day under APScheduler so the monitoring unit starts each morning
with a fresh workbook. The sweep shares main.run_pipeline() with the CLI.

Settings come from the `scheduler:` section of config.yaml:

    scheduler:
      run_time: "07:00"          # HH:MM, 24-hour clock
      timezone: "Africa/Accra"
      max_retries: 3             # attempts per trigger
      retry_delay_seconds: 300

Usage:
    python scheduler.py                  # Run daemon (blocks)
    python scheduler.py --run-now        # One sweep, exit code reflects result
    python scheduler.py --config custom.yaml
"""

import argparse
import logging
import signal
import sys
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "daily_compliance_sweep"


@dataclass(frozen=True)
class SweepSettings:
    run_hour: int
    run_minute: int
    timezone: str
    max_retries: int
    retry_delay: int


def sweep_settings(cfg: dict[str, Any]) -> SweepSettings:
    """Read and validate the `scheduler` section of a config dict.

    Raises:
        ValueError: If run_time is not HH:MM or the retry settings are
            out of range.
    """
    section = cfg.get("scheduler") or {}
    run_time = str(section.get("run_time", "07:00"))
    try:
        hour_text, minute_text = run_time.split(":")
        run_hour, run_minute = int(hour_text), int(minute_text)
    except ValueError:
        raise ValueError(f"scheduler.run_time must be HH:MM, got {run_time!r}") from None
    if not (0 <= run_hour <= 23 and 0 <= run_minute <= 59):
        raise ValueError(f"scheduler.run_time out of range: {run_time!r}")

    max_retries = int(section.get("max_retries", 3))
    retry_delay = int(section.get("retry_delay_seconds", 300))
    if max_retries < 1:
        raise ValueError("scheduler.max_retries must be at least 1")
    if retry_delay < 0:
        raise ValueError("scheduler.retry_delay_seconds must not be negative")

    return SweepSettings(
        run_hour=run_hour,
        run_minute=run_minute,
        timezone=section.get("timezone", "Africa/Accra"),
        max_retries=max_retries,
        retry_delay=retry_delay,
    )


def run_scheduled_sweep(
    config_path: str,
    max_retries: int,
    retry_delay: int,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """Run the full pipeline, retrying failed attempts.

    A non-zero exit code and an escaped exception both count as a failed
    attempt. After `max_retries` failures the sweep gives up until the next
    trigger.

    Returns:
        True if an attempt succeeded.
    """
    from main import run_pipeline

    args = argparse.Namespace(
        config=config_path,
        input=None,
        log_level="INFO",
        full_run=True,
        analyze=False,
        report=False,
        export_json=False,
    )
    logger.info(
        "Compliance sweep started %s (up to %d attempts)",
        datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        max_retries,
    )

    for attempt in range(1, max_retries + 1):
        try:
            exit_code = run_pipeline(args, logger)
        except Exception as exc:
            logger.error("Sweep attempt %d raised: %s", attempt, exc, exc_info=True)
        else:
            if exit_code == 0:
                logger.info("Compliance sweep succeeded on attempt %d", attempt)
                return True
            logger.error("Sweep attempt %d exited with code %d", attempt, exit_code)

        if attempt < max_retries:
            logger.info("Next attempt in %d seconds", retry_delay)
            sleep(retry_delay)

    logger.error("Compliance sweep gave up after %d attempts", max_retries)
    return False


def build_scheduler(config_path: str, settings: SweepSettings) -> BlockingScheduler:
    """Create a blocking scheduler with the daily sweep job registered."""
    scheduler = BlockingScheduler(timezone=settings.timezone)
    scheduler.add_job(
        func=run_scheduled_sweep,
        trigger=CronTrigger(
            hour=settings.run_hour,
            minute=settings.run_minute,
            timezone=settings.timezone,
        ),
        kwargs={
            "config_path": config_path,
            "max_retries": settings.max_retries,
            "retry_delay": settings.retry_delay,
        },
        id=SWEEP_JOB_ID,
        name="Daily PPA Compliance Sweep",
        replace_existing=True,
        misfire_grace_time=600,
    )
    return scheduler


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="ppa-compliance-scheduler",
        description="Daily compliance sweep daemon for the PPA Compliance Agent.",
    )
    parser.add_argument(
        "--config",
        default="config.yaml",
        metavar="PATH",
        help="Path to configuration YAML (default: config.yaml)",
    )
    parser.add_argument(
        "--run-now",
        action="store_true",
        help="Run one sweep immediately and exit",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    from main import configure_logging
    from ppa_compliance.config import load_config

    args = _parse_args(argv)
    try:
        cfg = load_config(args.config)
        settings = sweep_settings(cfg)
    except (FileNotFoundError, ValueError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        sys.exit(1)

    configure_logging(
        log_dir=cfg.get("paths", {}).get("log_dir", "logs"),
        log_name="scheduler.log",
        max_bytes=5 * 1024 * 1024,
        backup_count=14,
    )
    logging.getLogger("apscheduler").setLevel(logging.WARNING)

    if args.run_now:
        ok = run_scheduled_sweep(args.config, settings.max_retries, settings.retry_delay)
        sys.exit(0 if ok else 1)

    scheduler = build_scheduler(args.config, settings)

    def _handle_shutdown(signum, frame):
        logger.info("Received %s, stopping scheduler", signal.Signals(signum).name)
        scheduler.shutdown(wait=False)
        sys.exit(0)

    signal.signal(signal.SIGINT, _handle_shutdown)
    signal.signal(signal.SIGTERM, _handle_shutdown)

    logger.info(
        "Daily sweep scheduled at %02d:%02d %s",
        settings.run_hour,
        settings.run_minute,
        settings.timezone,
    )
    scheduler.start()


if __name__ == "__main__":
    main()
