"""
scheduler.py — Daily Fleet Analysis Scheduler.

Re-runs the full fleet analysis once a day under APScheduler (default 07:00
Europe/London). A failed run is retried a few times, then left for the
next trigger.

Usage:
    python scheduler.py                  # Run daemon (blocks)
    python scheduler.py --run-now        # One immediate run, then exit
    python scheduler.py --config custom.yaml

Cron equivalent:
    0 7 * * * cd /path/to/project && python main.py --full-run
"""

import argparse
import logging
import logging.handlers
import signal
import sys
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

import yaml

# APScheduler v3.x
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger


logger = logging.getLogger(__name__)

JOB_ID = "daily_fleet_fuel_analysis"


@dataclass(frozen=True)
class ScheduleSettings:
    """The `scheduler` section of config.yaml."""

    hour: int = 7
    minute: int = 0
    timezone: str = "Europe/London"
    max_retries: int = 3
    retry_delay_seconds: int = 300

    @classmethod
    def from_config(cls, cfg: dict[str, Any]) -> "ScheduleSettings":
        """Build settings from the full config dict.

        Raises:
            ValueError: If `run_time` is not HH:MM or retries are below 1.
        """
        section = cfg.get("scheduler") or {}
        run_time = str(section.get("run_time", "07:00"))
        try:
            hour, minute = (int(part) for part in run_time.split(":"))
        except ValueError:
            raise ValueError(f"scheduler.run_time must be HH:MM, got {run_time!r}") from None
        if not (0 <= hour < 24 and 0 <= minute < 60):
            raise ValueError(f"scheduler.run_time out of range: {run_time!r}")

        settings = cls(
            hour=hour,
            minute=minute,
            timezone=section.get("timezone", cls.timezone),
            max_retries=int(section.get("max_retries", cls.max_retries)),
            retry_delay_seconds=int(section.get("retry_delay_seconds", cls.retry_delay_seconds)),
        )
        if settings.max_retries < 1:
            raise ValueError("scheduler.max_retries must be at least 1")
        return settings

    @property
    def run_time(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"


def _configure_scheduler_logging(log_dir: str) -> None:
    """Dedicated rotating log for the daemon, separate from the pipeline log."""
    Path(log_dir).mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)-8s | %(name)-30s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handlers = [
        logging.handlers.RotatingFileHandler(
            Path(log_dir) / "scheduler.log",
            maxBytes=5 * 1024 * 1024,
            backupCount=14,
            encoding="utf-8",
        ),
        logging.StreamHandler(sys.stdout),
    ]

    root = logging.getLogger()
    root.setLevel(logging.INFO)
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)

    logging.getLogger("apscheduler").setLevel(logging.WARNING)


def build_run_args(config_path: str) -> argparse.Namespace:
    """Namespace equivalent to `main.py --full-run --config <path>`."""
    from main import _parse_args

    return _parse_args(["--full-run", "--config", config_path])


def run_with_retries(config_path: str, max_retries: int, retry_delay: int) -> bool:
    """One scheduled fleet analysis, retried on failure.

    Shares main.run_pipeline() with the CLI so both run identical logic.

    Args:
        config_path: Path to configuration YAML.
        max_retries: Maximum attempts.
        retry_delay: Seconds to wait between attempts.

    Returns:
        True if an attempt succeeded.
    """
    from main import run_pipeline

    logger.info("Scheduled fleet analysis starting at %s", datetime.now().strftime("%Y-%m-%d %H:%M:%S"))
    args = build_run_args(config_path)

    for attempt in range(1, max_retries + 1):
        try:
            exit_code = run_pipeline(args, logger)
        except Exception as exc:
            logger.error("Attempt %d/%d raised: %s", attempt, max_retries, exc, exc_info=True)
        else:
            if exit_code == 0:
                logger.info("Scheduled run succeeded on attempt %d/%d", attempt, max_retries)
                return True
            logger.error("Attempt %d/%d exited with code %d", attempt, max_retries, exit_code)

        if attempt < max_retries:
            logger.info("Retrying in %d seconds...", retry_delay)
            time.sleep(retry_delay)

    logger.error("All %d attempt(s) failed; waiting for the next trigger", max_retries)
    return False


def build_scheduler(config_path: str, settings: ScheduleSettings) -> BlockingScheduler:
    """Blocking scheduler with the daily analysis job registered, not started."""
    scheduler = BlockingScheduler(timezone=settings.timezone)
    scheduler.add_job(
        func=run_with_retries,
        trigger=CronTrigger(
            hour=settings.hour, minute=settings.minute, timezone=settings.timezone
        ),
        kwargs={
            "config_path": config_path,
            "max_retries": settings.max_retries,
            "retry_delay": settings.retry_delay_seconds,
        },
        id=JOB_ID,
        name="Daily Fleet Fuel Anomaly Analysis",
        replace_existing=True,
        misfire_grace_time=600,  # 10 min grace if server was down
    )
    return scheduler


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="scheduler",
        description="Daily APScheduler daemon for the Fuel Anomaly Detector pipeline.",
    )
    parser.add_argument(
        "--config",
        default="config.yaml",
        help="Path to configuration YAML (default: config.yaml)",
    )
    parser.add_argument(
        "--run-now",
        action="store_true",
        help="Execute one pipeline run immediately then exit",
    )
    return parser.parse_args()


def main() -> None:
    """Entry point: configure scheduler and start the blocking daemon."""
    args = _parse_args()

    try:
        with open(args.config, "r") as fh:
            cfg = yaml.safe_load(fh) or {}
        settings = ScheduleSettings.from_config(cfg)
    except FileNotFoundError:
        print(f"ERROR: Configuration file not found: {args.config}", file=sys.stderr)
        sys.exit(1)
    except ValueError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        sys.exit(1)

    _configure_scheduler_logging(cfg.get("paths", {}).get("log_dir", "logs"))

    if args.run_now:
        logger.info("--run-now set; running the fleet analysis once")
        ok = run_with_retries(args.config, settings.max_retries, settings.retry_delay_seconds)
        sys.exit(0 if ok else 1)

    scheduler = build_scheduler(args.config, settings)

    def _handle_shutdown(signum, frame):
        logger.info("Signal %d received, stopping scheduler", signum)
        scheduler.shutdown(wait=False)
        sys.exit(0)

    signal.signal(signal.SIGINT, _handle_shutdown)
    signal.signal(signal.SIGTERM, _handle_shutdown)

    logger.info("Scheduler started: daily run at %s (%s)", settings.run_time, settings.timezone)
    scheduler.start()


if __name__ == "__main__":
    main()
