"""
main.py — Fuel Anomaly Detector — CLI Entry Point.

Stages:
  1. generate-data   — Generate raw fleet telemetry and write it to CSV
  2. analyze         — Detect, score and summarise every vessel in the fleet
  3. full-run        — Both stages in sequence (what the scheduler runs)

Usage examples:
    python main.py --full-run
    python main.py --generate-data --months 3
    python main.py --analyze --seed 7 --end-date 2024-06-30
    python main.py --full-run --config custom_config.yaml

Environment:
    LOG_LEVEL           Override log verbosity (default: INFO)
"""

import argparse
import logging
import os
import sys
from datetime import date, datetime
from pathlib import Path
from typing import Any

import pandas as pd
import yaml


def _configure_logging(log_dir: str = "logs", level: str = "INFO") -> None:
    """Set up rotating file handler and stream handler for the pipeline.

    Log level is read from the LOG_LEVEL environment variable or the `level`
    parameter.

    Args:
        log_dir: Directory to write log files into.
        level: Default log level string (DEBUG, INFO, WARNING, ERROR).
    """
    import logging.handlers

    effective_level = os.environ.get("LOG_LEVEL", level).upper()
    numeric_level = getattr(logging, effective_level, logging.INFO)

    Path(log_dir).mkdir(parents=True, exist_ok=True)
    log_filename = Path(log_dir) / f"fleet_analysis_{datetime.today():%Y%m%d}.log"

    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)-8s | %(name)-30s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # 10 MB per file, keep 7
    file_handler = logging.handlers.RotatingFileHandler(
        log_filename, maxBytes=10 * 1024 * 1024, backupCount=7, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.addHandler(file_handler)
    root_logger.addHandler(stream_handler)


def _iso_date(value: str) -> date:
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got {value!r}") from None


def _parse_args(argv=None) -> argparse.Namespace:
    """Define and parse command-line arguments.

    Returns:
        Parsed argument namespace.
    """
    parser = argparse.ArgumentParser(
        prog="fuel-anomaly-detector",
        description=(
            "Fuel Anomaly Detector — "
            "fleet fuel-fraud detection and risk scoring pipeline.\n\n"
            "Run --full-run to execute all pipeline stages in sequence."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--config",
        default="config.yaml",
        metavar="PATH",
        help="Path to configuration YAML file (default: config.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity level (default: INFO)",
    )

    window = parser.add_argument_group("Observation Window")
    window.add_argument(
        "--months",
        type=int,
        default=None,
        help="Window length in months (default: generation.months)",
    )
    window.add_argument(
        "--end-date",
        type=_iso_date,
        default=None,
        metavar="YYYY-MM-DD",
        help="Last day of the window (default: today)",
    )
    window.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Base random seed (default: generation.seed)",
    )

    stages = parser.add_argument_group("Pipeline Stages")
    stages.add_argument(
        "--generate-data",
        action="store_true",
        help="Generate raw fleet telemetry and write it to CSV",
    )
    stages.add_argument(
        "--analyze",
        action="store_true",
        help="Run detection, scoring and period summaries for the fleet",
    )
    stages.add_argument(
        "--full-run",
        action="store_true",
        help="Execute all pipeline stages: generate → analyze",
    )

    return parser.parse_args(argv)


def _stage_generate(cfg: dict[str, Any], args: argparse.Namespace, logger: logging.Logger) -> Path:
    """Write every vessel's raw telemetry to `paths.raw_data`."""
    from fuel_anomaly.data_generator import telemetry_to_frame
    from fuel_anomaly.pipeline import generate_fleet_telemetry

    fleet_days = generate_fleet_telemetry(
        cfg, months=args.months, seed=args.seed, end_date=args.end_date
    )
    if not fleet_days:
        raise RuntimeError("No vessel produced telemetry; check the fleet section of the config")

    frame = pd.concat(
        [telemetry_to_frame(days) for days in fleet_days.values()],
        ignore_index=True,
    )
    output_path = Path(cfg["paths"]["raw_data"])
    output_path.parent.mkdir(parents=True, exist_ok=True)
    frame.to_csv(output_path, index=False)
    logger.info(
        "Telemetry written to %s — %d rows for %d vessels",
        output_path,
        len(frame),
        len(fleet_days),
    )
    return output_path


def _stage_analyze(cfg: dict[str, Any], args: argparse.Namespace, logger: logging.Logger):
    """Analyse the fleet and write the per-vessel summary CSV."""
    from fuel_anomaly.pipeline import analyze_fleet, fleet_summary_frame

    fleet = analyze_fleet(
        args.config, months=args.months, seed=args.seed, end_date=args.end_date
    )
    if not fleet.results:
        raise RuntimeError(f"Every vessel failed: {fleet.failures}")

    output_dir = Path(cfg["paths"]["output_dir"])
    output_dir.mkdir(parents=True, exist_ok=True)
    output_path = output_dir / cfg["paths"]["summary_filename"].format(
        date=f"{datetime.today():%Y-%m-%d}"
    )
    fleet_summary_frame(fleet).to_csv(output_path, index=False)
    logger.info("Fleet summary written to %s", output_path)
    return fleet


def _log_fleet_results(fleet, logger: logging.Logger) -> None:
    for vessel_id, result in fleet.results.items():
        summary = result.summary
        logger.info(
            "  %-12s risk %.1f (%s) | excess %.1f MT | priority %-9s | impact $%.0f",
            vessel_id,
            summary.avg_risk_score,
            summary.overall_risk_level.label,
            summary.total_excess_fuel,
            summary.investigation_priority.level,
            result.financial_impact.total_impact,
        )
    for vessel_id, reason in fleet.failures.items():
        logger.warning("  %-12s FAILED: %s", vessel_id, reason)


def run_pipeline(
    args: argparse.Namespace,
    logger: logging.Logger,
) -> int:
    """Execute the requested pipeline stages and return an exit code.

    Args:
        args: Parsed CLI arguments.
        logger: Configured logger.

    Returns:
        0 on success, 1 on any unhandled error.
    """
    from fuel_anomaly.data_generator import load_config
    from fuel_anomaly.exceptions import InvalidParameterError

    try:
        cfg = load_config(args.config)
    except (FileNotFoundError, yaml.YAMLError) as exc:
        logger.error("Cannot load configuration: %s", exc)
        return 1

    stages = []
    if args.full_run or args.generate_data:
        stages.append(("Telemetry Generation", _stage_generate))
    if args.full_run or args.analyze:
        stages.append(("Fleet Analysis", _stage_analyze))

    fleet = None
    for number, (title, stage) in enumerate(stages, start=1):
        logger.info("=" * 60)
        logger.info("STAGE %d: %s", number, title)
        logger.info("=" * 60)
        try:
            result = stage(cfg, args, logger)
        except InvalidParameterError as exc:
            logger.error("%s: invalid parameters: %s", title, exc)
            return 1
        except Exception as exc:
            logger.error("%s failed: %s", title, exc, exc_info=True)
            return 1
        if stage is _stage_analyze:
            fleet = result

    logger.info("=" * 60)
    logger.info("PIPELINE COMPLETE")
    if fleet is not None:
        _log_fleet_results(fleet, logger)
    logger.info("=" * 60)
    return 0


def main() -> None:
    """Parse arguments, configure logging, and run the pipeline."""
    args = _parse_args()

    # Config is read early only for the log directory
    try:
        with open(args.config, "r") as fh:
            cfg = yaml.safe_load(fh)
        log_dir = cfg.get("paths", {}).get("log_dir", "logs")
    except (OSError, yaml.YAMLError, AttributeError):
        log_dir = "logs"

    _configure_logging(log_dir=log_dir, level=args.log_level)
    logger = logging.getLogger(__name__)

    if not any([args.full_run, args.generate_data, args.analyze]):
        logger.error("No pipeline stage selected. Use --help to list stages.")
        sys.exit(2)

    logger.info("Fuel Anomaly Detector v1.0 | config %s | log level %s", args.config, args.log_level)
    sys.exit(run_pipeline(args, logger))


if __name__ == "__main__":
    main()
