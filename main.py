"""
main.py — PPA Procurement Compliance Agent — CLI Entry Point.

Provides a command-line interface to run any combination of pipeline stages:
  1. analyze       — Run the compliance analysis engine over procurement data
  2. report        — Generate the Excel compliance workbook
  3. export-json   — Write the analysis and supplier profiles as JSON
  4. full-run      — Execute all stages in sequence (default for scheduler)

Usage examples:
    python main.py --full-run
    python main.py --analyze --input data/procurements.json
    python main.py --report --config custom_config.yaml

Environment:
    LOG_LEVEL           Override log verbosity (default: INFO)
"""

import argparse
import logging
import logging.handlers
import os
import sys
from datetime import datetime
from pathlib import Path

import yaml


def configure_logging(
    log_dir: str = "logs",
    level: str = "INFO",
    log_name: str | None = None,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 7,
) -> Path:
    """Set up rotating file handler and stream handler for the process.

    Writes to `log_name` in `log_dir` (a dated analysis log by default) and
    mirrors output to stdout. The LOG_LEVEL environment variable takes
    precedence over `level`.

    Args:
        log_dir: Directory to write log files into.
        level: Default log level string (DEBUG, INFO, WARNING, ERROR).
        log_name: File name inside `log_dir`.
        max_bytes: Rotation size of the log file.
        backup_count: Rotated files to keep.

    Returns:
        Path of the log file.
    """
    effective_level = os.environ.get("LOG_LEVEL", level).upper()
    numeric_level = getattr(logging, effective_level, logging.INFO)

    Path(log_dir).mkdir(parents=True, exist_ok=True)
    log_name = log_name or f"analysis_{datetime.today().strftime('%Y%m%d')}.log"
    log_path = Path(log_dir) / log_name

    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)-8s | %(name)-30s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    file_handler = logging.handlers.RotatingFileHandler(
        log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.addHandler(file_handler)
    root_logger.addHandler(stream_handler)
    return log_path


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="ppa-compliance-agent",
        description=(
            "PPA Procurement Compliance Agent — rule-based compliance, conflict "
            "and duplicate analysis for state-owned enterprise procurement.\n\n"
            "Run --full-run to execute all pipeline stages in sequence."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --full-run
  python main.py --analyze --input data/procurements.json
  python main.py --report --export-json --log-level DEBUG
        """,
    )

    parser.add_argument(
        "--config",
        default="config.yaml",
        metavar="PATH",
        help="Path to configuration YAML file (default: config.yaml)",
    )
    parser.add_argument(
        "--input",
        default=None,
        metavar="PATH",
        help="Procurement CSV or JSON file (default: paths.input_data from config)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity level (default: INFO)",
    )

    stages = parser.add_argument_group("Pipeline Stages")
    stages.add_argument(
        "--analyze",
        action="store_true",
        help="Run the compliance analysis engine",
    )
    stages.add_argument(
        "--report",
        action="store_true",
        help="Generate Excel workbook with findings and supplier risk",
    )
    stages.add_argument(
        "--export-json",
        action="store_true",
        help="Write the analysis and supplier profiles as JSON",
    )
    stages.add_argument(
        "--full-run",
        action="store_true",
        help="Execute all pipeline stages: analyze → report → export-json",
    )

    return parser.parse_args(argv)


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
    from ppa_compliance.config import load_config
    from ppa_compliance.engine import run_analysis
    from ppa_compliance.exceptions import ProcurementDataError
    from ppa_compliance.reporter import export_analysis_json, generate_report

    do_all = args.full_run

    # -------------------------------------------------------------------------
    # Stage 1: Analysis (required by every other stage)
    # -------------------------------------------------------------------------
    logger.info("=" * 60)
    logger.info("STAGE 1: Compliance Analysis")
    logger.info("=" * 60)
    try:
        analysis, profiles, summary = run_analysis(args.config, args.input)
    except FileNotFoundError as exc:
        logger.error(
            "Input not found. Check --input or paths.input_data in the config.\n%s",
            exc,
        )
        return 1
    except ProcurementDataError as exc:
        logger.error("Procurement data failed validation: %s", exc)
        return 1
    except Exception as exc:
        logger.error("Analysis failed: %s", exc, exc_info=True)
        return 1

    if analysis.issues_identified == 0:
        logger.info("No findings — all procurements are within thresholds.")

    # -------------------------------------------------------------------------
    # Stage 2: Excel Report
    # -------------------------------------------------------------------------
    if do_all or args.report:
        logger.info("=" * 60)
        logger.info("STAGE 2: Excel Report Generation")
        logger.info("=" * 60)
        try:
            report_path = generate_report(analysis, profiles, summary, args.config)
            logger.info("Report generated: %s", report_path)
        except Exception as exc:
            logger.error("Report generation failed: %s", exc, exc_info=True)
            return 1

    # -------------------------------------------------------------------------
    # Stage 3: JSON Export
    # -------------------------------------------------------------------------
    if do_all or args.export_json:
        logger.info("=" * 60)
        logger.info("STAGE 3: JSON Export")
        logger.info("=" * 60)
        try:
            paths = load_config(args.config)["paths"]
            run_date = datetime.today().strftime("%Y-%m-%d")
            json_path = Path(paths["output_dir"]) / paths["json_filename"].format(
                date=run_date
            )
            export_analysis_json(analysis, profiles, json_path)
        except Exception as exc:
            logger.error("JSON export failed: %s", exc, exc_info=True)
            return 1

    # -------------------------------------------------------------------------
    # Final summary
    # -------------------------------------------------------------------------
    logger.info("=" * 60)
    logger.info("PIPELINE COMPLETE")
    logger.info("  %-35s %s", "Analysis:", summary["analysis_id"])
    logger.info("  %-35s %s", "Overall risk level:", summary["risk_level"])
    logger.info("  %-35s %.2f", "Confidence:", summary["confidence"])
    logger.info("  %-35s %d", "Records analysed:", summary["total_records_analysed"])
    logger.info("  %-35s %d", "Findings:", summary["total_findings"])
    logger.info("  %-35s %d", "Recommendations:", summary["total_recommendations"])
    logger.info(
        "  %-35s %s %.2f",
        "Flagged exposure:",
        summary["currency"],
        summary["headline_exposure"],
    )
    sev = summary["severity_breakdown"]
    logger.info(
        "  Severity breakdown: Critical=%d | High=%d | Medium=%d | Low=%d",
        sev["CRITICAL"],
        sev["HIGH"],
        sev["MEDIUM"],
        sev["LOW"],
    )
    logger.info("=" * 60)
    return 0


def main(argv: list[str] | None = None) -> None:
    """Parse arguments, configure logging, and run the pipeline."""
    args = _parse_args(argv)

    try:
        with open(args.config, "r") as fh:
            cfg = yaml.safe_load(fh) or {}
        log_dir = cfg.get("paths", {}).get("log_dir", "logs")
    except (OSError, yaml.YAMLError):
        log_dir = "logs"

    configure_logging(log_dir=log_dir, level=args.log_level)
    logger = logging.getLogger(__name__)

    if not any([args.full_run, args.analyze, args.report, args.export_json]):
        _parse_args(["--help"])

    logger.info(
        "PPA Procurement Compliance Agent v1.0 | %s",
        datetime.today().strftime("%Y-%m-%d %H:%M:%S"),
    )
    logger.info("Config: %s | Log level: %s", args.config, args.log_level)

    sys.exit(run_pipeline(args, logger))


if __name__ == "__main__":
    main()
