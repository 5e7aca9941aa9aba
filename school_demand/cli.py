"""CLI entrypoint for the settlement school-places pipeline."""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path

from school_demand.common.config_loader import ConfigBundle, load_all_configs
from school_demand.common.constants import EXIT_HARD_FAIL, EXIT_PARTIAL, EXIT_SUCCESS, STAGES
from school_demand.common.errors import PipelineError
from school_demand.common.logging import build_logger, close_logger, log_event
from school_demand.common.time_utils import generate_run_id, parse_run_date
from school_demand.fetch.runner import run_fetch
from school_demand.pipeline.analyse import run_analysis
from school_demand.pipeline.reports import write_run_summary


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("command", choices=[*STAGES, "all"])
    parser.add_argument("--run-date", default=None)
    parser.add_argument("--run-id", default=None)
    parser.add_argument("--config-dir", default="./config")
    parser.add_argument("--overlay-config-dir", default=None)
    parser.add_argument("--data-dir", default="./data")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARN", "ERROR"])
    parser.add_argument("--outlier-threshold", type=float, default=None)
    parser.add_argument("--refresh", action="store_true", help="re-download datasets even when cached")
    parser.add_argument("--strict", action="store_true", help="exit non-zero when data-quality warnings occur")
    return parser.parse_args(argv)


def execute_stage(
    stage: str,
    bundle: ConfigBundle,
    args: argparse.Namespace,
    data_dir: Path,
    run_id: str,
    run_date: str,
    logger: logging.Logger,
) -> dict:
    if stage == "fetch":
        return run_fetch(bundle, data_dir, run_id, refresh=args.refresh, logger=logger)
    if stage == "analyse":
        return run_analysis(
            bundle,
            data_dir,
            run_id,
            run_date,
            threshold=args.outlier_threshold,
            logger=logger,
        )
    raise ValueError(f"Unknown stage: {stage}")


def run_command(args: argparse.Namespace) -> int:
    run_id = args.run_id or generate_run_id()
    run_date = parse_run_date(args.run_date)
    config_dir = Path(args.config_dir)
    overlay_config_dir = Path(args.overlay_config_dir) if args.overlay_config_dir else None
    data_dir = Path(args.data_dir)

    logger = build_logger(run_id, data_dir=data_dir, level=args.log_level)
    try:
        return _run_stages(args, logger, run_id, run_date, config_dir, overlay_config_dir, data_dir)
    finally:
        close_logger(logger)


def _run_stages(
    args: argparse.Namespace,
    logger: logging.Logger,
    run_id: str,
    run_date: str,
    config_dir: Path,
    overlay_config_dir: Path | None,
    data_dir: Path,
) -> int:
    try:
        bundle = load_all_configs(config_dir, overlay_config_dir=overlay_config_dir)
    except PipelineError as exc:
        log_event(
            logger,
            f"configuration failed: {exc}",
            run_id=run_id,
            stage="config",
            event="STAGE_FAIL",
            status="error",
            error_code=exc.error_code,
        )
        return EXIT_HARD_FAIL

    stages = STAGES if args.command == "all" else (args.command,)
    statuses: dict[str, str] = {}
    warnings: list[str] = []

    for stage in stages:
        log_event(logger, "stage start", run_id=run_id, stage=stage, event="STAGE_START", status="ok")
        started = time.monotonic()
        try:
            result = execute_stage(stage, bundle, args, data_dir, run_id, run_date, logger)
        except PipelineError as exc:
            statuses[stage] = "error"
            log_event(
                logger,
                f"stage failed: {exc}",
                run_id=run_id,
                stage=stage,
                event="STAGE_FAIL",
                status="error",
                error_code=exc.error_code,
            )
            write_run_summary(data_dir, run_id=run_id, run_date=run_date, stages=statuses)
            return EXIT_HARD_FAIL
        except Exception:
            statuses[stage] = "error"
            logger.exception(
                "unexpected failure",
                extra={"run_id": run_id, "stage": stage, "event": "STAGE_FAIL", "status": "error", "error_code": "UNEXPECTED_ERROR"},
            )
            write_run_summary(data_dir, run_id=run_id, run_date=run_date, stages=statuses)
            return EXIT_HARD_FAIL

        statuses[stage] = "ok"
        if stage == "analyse":
            warnings.extend(result["report"]["warnings"])
        log_event(
            logger,
            "stage end",
            run_id=run_id,
            stage=stage,
            event="STAGE_END",
            status="ok",
            duration_ms=int((time.monotonic() - started) * 1000),
        )

    write_run_summary(data_dir, run_id=run_id, run_date=run_date, stages=statuses)
    if warnings and args.strict:
        return EXIT_PARTIAL
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    try:
        return run_command(args)
    except PipelineError:
        return EXIT_HARD_FAIL


if __name__ == "__main__":
    raise SystemExit(main())
