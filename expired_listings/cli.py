"""CLI entrypoint for the expired-listings pipeline."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from expired_listings.common.config_loader import load_pipeline_config
from expired_listings.common.constants import COMMANDS, EXIT_HARD_FAIL, EXIT_PARTIAL, EXIT_SUCCESS
from expired_listings.common.errors import PipelineError
from expired_listings.common.ids import generate_run_id
from expired_listings.common.logging import build_logger, close_logger, log_event, log_failure
from expired_listings.pipeline.orchestrator import run_pipeline
from expired_listings.pipeline.reports import write_run_summary


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("command", choices=COMMANDS)
    parser.add_argument("--run-id", default=None)
    parser.add_argument("--config-dir", default="./config")
    parser.add_argument("--overlay-config-dir", default=None)
    parser.add_argument("--data-dir", default="./data")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARN", "ERROR"])
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    return parser.parse_args(argv)


def _load_config(args: argparse.Namespace):
    overlay_config_dir = Path(args.overlay_config_dir) if args.overlay_config_dir else None
    return load_pipeline_config(Path(args.config_dir), overlay_config_dir=overlay_config_dir)


def run_command(args: argparse.Namespace) -> int:
    """Scheduled entry point: one full pipeline run."""
    run_id = args.run_id or generate_run_id()
    data_dir = Path(args.data_dir)
    logger = build_logger(run_id, data_dir=data_dir, level=args.log_level)
    config = _load_config(args)

    log_event(logger, "processing expired listings", run_id=run_id, stage="run", event="RUN_START", status="ok")
    try:
        summary = run_pipeline(config, data_dir, logger=logger, run_id=run_id)
    except PipelineError as exc:
        log_failure(logger, f"run failed: {exc}", run_id=run_id, stage="run", event="RUN_FAIL", error_code=exc.error_code)
        return EXIT_HARD_FAIL
    except Exception as exc:
        log_failure(logger, f"unexpected failure: {exc}", run_id=run_id, stage="run", event="RUN_FAIL", error_code="UNEXPECTED_ERROR")
        return EXIT_HARD_FAIL
    finally:
        close_logger(logger)

    write_run_summary(data_dir, run_id, summary)
    if summary.storage_failures:
        return EXIT_PARTIAL
    return EXIT_SUCCESS


def serve_command(args: argparse.Namespace) -> int:
    import uvicorn

    from expired_listings.server import create_app

    data_dir = Path(args.data_dir)
    config = _load_config(args)
    server_logger = build_logger("server", data_dir=data_dir, level=args.log_level)

    def _manual_run() -> None:
        run_id = generate_run_id()
        logger = build_logger(run_id, data_dir=data_dir, level=args.log_level)
        try:
            summary = run_pipeline(config, data_dir, logger=logger, run_id=run_id)
            write_run_summary(data_dir, run_id, summary)
        finally:
            close_logger(logger)

    try:
        uvicorn.run(create_app(_manual_run, logger=server_logger), host=args.host, port=args.port)
    finally:
        close_logger(server_logger)
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv or sys.argv[1:])
    try:
        if args.command == "serve":
            return serve_command(args)
        return run_command(args)
    except PipelineError:
        return EXIT_HARD_FAIL
    except Exception:
        return EXIT_HARD_FAIL


if __name__ == "__main__":
    raise SystemExit(main())
