"""On-demand trigger: POST / starts a run in the background and acknowledges at once."""

from __future__ import annotations

import logging
from typing import Callable

from fastapi import BackgroundTasks, FastAPI
from fastapi.responses import PlainTextResponse

from expired_listings.common.constants import ACK_MESSAGE, BANNER
from expired_listings.common.logging import default_logger, log_event, log_failure


def _run_safely(run: Callable[[], object], logger: logging.Logger) -> None:
    try:
        run()
    except Exception as exc:
        log_failure(logger, f"manual run failed: {exc}", stage="run", event="RUN_FAIL", error_code=getattr(exc, "error_code", "UNEXPECTED_ERROR"))


def create_app(run: Callable[[], object], *, logger: logging.Logger | None = None) -> FastAPI:
    app = FastAPI(
        title="Expired Listings Worker",
        description="Scores, skip traces and summarises expired MLS listings.",
        version="2.0.0",
    )
    app_logger = logger or default_logger()

    @app.get("/", response_class=PlainTextResponse)
    def banner() -> str:
        return BANNER

    @app.post("/", response_class=PlainTextResponse)
    def trigger(background_tasks: BackgroundTasks) -> str:
        log_event(app_logger, "manual trigger: processing expired listings", stage="run", event="MANUAL_TRIGGER", status="ok")
        background_tasks.add_task(_run_safely, run, app_logger)
        return ACK_MESSAGE

    return app
