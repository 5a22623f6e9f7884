"""Expired-listings run: ingest, score, skip trace, analyse, store, notify."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import Callable, Protocol

from expired_listings.common.constants import DEFAULT_STATE
from expired_listings.common.errors import StorageError
from expired_listings.common.http import HttpClient
from expired_listings.common.logging import default_logger, log_event, log_failure
from expired_listings.common.models import ListingAnalysis, ListingRecord
from expired_listings.common.time_utils import utc_now
from expired_listings.enrichment.analysis import AnalysisClient, placeholder_analysis
from expired_listings.enrichment.skip_trace import SkipTraceClient
from expired_listings.ingest.normalize import parse_listings
from expired_listings.ingest.sources import DirectoryListingSource, ListingSource
from expired_listings.pipeline.notify import SlackNotifier
from expired_listings.pipeline.scoring import rank_listings, score_listings
from expired_listings.pipeline.storage import JsonlResultStore, ResultStore, build_storage_record


class Analyzer(Protocol):
    def analyze(self, listing: ListingRecord) -> ListingAnalysis: ...


class Notifier(Protocol):
    def send_summary(self, top_listings: list[ListingRecord], total_count: int) -> bool: ...


class Enricher(Protocol):
    def enrich(self, listings: list[ListingRecord]): ...


@dataclass(frozen=True)
class RunSettings:
    state: str = DEFAULT_STATE
    deep_analysis_limit: int = 20
    min_delay_seconds: float = 1.0
    top_n: int = 10
    topic_id: int = 1


@dataclass
class RunSummary:
    started_at: str
    files_seen: list[str] = field(default_factory=list)
    files_processed: list[str] = field(default_factory=list)
    total_listings: int = 0
    enriched_count: int = 0
    analyzed_count: int = 0
    stored_count: int = 0
    storage_failures: int = 0
    per_file: dict[str, dict] = field(default_factory=dict)
    top_listings: list[ListingRecord] = field(default_factory=list)
    notification_status: str = "not_sent"


def select_unprocessed(candidates: list[str], processed: set[str]) -> list[str]:
    return [name for name in candidates if name.endswith(".csv") and name not in processed]


class PipelineRunner:
    def __init__(
        self,
        source: ListingSource,
        store: ResultStore,
        *,
        analyzer: Analyzer,
        notifier: Notifier,
        skip_tracer: Enricher | None = None,
        settings: RunSettings | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = utc_now,
        logger: logging.Logger | None = None,
        run_id: str | None = None,
    ) -> None:
        self.source = source
        self.store = store
        self.analyzer = analyzer
        self.notifier = notifier
        self.skip_tracer = skip_tracer
        self.settings = settings or RunSettings()
        self.sleep = sleep
        self.clock = clock
        self.logger = logger or default_logger()
        self.run_id = run_id

    def _log(self, message: str, **fields) -> None:
        log_event(self.logger, message, run_id=self.run_id, **fields)

    def _store_all(self, listings: list[ListingRecord], summary: RunSummary) -> int:
        failures = 0
        for listing in listings:
            try:
                self.store.store(build_storage_record(listing, topic_id=self.settings.topic_id))
            except StorageError as exc:
                failures += 1
                log_failure(
                    self.logger,
                    f"database insert error: {exc}",
                    run_id=self.run_id,
                    stage="store",
                    source_file=listing.source_file,
                    event="STORE_FAIL",
                    error_code=exc.error_code,
                )
                continue
            summary.stored_count += 1
        summary.storage_failures += failures
        return failures

    def _analyze_ranked(self, ranked: list[ListingRecord], source_file: str) -> tuple[list[ListingRecord], int]:
        limit = self.settings.deep_analysis_limit
        deep, remainder = ranked[:limit], ranked[limit:]
        analyzed: list[ListingRecord] = []
        for index, listing in enumerate(deep, start=1):
            self._log(
                f"analyzing {index}/{len(deep)}: {listing.address}",
                stage="analysis",
                source_file=source_file,
                event="ANALYSIS_START",
                status="ok",
            )
            analyzed.append(replace(listing, analysis=self.analyzer.analyze(listing)))
            # Upstream rate limit: at least this long between analysis calls.
            self.sleep(self.settings.min_delay_seconds)

        placeholder = placeholder_analysis()
        analyzed.extend(replace(listing, analysis=placeholder) for listing in remainder)
        succeeded = sum(1 for listing in analyzed[: len(deep)] if listing.analysis.status == "analyzed")
        return analyzed, succeeded

    def process_file(self, key: str, now: datetime, summary: RunSummary) -> list[ListingRecord] | None:
        text = self.source.read_text(key)
        if text is None:
            self._log(f"file vanished before read: {key}", stage="ingest", source_file=key, event="FILE_MISSING", status="skipped")
            return None

        listings = parse_listings(text, source_file=key, state=self.settings.state)
        self._log(
            f"parsed {len(listings)} listings from {key}",
            stage="ingest",
            source_file=key,
            event="FILE_PARSED",
            status="ok",
            rows_out=len(listings),
        )

        scored = score_listings(listings, now)

        enriched_count = 0
        batch = None
        if self.skip_tracer is not None:
            self._log("starting tracerfy skip tracing", stage="skip_trace", source_file=key, event="SKIP_TRACE_START", status="ok")
            outcome = self.skip_tracer.enrich(scored)
            scored = outcome.listings
            enriched_count = outcome.enriched_count
            batch = outcome.batch
            self._log(
                f"enriched {enriched_count} listings with contact info",
                stage="skip_trace",
                source_file=key,
                event="SKIP_TRACE_END",
                status="ok" if outcome.error is None else "degraded",
                rows_out=enriched_count,
            )

        ranked = rank_listings(scored)
        analyzed, analyzed_count = self._analyze_ranked(ranked, key)
        failures = self._store_all(analyzed, summary)

        summary.total_listings += len(listings)
        summary.enriched_count += enriched_count
        summary.analyzed_count += analyzed_count
        summary.per_file[key] = {
            "listings": len(listings),
            "enriched": enriched_count,
            "analyzed": analyzed_count,
            "storage_failures": failures,
        }
        if batch is not None:
            summary.per_file[key]["skip_trace"] = batch.to_dict()
        return analyzed

    def notify(self, all_listings: list[ListingRecord], summary: RunSummary) -> None:
        top = rank_listings(all_listings)[: self.settings.top_n]
        summary.top_listings = top
        self._log(f"sending Slack summary for {summary.total_listings} listings", stage="notify", event="NOTIFY_START", status="ok")
        try:
            sent = self.notifier.send_summary(top, summary.total_listings)
        except Exception as exc:
            summary.notification_status = "error"
            log_failure(
                self.logger,
                f"Slack send failed: {exc}",
                run_id=self.run_id,
                stage="notify",
                event="NOTIFY_FAIL",
                error_code=getattr(exc, "error_code", "UNEXPECTED_ERROR"),
            )
            return
        summary.notification_status = "sent" if sent else "skipped"

    def run(self) -> RunSummary:
        now = self.clock()
        summary = RunSummary(started_at=now.isoformat())

        candidates = [key for key in self.source.list_files() if key.endswith(".csv")]
        summary.files_seen = candidates
        self._log(f"found {len(candidates)} CSV files", stage="discover", event="FILES_FOUND", status="ok", rows_out=len(candidates))
        if not candidates:
            return summary

        processed = self.store.list_processed()
        new_files = select_unprocessed(candidates, processed)
        self._log(
            f"new files to process: {len(new_files)} (already processed: {len(processed)})",
            stage="discover",
            event="FILES_SELECTED",
            status="ok",
            rows_in=len(candidates),
            rows_out=len(new_files),
        )
        if not new_files:
            return summary

        all_listings: list[ListingRecord] = []
        for key in new_files:
            self._log(f"processing file: {key}", stage="ingest", source_file=key, event="FILE_START", status="ok")
            results = self.process_file(key, now, summary)
            if results is None:
                continue
            summary.files_processed.append(key)
            all_listings.extend(results)

        self.notify(all_listings, summary)
        self._log(
            f"processing complete. {summary.total_listings} listings analyzed.",
            stage="run",
            event="RUN_END",
            status="ok",
            rows_out=summary.total_listings,
        )
        return summary


def build_runner(
    config,
    data_dir: Path,
    http_client: HttpClient,
    *,
    logger: logging.Logger | None = None,
    run_id: str | None = None,
) -> PipelineRunner:
    source = DirectoryListingSource(Path(config.input["root"]), prefix=config.input["prefix"])
    store = JsonlResultStore(data_dir / config.storage["results_path"], logger=logger)
    skip_tracer = None
    if config.skip_trace_enabled:
        skip_tracer = SkipTraceClient.from_config(config, http_client, logger=logger)
    return PipelineRunner(
        source,
        store,
        analyzer=AnalysisClient.from_config(config, http_client, logger=logger),
        notifier=SlackNotifier(
            config.slack_webhook_url,
            http_client,
            report_url=config.notification.get("report_url"),
            logger=logger,
        ),
        skip_tracer=skip_tracer,
        settings=RunSettings(
            state=config.input["state"],
            deep_analysis_limit=int(config.analysis["deep_analysis_limit"]),
            min_delay_seconds=float(config.analysis["min_delay_seconds"]),
            top_n=int(config.notification["top_n"]),
            topic_id=int(config.storage["topic_id"]),
        ),
        logger=logger,
        run_id=run_id,
    )


def run_pipeline(config, data_dir: Path, *, logger: logging.Logger | None = None, run_id: str | None = None) -> RunSummary:
    with config.build_http_client() as http_client:
        runner = build_runner(config, data_dir, http_client, logger=logger, run_id=run_id)
        return runner.run()
