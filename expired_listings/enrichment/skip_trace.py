"""Tracerfy batch skip tracing: submit, poll, download, match back."""

from __future__ import annotations

import csv
import io
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable

import requests

from expired_listings.common.errors import SkipTraceError
from expired_listings.common.http import HttpClient, HttpRequestError
from expired_listings.common.logging import default_logger, log_event, log_failure
from expired_listings.common.models import BatchState, ContactRecord, ListingRecord, MatchResult, SkipTraceBatch
from expired_listings.enrichment.matching import match_back
from expired_listings.ingest.csv_table import normalise_header, parse_table

DEFAULT_BASE_URL = "https://tracerfy.com/v1/api"
PAYLOAD_COLUMNS = (
    "address",
    "city",
    "state",
    "zip",
    "first_name",
    "last_name",
    "mail_address",
    "mail_city",
    "mail_state",
)
# Every mapping is sent, including those for empty columns.
COLUMN_MAPPING = {f"{column}_column": column for column in PAYLOAD_COLUMNS}

COMPLETE_STATUSES = {"completed", "complete", "done"}
FAILED_STATUSES = {"failed", "error", "cancelled", "canceled"}
RESULT_URL_FIELDS = ("download_url", "result_url", "file_url", "url")
QUEUE_ID_FIELDS = ("queue_id", "id")


@dataclass
class SkipTraceOutcome:
    listings: list[ListingRecord]
    matches: list[MatchResult] = field(default_factory=list)
    batch: SkipTraceBatch | None = None
    error: str | None = None

    @property
    def enriched_count(self) -> int:
        return sum(1 for listing in self.listings if listing.owner is not None and listing.owner.has_contact)


def _lookup_first(payload: dict, candidates: tuple[str, ...]) -> Any:
    for key in candidates:
        value = payload.get(key)
        if value not in (None, ""):
            return value
    return None


def is_complete(status_payload: dict) -> bool:
    status = status_payload.get("status") or status_payload.get("state")
    if isinstance(status, str) and status.lower() in COMPLETE_STATUSES:
        return True
    return status_payload.get("pending") is False


def is_failed(status_payload: dict) -> bool:
    status = status_payload.get("status") or status_payload.get("state")
    return isinstance(status, str) and status.lower() in FAILED_STATUSES


def result_location(status_payload: dict) -> str | None:
    value = _lookup_first(status_payload, RESULT_URL_FIELDS)
    return str(value) if value is not None else None


class SkipTraceClient:
    def __init__(
        self,
        api_key: str,
        http_client: HttpClient,
        *,
        base_url: str = DEFAULT_BASE_URL,
        poll_interval_seconds: float = 10.0,
        max_poll_attempts: int = 12,
        sleep: Callable[[float], None] = time.sleep,
        logger: logging.Logger | None = None,
    ) -> None:
        self.api_key = api_key
        self.http = http_client
        self.base_url = base_url.rstrip("/")
        self.poll_interval_seconds = poll_interval_seconds
        self.max_poll_attempts = max_poll_attempts
        self.sleep = sleep
        self.logger = logger or default_logger()

    @classmethod
    def from_config(cls, config, http_client: HttpClient, **kwargs: Any) -> "SkipTraceClient":
        return cls(
            config.tracerfy_api_key,
            http_client,
            base_url=config.skip_trace["base_url"],
            poll_interval_seconds=float(config.skip_trace["poll_interval_seconds"]),
            max_poll_attempts=int(config.skip_trace["max_poll_attempts"]),
            **kwargs,
        )

    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    def build_payload(self, listings: list[ListingRecord]) -> str:
        output = io.StringIO()
        writer = csv.writer(output, quoting=csv.QUOTE_ALL, lineterminator="\n")
        output.write(",".join(PAYLOAD_COLUMNS) + "\n")
        for listing in listings:
            writer.writerow([listing.address, listing.city, listing.state, listing.zip, "", "", "", "", ""])
        return output.getvalue()

    def submit_batch(self, listings: list[ListingRecord]) -> SkipTraceBatch:
        payload = self.build_payload(listings)
        try:
            result = self.http.post_multipart_json(
                f"{self.base_url}/trace/",
                source_type="tracerfy",
                files={"csv_file": ("listings.csv", payload.encode("utf-8"), "text/csv")},
                data=dict(COLUMN_MAPPING),
                headers=self._auth_headers(),
            )
        except HttpRequestError as exc:
            raise SkipTraceError(f"Tracerfy submit failed: {exc} {exc.body or ''}".strip()) from exc

        queue_id = _lookup_first(result, QUEUE_ID_FIELDS) if isinstance(result, dict) else None
        if queue_id is None:
            raise SkipTraceError(f"Tracerfy submit returned no queue id: {result!r}")

        batch = SkipTraceBatch(queue_id=str(queue_id), listing_count=len(listings))
        log_event(
            self.logger,
            f"tracerfy batch submitted, queue ID: {batch.queue_id}",
            stage="skip_trace",
            event="BATCH_SUBMITTED",
            status="ok",
            rows_in=len(listings),
        )
        return batch

    def poll_until_ready(self, batch: SkipTraceBatch) -> str | None:
        batch.state = BatchState.POLLING
        while batch.attempts < self.max_poll_attempts:
            self.sleep(self.poll_interval_seconds)
            batch.attempts += 1

            try:
                status_payload = self.http.get_json(
                    f"{self.base_url}/queue/{batch.queue_id}/",
                    source_type="tracerfy",
                    headers=self._auth_headers(),
                )
            except (HttpRequestError, requests.RequestException) as exc:
                log_failure(
                    self.logger,
                    f"tracerfy status check failed: {exc}",
                    stage="skip_trace",
                    event="BATCH_POLL",
                    attempt=batch.attempts,
                    error_code=getattr(exc, "error_code", "NETWORK_ERROR"),
                )
                continue

            if not isinstance(status_payload, dict):
                continue

            log_event(
                self.logger,
                f"tracerfy status response: {status_payload}",
                stage="skip_trace",
                event="BATCH_POLL",
                status="ok",
                attempt=batch.attempts,
            )

            if is_failed(status_payload):
                batch.state = BatchState.FAILED
                return None

            url = result_location(status_payload)
            if is_complete(status_payload) and url:
                batch.state = BatchState.COMPLETED
                batch.result_url = url
                return url

        batch.state = BatchState.TIMED_OUT
        return None

    def download_results(self, url: str) -> list[ContactRecord]:
        try:
            text = self.http.get_text(url, source_type="tracerfy")
        except HttpRequestError as exc:
            raise SkipTraceError(f"Failed to download Tracerfy results: {exc}") from exc
        return parse_table(text, header_transform=normalise_header)

    def enrich(self, listings: list[ListingRecord]) -> SkipTraceOutcome:
        """Best effort: every failure hands back ``listings`` exactly as given."""
        if not listings:
            return SkipTraceOutcome(listings=listings)

        batch: SkipTraceBatch | None = None
        try:
            batch = self.submit_batch(listings)
            url = self.poll_until_ready(batch)
            if url is None:
                log_failure(
                    self.logger,
                    f"tracerfy batch {batch.queue_id} ended {batch.state.value} without a download URL",
                    stage="skip_trace",
                    event="BATCH_UNAVAILABLE",
                    attempt=batch.attempts,
                    error_code="SKIP_TRACE_TIMEOUT" if batch.state is BatchState.TIMED_OUT else "SKIP_TRACE_FAILED",
                )
                return SkipTraceOutcome(listings=listings, batch=batch, error=batch.state.value)

            contacts = self.download_results(url)
            enriched, matches = match_back(listings, contacts)
        except Exception as exc:
            if batch is not None and not batch.state.is_terminal:
                batch.state = BatchState.FAILED
            log_failure(
                self.logger,
                f"tracerfy error: {exc}",
                stage="skip_trace",
                event="BATCH_ERROR",
                error_code=getattr(exc, "error_code", "UNEXPECTED_ERROR"),
            )
            return SkipTraceOutcome(listings=listings, batch=batch, error=str(exc))

        log_event(
            self.logger,
            f"parsed {len(contacts)} tracerfy results, matched {len(matches)} listings",
            stage="skip_trace",
            event="BATCH_MATCHED",
            status="ok",
            rows_in=len(contacts),
            rows_out=len(matches),
        )
        return SkipTraceOutcome(listings=enriched, matches=matches, batch=batch)
