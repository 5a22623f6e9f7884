"""Result storage and the already-processed file set."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Protocol

from expired_listings.common.errors import StorageError
from expired_listings.common.fs import append_jsonl, read_jsonl
from expired_listings.common.logging import default_logger, log_failure
from expired_listings.common.models import ListingRecord
from expired_listings.common.time_utils import utc_timestamp_iso

NEW_STATUS = "new"


class ResultStore(Protocol):
    def list_processed(self) -> set[str]: ...

    def is_processed(self, filename: str) -> bool: ...

    def store(self, record: dict[str, Any]) -> None: ...


def _nullable(value: str) -> str | None:
    return value or None


def build_storage_record(listing: ListingRecord, *, topic_id: int = 1) -> dict[str, Any]:
    owner = listing.owner
    summary = {
        "csv_filename": listing.source_file,
        "address": listing.address,
        "city": listing.city,
        "zip": listing.zip,
        "price": listing.price,
        "beds": listing.bedrooms,
        "baths": listing.bathrooms,
        "sqft": listing.sqft,
        "dom": listing.days_on_market,
        "cdom": listing.cumulative_days_on_market,
        "previousAgent": listing.listing_agent,
        "ownerName": _nullable(owner.name) if owner else None,
        "ownerPhone": _nullable(owner.phone) if owner else None,
        "ownerEmail": _nullable(owner.email) if owner else None,
        "ownerMailingAddress": _nullable(owner.mailing_address) if owner else None,
        "analysis": listing.analysis.to_dict() if listing.analysis else None,
    }
    return {
        "topic_id": topic_id,
        "title": f"{listing.address}, {listing.city}",
        "summary": summary,
        "relevance_score": listing.urgency_score,
        "status": NEW_STATUS,
        "gathered_at": utc_timestamp_iso(),
    }


class JsonlResultStore:
    """Append-only JSON-lines store; a file counts as processed once any of its rows is stored."""

    def __init__(self, path: Path, *, logger: logging.Logger | None = None) -> None:
        self.path = Path(path)
        self.logger = logger or default_logger()

    def _skip_corrupt_line(self, line_no: int, line: str, exc: ValueError) -> None:
        log_failure(
            self.logger,
            f"skipping unreadable line {line_no} in {self.path}: {exc}",
            stage="store",
            event="STORE_CORRUPT_LINE",
            error_code=StorageError.error_code,
        )

    def list_processed(self) -> set[str]:
        processed = set()
        for row in read_jsonl(self.path, on_invalid=self._skip_corrupt_line):
            if not isinstance(row, dict):
                continue
            summary = row.get("summary")
            filename = summary.get("csv_filename") if isinstance(summary, dict) else None
            if filename:
                processed.add(filename)
        return processed

    def is_processed(self, filename: str) -> bool:
        return filename in self.list_processed()

    def store(self, record: dict[str, Any]) -> None:
        try:
            append_jsonl(self.path, record)
        except (OSError, TypeError, ValueError) as exc:
            raise StorageError(f"Failed to store {record.get('title')}: {exc}") from exc
