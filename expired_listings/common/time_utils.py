"""UTC-focused helpers for run metadata and listing dates."""

from __future__ import annotations

from datetime import datetime, timezone

_US_DATE_FORMATS = (
    "%m/%d/%Y %I:%M:%S %p",
    "%m/%d/%Y %I:%M %p",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y",
    "%m/%d/%y",
)


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def utc_timestamp_iso() -> str:
    return utc_now().isoformat(timespec="milliseconds")


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_listing_datetime(value: str | None) -> datetime | None:
    """Parse an MLS timestamp (ISO 8601 or US month-first); naive values are UTC."""
    if value is None:
        return None
    cleaned = value.strip()
    if not cleaned:
        return None

    iso_candidate = cleaned[:-1] + "+00:00" if cleaned.endswith("Z") else cleaned
    try:
        return as_utc(datetime.fromisoformat(iso_candidate))
    except ValueError:
        pass

    for fmt in _US_DATE_FORMATS:
        try:
            return as_utc(datetime.strptime(cleaned, fmt))
        except ValueError:
            continue
    return None
