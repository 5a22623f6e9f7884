"""Map HAR MLS export rows onto the listing schema."""

from __future__ import annotations

import re
from dataclasses import replace

from expired_listings.common.constants import DEFAULT_STATE
from expired_listings.common.models import ListingMetrics, ListingRecord, RawRecord
from expired_listings.common.time_utils import parse_listing_datetime
from expired_listings.ingest.csv_table import parse_table

ADDRESS_COLUMNS = (
    "Street Number",
    "Street Dir Prefix",
    "Street Name",
    "Street Suffix",
    "Street Dir Suffix",
    "Unit Number",
)

FIELD_COLUMNS = {
    "city": "City/Location",
    "zip": "Zip Code",
    "price": "List Price",
    "original_list_date": "List Date",
    "expired_date": "Last Change Timestamp",
    "days_on_market": "DOM",
    "cumulative_days_on_market": "CDOM",
    "bedrooms": "Bedrooms",
    "bathrooms": "Baths Total",
    "sqft": "Building SqFt",
    "year_built": "Year Built",
    "listing_agent": "List Agent Full Name",
    "listing_office": "List Office Name",
    "mls_number": "MLS Number",
    "property_type": "Property Type",
    "status": "Status",
}

_LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")
_CURRENCY_RE = re.compile(r"[,$]")


def parse_leading_int(value: str | None) -> int | None:
    """Integer prefix of a string ("140000.00" -> 140000); None when there is none."""
    if not value:
        return None
    match = _LEADING_INT_RE.match(value)
    if match is None:
        return None
    return int(match.group(1))


def parse_price(value: str | None) -> int | None:
    if not value:
        return None
    return parse_leading_int(_CURRENCY_RE.sub("", value))


def assemble_address(raw: RawRecord) -> str:
    parts = [(raw.get(column) or "").strip() for column in ADDRESS_COLUMNS]
    return " ".join(part for part in parts if part)


def parse_metrics(listing: ListingRecord) -> ListingMetrics:
    return ListingMetrics(
        dom=parse_leading_int(listing.days_on_market),
        cdom=parse_leading_int(listing.cumulative_days_on_market),
        price=parse_price(listing.price),
        bedrooms=parse_leading_int(listing.bedrooms),
        year_built=parse_leading_int(listing.year_built),
        expired_at=parse_listing_datetime(listing.expired_date),
    )


def normalize_record(raw: RawRecord, *, source_file: str = "", state: str = DEFAULT_STATE) -> ListingRecord | None:
    address = assemble_address(raw)
    if not address:
        return None

    fields = {name: raw.get(column) or "" for name, column in FIELD_COLUMNS.items()}
    listing = ListingRecord(address=address, state=state, source_file=source_file, **fields)
    return replace(listing, metrics=parse_metrics(listing))


def parse_listings(text: str, *, source_file: str = "", state: str = DEFAULT_STATE) -> list[ListingRecord]:
    listings: list[ListingRecord] = []
    for raw in parse_table(text):
        listing = normalize_record(raw, source_file=source_file, state=state)
        if listing is not None:
            listings.append(listing)
    return listings
