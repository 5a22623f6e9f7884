"""Attach skip-trace contact rows back onto listings by address prefix overlap.

The linkage is approximate: a listing takes the FIRST contact row whose
address shares a leading token with it, in either direction. Several
listings can land on the same row ("100 Oak St" and "100 Elm Ave" both
match a row starting with "100"). Every link is reported as
``MatchConfidence.WEAK``.
"""

from __future__ import annotations

from dataclasses import replace

from expired_listings.common.models import ContactRecord, ListingRecord, MatchConfidence, MatchResult, OwnerContact

PHONE_FIELDS = (
    "mobile_1",
    "mobile-1",
    "landline_1",
    "landline-1",
    "phone_1",
    "phone",
    "primary_phone",
)
EMAIL_FIELDS = ("email_1", "email-1", "email")
NAME_FIELDS = ("owner_name", "full_name")
MAILING_FIELDS = ("mail_address", "mailing_address")


def _first_token(value: str) -> str:
    parts = value.split()
    return parts[0] if parts else ""


def _first_present(row: ContactRecord, candidates: tuple[str, ...]) -> str:
    for key in candidates:
        value = (row.get(key) or "").strip()
        if value:
            return value
    return ""


def addresses_overlap(listing_address: str, contact_address: str) -> bool:
    listing_norm = listing_address.lower().strip()
    contact_norm = contact_address.lower().strip()
    if not listing_norm or not contact_norm:
        return False
    return _first_token(listing_norm) in contact_norm or _first_token(contact_norm) in listing_norm


def find_contact(listing: ListingRecord, contacts: list[ContactRecord]) -> int | None:
    for index, row in enumerate(contacts):
        if addresses_overlap(listing.address, row.get("address") or ""):
            return index
    return None


def owner_from_contact(row: ContactRecord) -> OwnerContact:
    name = _first_present(row, NAME_FIELDS)
    if not name:
        name = f"{(row.get('first_name') or '').strip()} {(row.get('last_name') or '').strip()}".strip()
    return OwnerContact(
        name=name,
        phone=_first_present(row, PHONE_FIELDS),
        email=_first_present(row, EMAIL_FIELDS),
        mailing_address=_first_present(row, MAILING_FIELDS),
    )


def match_back(
    listings: list[ListingRecord],
    contacts: list[ContactRecord],
) -> tuple[list[ListingRecord], list[MatchResult]]:
    enriched: list[ListingRecord] = []
    matches: list[MatchResult] = []
    for listing in listings:
        index = find_contact(listing, contacts)
        if index is None:
            enriched.append(listing)
            continue
        enriched.append(replace(listing, owner=owner_from_contact(contacts[index])))
        matches.append(MatchResult(listing_id=listing.listing_id, contact_id=index, confidence=MatchConfidence.WEAK))
    return enriched, matches
