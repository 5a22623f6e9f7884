"""Ten-point urgency rubric for expired listings.

Five additive factors, each worth at most 2 points:

1. motivation     - days on market
2. freshness      - whole days since the listing expired
3. repeat_failure - cumulative vs current days on market
4. price_appeal   - list price band
5. conversion     - property age (max 1) plus bedroom fit (max 1)

The breakpoints are fixed; rankings and stored scores depend on them.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal

from expired_listings.common.models import ListingMetrics, ListingRecord
from expired_listings.common.time_utils import as_utc

MIN_SCORE = 0.0
MAX_SCORE = 10.0
UNKNOWN_DAYS_SINCE_EXPIRED = 999
DEFAULT_YEAR_BUILT = 2000


def clamp(value: float, *, minimum: float, maximum: float) -> float:
    return max(minimum, min(maximum, value))


def round_half_up(value: float, places: int = 1) -> float:
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def days_since_expired(expired_at: datetime | None, now: datetime) -> int:
    if expired_at is None:
        return UNKNOWN_DAYS_SINCE_EXPIRED
    return (as_utc(now) - as_utc(expired_at)) // timedelta(days=1)


def motivation_points(dom: int) -> float:
    if dom >= 180:
        return 2.0
    if dom >= 90:
        return 1.5
    if dom >= 45:
        return 1.0
    return 0.5


def freshness_points(days: int) -> float:
    if days <= 3:
        return 2.0
    if days <= 7:
        return 1.5
    if days <= 14:
        return 1.0
    if days <= 30:
        return 0.5
    return 0.0


def repeat_failure_points(cdom: int, dom: int) -> float:
    if cdom > dom * 2:
        return 2.0
    if cdom > dom * 1.5:
        return 1.5
    if cdom > dom:
        return 1.0
    return 0.5


def price_points(price: int) -> float:
    if 0 < price < 150_000:
        return 2.0
    if 150_000 <= price < 250_000:
        return 1.5
    if 250_000 <= price < 400_000:
        return 1.0
    if 400_000 <= price < 600_000:
        return 0.5
    return 0.0


def age_points(age: int) -> float:
    if age <= 15:
        return 1.0
    if age <= 30:
        return 0.5
    return 0.0


def bedroom_points(bedrooms: int) -> float:
    if bedrooms in (3, 4):
        return 1.0
    if bedrooms in (2, 5):
        return 0.5
    return 0.0


def score_metrics(metrics: ListingMetrics, now: datetime) -> tuple[float, dict]:
    dom = metrics.dom or 0
    cdom = metrics.cdom or 0
    price = metrics.price or 0
    bedrooms = metrics.bedrooms or 0
    year_built = metrics.year_built or DEFAULT_YEAR_BUILT
    days = days_since_expired(metrics.expired_at, now)

    factors = {
        "motivation": motivation_points(dom),
        "freshness": freshness_points(days),
        "repeat_failure": repeat_failure_points(cdom, dom),
        "price_appeal": price_points(price),
        "property_age": age_points(as_utc(now).year - year_built),
        "bedroom_fit": bedroom_points(bedrooms),
    }
    raw_score = sum(factors.values())
    score = clamp(round_half_up(raw_score), minimum=MIN_SCORE, maximum=MAX_SCORE)

    explanation = {
        "factors": factors,
        "days_since_expired": days,
        "raw_score": raw_score,
        "score": score,
    }
    return score, explanation


def score_listing(listing: ListingRecord, now: datetime) -> float:
    score, _ = score_metrics(listing.metrics, now)
    return score


def score_listings(listings: list[ListingRecord], now: datetime) -> list[ListingRecord]:
    return [replace(listing, urgency_score=score_listing(listing, now)) for listing in listings]


def rank_listings(listings: list[ListingRecord]) -> list[ListingRecord]:
    # sorted() is stable: equal scores keep file order.
    return sorted(listings, key=lambda listing: listing.score, reverse=True)


def score_breakdown(listing: ListingRecord, now: datetime) -> dict:
    _, explanation = score_metrics(listing.metrics, now)
    return explanation
