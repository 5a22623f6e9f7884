"""AI positioning analysis for the highest-ranked listings."""

from __future__ import annotations

import logging
import re
from typing import Any

from expired_listings.common.constants import ANALYSIS_FAILED_ANGLE, NOT_ANALYZED_ANGLE
from expired_listings.common.errors import AnalysisError
from expired_listings.common.http import HttpClient, HttpRequestError
from expired_listings.common.logging import default_logger, log_failure
from expired_listings.common.models import ListingAnalysis, ListingRecord

_ANGLE_RE = re.compile(r"BERNARD'S ANGLE:\s*(.*?)(?=TALKING POINTS:|$)", re.IGNORECASE | re.DOTALL)
_POINTS_RE = re.compile(r"TALKING POINTS:\s*(.*)$", re.IGNORECASE | re.DOTALL)
_NUMBERED_RE = re.compile(r"\d+\.\s*([^\n]+)")

PROMPT_TEMPLATE = """You are analyzing an expired listing for {agent_name}, a CPA and Realtor in {market}.

PROPERTY DETAILS:
- Address: {address}, {city}, {state} {zip}
- Price: ${price}
- Beds/Baths: {bedrooms}/{bathrooms}
- SqFt: {sqft}
- Year Built: {year_built}
- Days on Market: {dom} (Cumulative: {cdom})
- Previous Agent: {agent} at {office}
- Expired: {expired}
{owner_line}
URGENCY SCORE: {score}/10

Provide a brief analysis in this exact format:

WHY IT DIDN'T SELL:
[2-3 specific reasons based on the data - be direct and practical]

BERNARD'S ANGLE:
[How he should position himself vs the previous agent - specific and actionable]

TALKING POINTS:
1. [First key point for initial call]
2. [Second key point]
3. [Third key point]"""


def build_prompt(listing: ListingRecord, *, agent_name: str = "Bernard", market: str = "Houston") -> str:
    owner_line = f"- Owner: {listing.owner.name}\n" if listing.owner and listing.owner.name else ""
    return PROMPT_TEMPLATE.format(
        agent_name=agent_name,
        market=market,
        address=listing.address,
        city=listing.city,
        state=listing.state,
        zip=listing.zip,
        price=listing.price,
        bedrooms=listing.bedrooms,
        bathrooms=listing.bathrooms,
        sqft=listing.sqft,
        year_built=listing.year_built,
        dom=listing.days_on_market,
        cdom=listing.cumulative_days_on_market,
        agent=listing.listing_agent,
        office=listing.listing_office,
        expired=listing.expired_date,
        owner_line=owner_line,
        score=listing.urgency_score,
    )


def parse_analysis(text: str) -> ListingAnalysis:
    angle_match = _ANGLE_RE.search(text)
    points_match = _POINTS_RE.search(text)

    talking_points: list[str] = []
    if points_match:
        talking_points = [point.strip() for point in _NUMBERED_RE.findall(points_match.group(1))]

    return ListingAnalysis(
        positioning_angle=angle_match.group(1).strip() if angle_match else "",
        talking_points=tuple(talking_points),
        full_analysis=text,
    )


def failed_analysis() -> ListingAnalysis:
    return ListingAnalysis(positioning_angle=ANALYSIS_FAILED_ANGLE, status="failed")


def placeholder_analysis() -> ListingAnalysis:
    return ListingAnalysis(positioning_angle=NOT_ANALYZED_ANGLE, status="skipped")


def _message_text(payload: Any) -> str:
    try:
        return payload["content"][0]["text"]
    except (KeyError, IndexError, TypeError) as exc:
        raise AnalysisError("Unexpected analysis response shape") from exc


class AnalysisClient:
    def __init__(
        self,
        api_key: str | None,
        http_client: HttpClient,
        *,
        endpoint: str = "https://api.anthropic.com/v1/messages",
        model: str = "claude-sonnet-4-20250514",
        max_tokens: int = 500,
        anthropic_version: str = "2023-06-01",
        agent_name: str = "Bernard",
        market: str = "Houston",
        logger: logging.Logger | None = None,
    ) -> None:
        self.api_key = api_key
        self.http = http_client
        self.endpoint = endpoint
        self.model = model
        self.max_tokens = max_tokens
        self.anthropic_version = anthropic_version
        self.agent_name = agent_name
        self.market = market
        self.logger = logger or default_logger()

    @classmethod
    def from_config(cls, config, http_client: HttpClient, **kwargs: Any) -> "AnalysisClient":
        analysis = config.analysis
        return cls(
            config.anthropic_api_key,
            http_client,
            endpoint=analysis["endpoint"],
            model=analysis["model"],
            max_tokens=int(analysis["max_tokens"]),
            anthropic_version=str(analysis["anthropic_version"]),
            agent_name=analysis.get("agent_name", "Bernard"),
            market=analysis.get("market", "Houston"),
            **kwargs,
        )

    def request_analysis(self, listing: ListingRecord) -> str:
        if not self.api_key:
            raise AnalysisError("ANTHROPIC_API_KEY is not configured")
        payload = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": [
                {"role": "user", "content": build_prompt(listing, agent_name=self.agent_name, market=self.market)}
            ],
        }
        headers = {"x-api-key": self.api_key, "anthropic-version": self.anthropic_version}
        try:
            response = self.http.post_json(
                self.endpoint,
                source_type="anthropic",
                payload=payload,
                headers=headers,
            )
        except HttpRequestError as exc:
            raise AnalysisError(f"Analysis API error: {exc} {exc.body or ''}".strip()) from exc
        return _message_text(response)

    def analyze(self, listing: ListingRecord) -> ListingAnalysis:
        try:
            return parse_analysis(self.request_analysis(listing))
        except Exception as exc:
            log_failure(
                self.logger,
                f"analysis failed for {listing.address}: {exc}",
                stage="analysis",
                source_file=listing.source_file,
                event="ANALYSIS_FAIL",
                error_code=getattr(exc, "error_code", "UNEXPECTED_ERROR"),
            )
            return failed_analysis()
