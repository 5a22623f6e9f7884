"""Slack summary of the top-ranked listings."""

from __future__ import annotations

import logging

from expired_listings.common.constants import NOT_ANALYZED_ANGLE
from expired_listings.common.errors import NotificationError
from expired_listings.common.http import HttpClient, HttpRequestError
from expired_listings.common.logging import default_logger, log_event
from expired_listings.common.models import ListingRecord

ANGLE_PREVIEW_CHARS = 200


def _contact_line(listing: ListingRecord) -> str:
    owner = listing.owner
    parts = []
    if owner and owner.phone:
        parts.append(f"\U0001F4DE `{owner.phone}`")
    if owner and owner.email:
        parts.append(f"✉️ {owner.email}")
    if not parts:
        return "⚠️ No contact info"
    return " | ".join(parts)


def _angle_preview(angle: str) -> str:
    if len(angle) > ANGLE_PREVIEW_CHARS:
        return f"{angle[:ANGLE_PREVIEW_CHARS]}..."
    return angle


def build_summary_blocks(top_listings: list[ListingRecord], total_count: int, *, report_url: str | None = None) -> list[dict]:
    blocks: list[dict] = [
        {
            "type": "header",
            "text": {"type": "plain_text", "text": "\U0001F3E0 Expired Listings Report", "emoji": True},
        },
        {
            "type": "section",
            "text": {
                "type": "mrkdwn",
                "text": f"*{total_count} listings processed* | Top {len(top_listings)} by urgency score:",
            },
        },
        {"type": "divider"},
    ]

    for rank, listing in enumerate(top_listings, start=1):
        blocks.append(
            {
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": (
                        f"*#{rank} - {listing.address}, {listing.city}*\n"
                        f"Score: *{listing.urgency_score}/10* | ${listing.price} | "
                        f"{listing.bedrooms}bd/{listing.bathrooms}ba\n"
                        f"DOM: {listing.days_on_market} (CDOM: {listing.cumulative_days_on_market})\n"
                        f"{_contact_line(listing)}"
                    ),
                },
            }
        )
        angle = listing.analysis.positioning_angle if listing.analysis else ""
        if angle and angle != NOT_ANALYZED_ANGLE:
            blocks.append(
                {
                    "type": "context",
                    "elements": [{"type": "mrkdwn", "text": f"\U0001F4A1 {_angle_preview(angle)}"}],
                }
            )
        blocks.append({"type": "divider"})

    if report_url:
        blocks.append(
            {
                "type": "actions",
                "elements": [
                    {
                        "type": "button",
                        "text": {"type": "plain_text", "text": "View Full Report", "emoji": True},
                        "url": report_url,
                        "action_id": "view_report",
                    }
                ],
            }
        )
    return blocks


class SlackNotifier:
    def __init__(
        self,
        webhook_url: str | None,
        http_client: HttpClient,
        *,
        report_url: str | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.webhook_url = webhook_url
        self.http = http_client
        self.report_url = report_url
        self.logger = logger or default_logger()

    def send_summary(self, top_listings: list[ListingRecord], total_count: int) -> bool:
        if not self.webhook_url:
            log_event(self.logger, "no Slack webhook configured; summary not sent", stage="notify", status="skipped")
            return False

        blocks = build_summary_blocks(top_listings, total_count, report_url=self.report_url)
        try:
            self.http.post_webhook(self.webhook_url, source_type="slack", payload={"blocks": blocks})
        except HttpRequestError as exc:
            raise NotificationError(f"Slack notification failed: {exc} {exc.body or ''}".strip()) from exc

        log_event(self.logger, "Slack notification sent successfully", stage="notify", status="ok", rows_out=len(top_listings))
        return True
