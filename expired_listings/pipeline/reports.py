"""Run report aggregation."""

from __future__ import annotations

from pathlib import Path

from expired_listings.common.fs import write_json


def write_run_summary(data_dir: Path, run_id: str, summary) -> Path:
    status = "success"
    if summary.storage_failures:
        status = "partial"
    elif not summary.files_processed:
        status = "no_new_files"

    payload = {
        "run_id": run_id,
        "started_at": summary.started_at,
        "status": status,
        "files_seen": summary.files_seen,
        "files_processed": summary.files_processed,
        "totals": {
            "listings": summary.total_listings,
            "enriched": summary.enriched_count,
            "analyzed": summary.analyzed_count,
            "stored": summary.stored_count,
            "storage_failures": summary.storage_failures,
        },
        "per_file": summary.per_file,
        "notification_status": summary.notification_status,
        "top_listings": [
            {
                "address": listing.address,
                "city": listing.city,
                "score": listing.urgency_score,
                "source_file": listing.source_file,
                "has_contact": bool(listing.owner and listing.owner.has_contact),
            }
            for listing in summary.top_listings
        ],
    }
    path = data_dir / "out" / "reports" / "run_summary.json"
    write_json(path, payload)
    return path
