from __future__ import annotations

import pytest
import requests

from expired_listings.common.errors import SkipTraceError
from expired_listings.common.http import HttpRequestError
from expired_listings.common.models import BatchState, ListingRecord, SkipTraceBatch
from expired_listings.enrichment.skip_trace import COLUMN_MAPPING, SkipTraceClient, is_complete, result_location


class FakeTracerfy:
    def __init__(self, *, submit=None, statuses=None, results_text=""):
        self.submit = submit if submit is not None else {"queue_id": 42}
        self.statuses = list(statuses or [])
        self.results_text = results_text
        self.posts: list[dict] = []
        self.status_calls = 0
        self.downloads: list[str] = []

    def post_multipart_json(self, url, **kwargs):
        self.posts.append({"url": url, **kwargs})
        if isinstance(self.submit, Exception):
            raise self.submit
        return self.submit

    def get_json(self, url, **kwargs):
        self.status_calls += 1
        status = self.statuses.pop(0) if self.statuses else {"status": "processing", "pending": True}
        if isinstance(status, Exception):
            raise status
        return status

    def get_text(self, url, **kwargs):
        self.downloads.append(url)
        return self.results_text


class SleepRecorder:
    def __init__(self):
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


LISTINGS = [
    ListingRecord(address="100 Oak St", city="Houston", state="TX", zip="77002"),
    ListingRecord(address="200 Elm St", city="Houston", state="TX", zip="77003"),
]

RESULTS_CSV = (
    "Address,City,First Name,Last Name,Mobile 1,Landline 1,Email 1,Mail Address\n"
    '"100 OAK ST",Houston,Ann,Lee,555-0100,,ann@example.test,"PO Box 1, Houston"\n'
)


def _client(http, sleep=None, attempts=12) -> SkipTraceClient:
    return SkipTraceClient("secret", http, poll_interval_seconds=10, max_poll_attempts=attempts, sleep=sleep or SleepRecorder())


def test_build_payload_has_required_empty_columns():
    payload = _client(FakeTracerfy()).build_payload(LISTINGS)

    lines = payload.splitlines()
    assert lines[0] == "address,city,state,zip,first_name,last_name,mail_address,mail_city,mail_state"
    assert lines[1] == '"100 Oak St","Houston","TX","77002","","","","",""'
    assert len(lines) == 3


def test_submit_batch_posts_multipart_with_all_column_mappings():
    http = FakeTracerfy(submit={"id": "q-7"})

    batch = _client(http).submit_batch(LISTINGS)

    assert batch.queue_id == "q-7"
    assert batch.state is BatchState.SUBMITTED
    post = http.posts[0]
    assert post["url"] == "https://tracerfy.com/v1/api/trace/"
    assert post["headers"] == {"Authorization": "Bearer secret"}
    assert post["data"] == COLUMN_MAPPING
    assert len(post["data"]) == 9
    assert post["files"]["csv_file"][0] == "listings.csv"
    assert "timeout" not in post


def test_submit_batch_raises_on_http_error_or_missing_queue_id():
    with pytest.raises(SkipTraceError):
        _client(FakeTracerfy(submit=HttpRequestError("HTTP status: 401", status_code=401))).submit_batch(LISTINGS)
    with pytest.raises(SkipTraceError):
        _client(FakeTracerfy(submit={"message": "queued"})).submit_batch(LISTINGS)


def test_poll_gives_up_after_exactly_twelve_attempts():
    http = FakeTracerfy()
    sleep = SleepRecorder()
    batch = SkipTraceBatch(queue_id="42")

    assert _client(http, sleep).poll_until_ready(batch) is None

    assert http.status_calls == 12
    assert sleep.calls == [10] * 12
    assert batch.attempts == 12
    assert batch.state is BatchState.TIMED_OUT


def test_poll_tolerates_failed_status_checks():
    http = FakeTracerfy(
        statuses=[
            HttpRequestError("HTTP status: 502", status_code=502),
            {"status": "pending"},
            {"state": "done", "file_url": "https://files.test/out.csv"},
        ]
    )
    batch = SkipTraceBatch(queue_id="42")

    assert _client(http).poll_until_ready(batch) == "https://files.test/out.csv"
    assert batch.attempts == 3
    assert batch.state is BatchState.COMPLETED


def test_poll_tolerates_dropped_connections():
    http = FakeTracerfy(
        statuses=[
            requests.ConnectionError("connection reset by peer"),
            requests.Timeout("read timed out"),
            {"status": "completed", "download_url": "https://files.test/out.csv"},
        ]
    )
    batch = SkipTraceBatch(queue_id="42")

    assert _client(http).poll_until_ready(batch) == "https://files.test/out.csv"
    assert http.status_calls == 3
    assert batch.state is BatchState.COMPLETED


def test_poll_needs_a_result_location_as_well_as_completion():
    http = FakeTracerfy(statuses=[{"status": "completed"}])

    assert _client(http, attempts=2).poll_until_ready(SkipTraceBatch(queue_id="1")) is None
    assert http.status_calls == 2


def test_poll_stops_on_failed_status():
    batch = SkipTraceBatch(queue_id="1")
    http = FakeTracerfy(statuses=[{"status": "failed"}])

    assert _client(http).poll_until_ready(batch) is None
    assert batch.state is BatchState.FAILED
    assert http.status_calls == 1


@pytest.mark.parametrize(
    "payload",
    [
        {"status": "completed"},
        {"status": "Complete"},
        {"state": "done"},
        {"pending": False},
    ],
)
def test_completion_vocabulary(payload):
    assert is_complete(payload)


def test_incomplete_and_result_location_fields():
    assert not is_complete({"pending": True})
    assert not is_complete({})
    assert result_location({"result_url": "a"}) == "a"
    assert result_location({"download_url": "", "url": "b"}) == "b"
    assert result_location({}) is None


def test_download_results_normalises_headers():
    http = FakeTracerfy(results_text=RESULTS_CSV)

    rows = _client(http).download_results("https://files.test/out.csv")

    assert rows[0]["mobile_1"] == "555-0100"
    assert rows[0]["mail_address"] == "PO Box 1, Houston"
    assert http.downloads == ["https://files.test/out.csv"]


def test_enrich_returns_original_listings_when_submit_fails():
    http = FakeTracerfy(submit=HttpRequestError("HTTP status: 500", status_code=500))

    outcome = _client(http).enrich(LISTINGS)

    assert outcome.listings is LISTINGS
    assert all(listing.owner is None for listing in outcome.listings)
    assert outcome.matches == []
    assert outcome.error


def test_enrich_returns_original_listings_on_timeout():
    outcome = _client(FakeTracerfy(), attempts=3).enrich(LISTINGS)

    assert outcome.listings is LISTINGS
    assert outcome.batch.state is BatchState.TIMED_OUT


def test_enrich_attaches_owner_contact_on_match():
    http = FakeTracerfy(
        statuses=[{"status": "completed", "download_url": "https://files.test/out.csv"}],
        results_text=RESULTS_CSV,
    )

    outcome = _client(http).enrich(LISTINGS)

    oak, elm = outcome.listings
    assert oak.owner.name == "Ann Lee"
    assert oak.owner.phone == "555-0100"
    assert oak.owner.email == "ann@example.test"
    assert elm.owner is None
    assert outcome.enriched_count == 1
    assert outcome.batch.state is BatchState.COMPLETED
    assert len(outcome.matches) == 1


def test_enrich_survives_unexpected_errors():
    http = FakeTracerfy(statuses=[{"status": "completed", "download_url": "u"}])
    http.get_text = lambda *_args, **_kwargs: (_ for _ in ()).throw(RuntimeError("socket closed"))

    outcome = _client(http).enrich(LISTINGS)

    assert outcome.listings is LISTINGS
    assert "socket closed" in outcome.error
    assert outcome.batch.state is BatchState.COMPLETED
