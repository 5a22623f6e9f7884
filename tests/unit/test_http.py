from __future__ import annotations

import pytest
import requests

from expired_listings.common.http import HttpClient, HttpRequestError, RetryConfig, RetryableHttpError


class FakeResponse:
    def __init__(self, status_code: int, payload=None, raises_json: bool = False, text: str = ""):
        self.status_code = status_code
        self._payload = payload
        self._raises_json = raises_json
        self.text = text

    def json(self):
        if self._raises_json:
            raise ValueError("bad json")
        return self._payload


def test_http_get_json_success(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=1))

    monkeypatch.setattr(client.session, "request", lambda **_kwargs: FakeResponse(200, {"ok": True}))
    payload = client.get_json("https://example.com", source_type="tracerfy")

    assert payload == {"ok": True}


def test_http_retryable_status_raises_retryable_error(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=1))
    monkeypatch.setattr(client.session, "request", lambda **_kwargs: FakeResponse(503, {"x": 1}))

    with pytest.raises(RetryableHttpError):
        client.get_json("https://example.com", source_type="tracerfy")


def test_http_client_error_keeps_status_and_body(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=1))
    monkeypatch.setattr(client.session, "request", lambda **_kwargs: FakeResponse(401, text="bad token"))

    with pytest.raises(HttpRequestError) as excinfo:
        client.post_json("https://example.com", source_type="anthropic", payload={})

    assert excinfo.value.status_code == 401
    assert excinfo.value.body == "bad token"
    assert not isinstance(excinfo.value, RetryableHttpError)


def test_http_retries_retryable_status_until_success(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=3, multiplier=0, max_wait=0))
    responses = [FakeResponse(502), FakeResponse(200, {"ok": True})]
    monkeypatch.setattr(client.session, "request", lambda **_kwargs: responses.pop(0))

    assert client.get_json("https://example.com", source_type="tracerfy") == {"ok": True}
    assert responses == []


def test_http_invalid_json_raises(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=1))
    monkeypatch.setattr(client.session, "request", lambda **_kwargs: FakeResponse(200, raises_json=True))

    with pytest.raises(HttpRequestError):
        client.get_json("https://example.com", source_type="tracerfy")


def test_http_multipart_and_text_requests(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=1))
    seen: list[dict] = []

    def fake_request(**kwargs):
        seen.append(kwargs)
        return FakeResponse(200, {"queue_id": 1}, text="a,b\n1,2\n")

    monkeypatch.setattr(client.session, "request", fake_request)

    client.post_multipart_json(
        "https://example.com/trace/",
        source_type="tracerfy",
        files={"csv_file": ("x.csv", b"a", "text/csv")},
        data={"address_column": "address"},
        headers={"Authorization": "Bearer k"},
    )
    text = client.get_text("https://files.example.com/out.csv", source_type="tracerfy")

    assert seen[0]["method"] == "POST"
    assert seen[0]["files"]["csv_file"][0] == "x.csv"
    assert seen[0]["headers"]["Authorization"] == "Bearer k"
    assert "Content-Type" not in seen[0]["headers"]
    assert text == "a,b\n1,2\n"
    assert "Authorization" not in seen[1]["headers"]


def test_rate_limiters_are_per_source_type():
    client = HttpClient(rate_limits={"anthropic": 1.0})
    assert set(client.limiters) == {"anthropic"}
    client._apply_rate_limit("https://api.example.com/v1", "anthropic")
    client._apply_rate_limit("https://api.example.com/v1", "slack")
    assert set(client.limiters["anthropic"].buckets) == {"api.example.com"}


def test_http_network_errors_are_retried_then_wrapped(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=2, multiplier=0, max_wait=0))
    calls = []

    def fake_request(**kwargs):
        calls.append(kwargs)
        raise requests.ConnectionError("connection reset by peer")

    monkeypatch.setattr(client.session, "request", fake_request)

    with pytest.raises(RetryableHttpError) as excinfo:
        client.get_json("https://example.com/queue/1/", source_type="tracerfy")

    assert len(calls) == 2
    assert isinstance(excinfo.value.__cause__, requests.ConnectionError)


def test_http_network_error_then_success(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=3, multiplier=0, max_wait=0))
    outcomes = [requests.Timeout("read timed out"), FakeResponse(200, {"ok": True})]

    def fake_request(**kwargs):
        outcome = outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    monkeypatch.setattr(client.session, "request", fake_request)

    assert client.get_json("https://example.com", source_type="tracerfy") == {"ok": True}


def test_http_other_request_errors_are_not_retried(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=3, multiplier=0, max_wait=0))
    calls = []

    def fake_request(**kwargs):
        calls.append(kwargs)
        raise requests.exceptions.InvalidURL("bad url")

    monkeypatch.setattr(client.session, "request", fake_request)

    with pytest.raises(HttpRequestError) as excinfo:
        client.get_text("http://", source_type="tracerfy")

    assert not isinstance(excinfo.value, RetryableHttpError)
    assert len(calls) == 1
