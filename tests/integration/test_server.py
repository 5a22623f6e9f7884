import json
import logging
from pathlib import Path

import pytest
import uvicorn
from fastapi.testclient import TestClient

from expired_listings import cli
from expired_listings.common.constants import ACK_MESSAGE, EXIT_SUCCESS
from expired_listings.pipeline.orchestrator import RunSummary
from expired_listings.server import create_app

REPO_CONFIG = Path(__file__).resolve().parents[2] / "config"


@pytest.mark.integration
def test_post_acknowledges_and_runs_in_background():
    runs: list[int] = []
    client = TestClient(create_app(lambda: runs.append(1)))

    resp = client.post("/")

    assert resp.status_code == 200
    assert resp.text == ACK_MESSAGE
    assert runs == [1]


@pytest.mark.integration
def test_background_failure_does_not_break_the_trigger():
    def boom():
        raise RuntimeError("bucket unavailable")

    client = TestClient(create_app(boom))

    resp = client.post("/")

    assert resp.status_code == 200
    assert resp.text == ACK_MESSAGE


@pytest.mark.integration
def test_get_returns_banner_without_running():
    runs: list[int] = []
    client = TestClient(create_app(lambda: runs.append(1)))

    resp = client.get("/")

    assert resp.status_code == 200
    assert "POST to trigger processing." in resp.text
    assert runs == []


def _open_file_handlers(prefix: str) -> list[logging.FileHandler]:
    handlers = []
    for name, logger in logging.Logger.manager.loggerDict.items():
        if name.startswith(prefix) and isinstance(logger, logging.Logger):
            handlers.extend(h for h in logger.handlers if isinstance(h, logging.FileHandler))
    return handlers


@pytest.mark.integration
def test_serve_closes_run_logs_and_writes_server_log(tmp_path: Path, monkeypatch):
    captured = {}
    runs: list[str] = []

    def fake_uvicorn_run(app, **kwargs):
        captured["kwargs"] = kwargs
        client = TestClient(app)
        for _ in range(3):
            assert client.post("/").status_code == 200
        captured["open_run_handlers"] = [h for run_id in runs for h in _open_file_handlers(f"expired_listings.{run_id}")]

    def fake_run_pipeline(config, data_dir, *, logger, run_id):
        runs.append(run_id)
        return RunSummary(started_at="2026-10-17T12:00:00+00:00")

    monkeypatch.setattr(uvicorn, "run", fake_uvicorn_run)
    monkeypatch.setattr(cli, "run_pipeline", fake_run_pipeline)
    data_dir = tmp_path / "data"
    args = cli.parse_args(["serve", "--config-dir", str(REPO_CONFIG), "--data-dir", str(data_dir), "--port", "9001"])

    assert cli.serve_command(args) == EXIT_SUCCESS

    assert len(runs) == 3
    assert captured["kwargs"] == {"host": "0.0.0.0", "port": 9001}
    assert captured["open_run_handlers"] == []
    assert _open_file_handlers("expired_listings.server") == []
    server_log = (data_dir / "run_meta" / "server.log.jsonl").read_text(encoding="utf-8").splitlines()
    events = [json.loads(line)["event"] for line in server_log]
    assert events.count("MANUAL_TRIGGER") == 3
    assert (data_dir / "out" / "reports" / "run_summary.json").exists()
