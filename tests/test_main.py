from __future__ import annotations

import json
from datetime import UTC, datetime
from types import SimpleNamespace

import pytest

import main
from sync.pipeline import RunReport, RunState
from utils.errors import ConfigError, FetchError


def test_handler_reports_config_error(monkeypatch):
    def boom(path):
        raise ConfigError("Missing required configuration: UCI_API_TOKEN")

    monkeypatch.setattr(main, "load_env_config", boom)
    out = main.handler({}, None)
    assert out["statusCode"] == 500
    assert "UCI_API_TOKEN" in json.loads(out["body"])["error"]


def test_handler_returns_run_summary(monkeypatch):
    report = RunReport(started_at=datetime(2024, 3, 1, tzinfo=UTC), state=RunState.DONE)
    report.records, report.new_records, report.notified = 5, 2, 1
    monkeypatch.setattr(main, "load_env_config", lambda path: SimpleNamespace(log_level="INFO"))
    monkeypatch.setattr(main, "setup_logging", lambda **kw: None)
    monkeypatch.setattr(main, "run_once", lambda cfg: report)
    out = main.handler({}, None)
    body = json.loads(out["body"])
    assert out["statusCode"] == 200
    assert body["state"] == "done" and body["records"] == 5 and body["new"] == 2
    assert body["notified"] == 1


def test_run_once_reports_fatal_errors_to_admin(monkeypatch):
    sent = []

    class FakePipeline:
        def run(self):
            raise FetchError("feed returned HTTP 503", status=503)

    class FakeNotifier:
        def send_error(self, text):
            sent.append(text)

    monkeypatch.setattr(main, "build_notifier", lambda cfg: FakeNotifier())
    monkeypatch.setattr(main, "build_pipeline", lambda cfg, notifier: FakePipeline())
    with pytest.raises(FetchError):
        main.run_once(object())
    assert sent and "FetchError" in sent[0]
