"""Smoke tests for the command-line interface."""

from __future__ import annotations

from pathlib import Path
from typing import Any, List

import pytest
import requests

from web_retrieval import cli
from web_retrieval.notifier import SlackNotifier, StdoutNotifier

SETTINGS = """\
retrieval:
  user_agent: test/1
fetcher:
  urls: [http://a/]
  failure_threshold: 0
"""


class FakeResponse:
    def __init__(self, status_code: int, content: bytes) -> None:
        self.status_code = status_code
        self.content = content
        self.headers = {"Content-Type": "application/json; charset=utf-8"}
        self.history: List[Any] = []
        self.url = "http://a/"


@pytest.fixture
def settings_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> str:
    monkeypatch.setattr(cli, "configure_logging", lambda *args, **kwargs: None)
    path = tmp_path / "settings.yml"
    path.write_text(SETTINGS, encoding="utf-8")
    return str(path)


def test_once_prints_decoded_result(
    settings_path: str, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setattr(requests.Session, "get", lambda self, url, **kwargs: FakeResponse(200, b'{"v": 1}'))

    cli.main(["--settings", settings_path, "--decoder", "json", "--once"])

    output = capsys.readouterr().out
    assert "http://a/" in output
    assert "'v': 1" in output


def test_once_failure_alerts_and_exits(
    settings_path: str, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setattr(requests.Session, "get", lambda self, url, **kwargs: FakeResponse(503, b""))

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--settings", settings_path, "--once"])

    assert excinfo.value.code == 1
    captured = capsys.readouterr()
    assert "[ALERT]" in captured.out
    assert captured.err.startswith("Error: Fetch failed")


def test_html_decoder_requires_selector(settings_path: str, capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit):
        cli.main(["--settings", settings_path, "--decoder", "html", "--once"])

    assert "--selector" in capsys.readouterr().err


def test_scheduled_mode_runs_blocking_scheduler(settings_path: str, monkeypatch: pytest.MonkeyPatch) -> None:
    started: List[Any] = []

    class DummyScheduler:
        def __init__(self) -> None:
            self.jobs: List[Any] = []

        def add_job(self, func: Any, **kwargs: Any) -> None:
            self.jobs.append((func, kwargs))

        def start(self) -> None:
            started.append(self)

    monkeypatch.setattr(cli, "BlockingScheduler", DummyScheduler)

    cli.main(["--settings", settings_path])

    assert len(started) == 1
    _, kwargs = started[0].jobs[0]
    assert kwargs["max_instances"] == 1
    assert "next_run_time" in kwargs


def test_select_notifier_prefers_slack(tmp_path: Path) -> None:
    path = tmp_path / "settings.yml"
    path.write_text("alerts:\n  slack_webhook_url: https://hooks.example/x\n", encoding="utf-8")

    settings = cli.load_settings(str(path))

    assert isinstance(cli._select_notifier(settings), SlackNotifier)
    settings.alerts.slack_webhook_url = None
    assert isinstance(cli._select_notifier(settings), StdoutNotifier)
