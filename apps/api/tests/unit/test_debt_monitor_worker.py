import importlib.util
import json
import pathlib
import sys
import urllib.error
from datetime import datetime, timezone

import pytest

REPO_ROOT = pathlib.Path(__file__).resolve().parents[4]
WORKER_PATH = REPO_ROOT / "workers" / "debt_monitor_worker" / "worker.py"


spec = importlib.util.spec_from_file_location("debt_monitor_worker_module", WORKER_PATH)
worker_module = importlib.util.module_from_spec(spec)
assert spec and spec.loader
sys.modules[spec.name] = worker_module
spec.loader.exec_module(worker_module)


class _FakeResponse:
    def __init__(self, body, status: int = 200) -> None:
        self._body = body if isinstance(body, bytes) else json.dumps(body).encode("utf-8")
        self.status = status

    def read(self) -> bytes:
        return self._body

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False


def _settings(**overrides):
    values = {
        "api_base_url": "http://api",
        "run_at_hour": 23,
        "run_at_minute": 0,
        "timeout_s": 2.0,
        "auth_token": None,
        "max_retries": 2,
        "retry_backoff_s": 0.25,
    }
    values.update(overrides)
    return worker_module.DebtWorkerSettings(**values)


def _http_error(request, code: int, msg: str):
    return urllib.error.HTTPError(url=request.full_url, code=code, msg=msg, hdrs=None, fp=None)


def test_load_settings_defaults():
    settings = worker_module.load_settings({})

    assert settings.api_base_url == "http://localhost:8000"
    assert (settings.run_at_hour, settings.run_at_minute) == (23, 0)
    assert settings.timeout_s == 30.0
    assert settings.auth_token is None
    assert settings.max_retries == 3


def test_load_settings_rejects_malformed_run_at():
    with pytest.raises(ValueError, match="RUN_AT"):
        worker_module.load_settings({"DISPATCH_DEBT_WORKER_RUN_AT": "25:00"})
    with pytest.raises(ValueError, match="RUN_AT"):
        worker_module.load_settings({"DISPATCH_DEBT_WORKER_RUN_AT": "late"})


def test_load_settings_rejects_negative_max_retries():
    with pytest.raises(ValueError, match="MAX_RETRIES"):
        worker_module.load_settings({"DISPATCH_DEBT_WORKER_MAX_RETRIES": "-1"})


def test_seconds_until_next_run_today_and_tomorrow():
    settings = _settings()

    before = datetime(2026, 10, 19, 22, 30, tzinfo=timezone.utc)
    after = datetime(2026, 10, 19, 23, 0, tzinfo=timezone.utc)

    assert worker_module.seconds_until_next_run(settings, before) == 30 * 60
    assert worker_module.seconds_until_next_run(settings, after) == 24 * 3600


def test_run_sweep_once_posts_with_token():
    settings = _settings(auth_token="abc")

    def opener(request, timeout):
        assert timeout == 2.0
        assert request.full_url == "http://api/api/v1/debt/sweep"
        assert request.get_method() == "POST"
        assert request.headers["Authorization"] == "Bearer abc"
        return _FakeResponse({"warned_count": 3, "blocked_count": 1}, status=200)

    result = worker_module.run_sweep_once(settings, opener=opener)

    assert result.ok is True
    assert result.warned_count == 3
    assert result.blocked_count == 1
    assert result.status_code == 200


def test_run_sweep_once_rejects_invalid_json():
    result = worker_module.run_sweep_once(
        _settings(), opener=lambda request, timeout: _FakeResponse(b"not-json")
    )

    assert result.ok is False
    assert result.error == "Invalid JSON in sweep response"


def test_run_sweep_once_http_error_returns_failure():
    def opener(request, timeout):
        raise _http_error(request, 503, "Service Unavailable")

    result = worker_module.run_sweep_once(_settings(), opener=opener)

    assert result.ok is False
    assert result.status_code == 503


def test_run_sweep_with_retries_backs_off_then_succeeds():
    sleeps: list[float] = []
    calls = {"count": 0}

    def opener(request, timeout):
        calls["count"] += 1
        if calls["count"] < 3:
            raise urllib.error.URLError("temporary network")
        return _FakeResponse({"warned_count": 1, "blocked_count": 0})

    result = worker_module.run_sweep_with_retries(_settings(), opener=opener, sleep=sleeps.append)

    assert result.ok is True
    assert result.attempts == 3
    assert sleeps == [0.25, 0.5]


def test_run_sweep_with_retries_does_not_retry_auth_errors():
    def opener(request, timeout):
        raise _http_error(request, 403, "Forbidden")

    result = worker_module.run_sweep_with_retries(
        _settings(max_retries=5), opener=opener, sleep=lambda _seconds: None
    )

    assert result.ok is False
    assert result.status_code == 403
    assert result.attempts == 1


def test_sweep_endpoint_contract_matches_worker(client, make_courier):
    make_courier(["خلدا"], pending="12.00")

    response = client.post("/api/v1/debt/sweep", json={})

    assert response.status_code == 200
    ok, warned, blocked, error = worker_module._decode_sweep_response(response.text)
    assert ok is True and error is None
    assert (warned, blocked) == (1, 0)


def test_end_of_day_tick_uses_given_settings(monkeypatch):
    from workers.debt_monitor_worker import tasks

    seen = []

    def fake_run(settings):
        seen.append(settings)
        return "done"

    monkeypatch.setattr(tasks, "run_sweep_with_retries", fake_run)
    settings = _settings()

    assert tasks.end_of_day_tick(settings) == "done"
    assert seen == [settings]
