"""Worker that triggers the end-of-day debt sweep once per day."""

from __future__ import annotations

import json
import logging
import os
import time
import urllib.error
import urllib.request
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Callable

logger = logging.getLogger("courier_dispatch.debt_worker")

_ENV_PREFIX = "DISPATCH_DEBT_WORKER_"


@dataclass(frozen=True)
class DebtWorkerSettings:
    api_base_url: str
    run_at_hour: int
    run_at_minute: int
    timeout_s: float
    auth_token: str | None
    max_retries: int
    retry_backoff_s: float


@dataclass(frozen=True)
class DebtSweepRunResult:
    ok: bool
    warned_count: int = 0
    blocked_count: int = 0
    status_code: int | None = None
    error: str | None = None
    attempts: int = 1


def _parse_run_at(value: str) -> tuple[int, int]:
    try:
        hour_text, minute_text = value.strip().split(":")
        hour, minute = int(hour_text), int(minute_text)
    except ValueError as exc:
        raise ValueError(f"{_ENV_PREFIX}RUN_AT must look like HH:MM") from exc
    if not (0 <= hour < 24 and 0 <= minute < 60):
        raise ValueError(f"{_ENV_PREFIX}RUN_AT must be a valid UTC time of day")
    return hour, minute


def load_settings(env: dict[str, str] | None = None) -> DebtWorkerSettings:
    source = env if env is not None else os.environ
    api_base_url = source.get(f"{_ENV_PREFIX}API_BASE_URL", "http://localhost:8000").strip()
    run_at_hour, run_at_minute = _parse_run_at(source.get(f"{_ENV_PREFIX}RUN_AT", "23:00"))
    timeout_s = float(source.get(f"{_ENV_PREFIX}TIMEOUT_S", "30"))
    auth_token = source.get(f"{_ENV_PREFIX}AUTH_TOKEN")
    max_retries = int(source.get(f"{_ENV_PREFIX}MAX_RETRIES", "3"))
    retry_backoff_s = float(source.get(f"{_ENV_PREFIX}RETRY_BACKOFF_S", "5"))

    if timeout_s <= 0:
        raise ValueError(f"{_ENV_PREFIX}TIMEOUT_S must be > 0")
    if max_retries < 0:
        raise ValueError(f"{_ENV_PREFIX}MAX_RETRIES must be >= 0")
    if retry_backoff_s < 0:
        raise ValueError(f"{_ENV_PREFIX}RETRY_BACKOFF_S must be >= 0")

    return DebtWorkerSettings(
        api_base_url=api_base_url.rstrip("/"),
        run_at_hour=run_at_hour,
        run_at_minute=run_at_minute,
        timeout_s=timeout_s,
        auth_token=auth_token or None,
        max_retries=max_retries,
        retry_backoff_s=retry_backoff_s,
    )


def seconds_until_next_run(settings: DebtWorkerSettings, now: datetime) -> float:
    """Seconds from ``now`` until the next configured UTC run time (today or tomorrow)."""
    now = now.astimezone(timezone.utc)
    target = now.replace(
        hour=settings.run_at_hour,
        minute=settings.run_at_minute,
        second=0,
        microsecond=0,
    )
    if target <= now:
        target += timedelta(days=1)
    return (target - now).total_seconds()


def _decode_sweep_response(raw: str) -> tuple[bool, int, int, str | None]:
    try:
        body = json.loads(raw) if raw else {}
        warned = int(body.get("warned_count", 0))
        blocked = int(body.get("blocked_count", 0))
    except json.JSONDecodeError:
        return False, 0, 0, "Invalid JSON in sweep response"
    except (AttributeError, TypeError, ValueError):
        return False, 0, 0, "Invalid counts in sweep response"

    if warned < 0 or blocked < 0:
        return False, 0, 0, "Sweep counts must be >= 0"
    return True, warned, blocked, None


def run_sweep_once(
    settings: DebtWorkerSettings,
    opener: Callable[..., object] = urllib.request.urlopen,
) -> DebtSweepRunResult:
    headers = {"Content-Type": "application/json"}
    if settings.auth_token:
        headers["Authorization"] = f"Bearer {settings.auth_token}"
    request = urllib.request.Request(
        url=f"{settings.api_base_url}/api/v1/debt/sweep",
        data=b"{}",
        method="POST",
        headers=headers,
    )

    try:
        with opener(request, timeout=settings.timeout_s) as response:
            valid, warned, blocked, error = _decode_sweep_response(
                response.read().decode("utf-8")
            )
            return DebtSweepRunResult(
                ok=valid,
                warned_count=warned,
                blocked_count=blocked,
                status_code=getattr(response, "status", 200),
                error=error,
            )
    except urllib.error.HTTPError as exc:
        return DebtSweepRunResult(ok=False, status_code=exc.code, error=f"HTTPError: {exc.code}")
    except urllib.error.URLError as exc:
        return DebtSweepRunResult(ok=False, error=f"URLError: {exc.reason}")


def _is_retryable(result: DebtSweepRunResult) -> bool:
    if result.ok:
        return False
    if result.status_code is None:
        return True
    return result.status_code in {408, 429} or result.status_code >= 500


def run_sweep_with_retries(
    settings: DebtWorkerSettings,
    opener: Callable[..., object] = urllib.request.urlopen,
    sleep: Callable[[float], None] = time.sleep,
) -> DebtSweepRunResult:
    attempts = 0
    while True:
        attempts += 1
        result = run_sweep_once(settings, opener=opener)
        if result.ok or not _is_retryable(result) or attempts > settings.max_retries:
            return replace(result, attempts=attempts)
        sleep(settings.retry_backoff_s * (2 ** (attempts - 1)))


def run_forever(
    settings: DebtWorkerSettings,
    clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    while True:
        sleep(seconds_until_next_run(settings, clock()))
        result = run_sweep_with_retries(settings, sleep=sleep)
        if result.ok:
            logger.info(
                "debt_sweep_triggered warned=%s blocked=%s",
                result.warned_count,
                result.blocked_count,
            )
        else:
            logger.warning(
                "debt_sweep_trigger_failed status=%s error=%s attempts=%s",
                result.status_code,
                result.error,
                result.attempts,
            )


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    run_forever(load_settings())
