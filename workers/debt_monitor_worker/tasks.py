"""Debt monitor worker tasks."""

from __future__ import annotations

from workers.debt_monitor_worker.worker import (
    DebtSweepRunResult,
    DebtWorkerSettings,
    load_settings,
    run_sweep_with_retries,
)


def end_of_day_tick(settings: DebtWorkerSettings | None = None) -> DebtSweepRunResult:
    """Run one end-of-day sweep, for cron-style schedulers that own the timing."""
    return run_sweep_with_retries(settings or load_settings())
