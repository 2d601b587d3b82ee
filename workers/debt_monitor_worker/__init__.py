"""Debt monitor worker module exports."""

from .worker import (
    DebtSweepRunResult,
    DebtWorkerSettings,
    load_settings,
    run_forever,
    run_sweep_once,
    run_sweep_with_retries,
    seconds_until_next_run,
)

__all__ = [
    "DebtSweepRunResult",
    "DebtWorkerSettings",
    "load_settings",
    "run_forever",
    "run_sweep_once",
    "run_sweep_with_retries",
    "seconds_until_next_run",
]
