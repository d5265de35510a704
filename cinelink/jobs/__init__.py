from cinelink.jobs.rollup import (
    RollupResult,
    cleanup_old_clicks,
    retention_cutoff,
    run_daily_rollup,
    summarize_day,
)
from cinelink.jobs.scheduler import JobScheduler

__all__ = [
    "JobScheduler",
    "RollupResult",
    "cleanup_old_clicks",
    "retention_cutoff",
    "run_daily_rollup",
    "summarize_day",
]
