"""
Daily click-log rollup.

Two independent steps share one scheduled run:
1. Retention: delete click events older than the retention horizon
2. Summary: per-movie click and unique-IP counts for the previous day

Each step has its own transaction. A failure in one is logged and neither
undoes nor blocks the other, and the run itself never raises so the next
scheduled run always happens.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, sessionmaker

from cinelink.database.models import Click
from cinelink.database.session import get_db_context


logger = logging.getLogger(__name__)


def retention_cutoff(now: datetime, years: int = 1) -> datetime:
    """Same wall-clock instant `years` calendar years earlier (Feb 29 -> Feb 28)."""
    try:
        return now.replace(year=now.year - years)
    except ValueError:
        return now.replace(year=now.year - years, day=28)


def cleanup_old_clicks(db: Session, now: datetime, years: int = 1) -> int:
    """
    Delete click events strictly older than the retention cutoff.

    Idempotent: a second call with the same `now` deletes nothing.
    """
    cutoff = retention_cutoff(now, years)
    deleted = (
        db.query(Click)
        .filter(Click.timestamp < cutoff)
        .delete(synchronize_session=False)
    )
    logger.info(f"Cleanup completed: {deleted} click records older than {cutoff.isoformat()} removed")
    return deleted


def summarize_day(db: Session, day: date) -> List[Dict[str, Any]]:
    """Per-movie clicks and distinct IPs for the half-open day [day, day + 1)."""
    start = datetime.combine(day, time.min)
    end = start + timedelta(days=1)

    clicks = func.count(Click.id)
    rows = (
        db.query(
            Click.movie_id.label("movie_id"),
            clicks.label("clicks"),
            func.count(func.distinct(Click.ip_address)).label("unique_ips"),
        )
        .filter(Click.timestamp >= start, Click.timestamp < end)
        .group_by(Click.movie_id)
        .order_by(clicks.desc(), Click.movie_id)
        .all()
    )
    return [
        {"movieId": row.movie_id, "clickCount": row.clicks, "uniqueIPCount": row.unique_ips}
        for row in rows
    ]


@dataclass
class RollupResult:
    """Outcome of one rollup run. A step that failed leaves its field None."""
    started_at: datetime
    day: date
    deleted: Optional[int] = None
    summary: Optional[List[Dict[str, Any]]] = None
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "startedAt": self.started_at.isoformat(),
            "day": self.day.isoformat(),
            "deleted": self.deleted,
            "summary": self.summary,
            "success": self.success,
            "errors": self.errors,
        }


def run_daily_rollup(
    session_factory: Optional[sessionmaker] = None,
    now: Optional[datetime] = None,
    retention_years: int = 1,
    clock: Callable[[], datetime] = datetime.utcnow,
) -> RollupResult:
    """Run retention cleanup and yesterday's summary. Never raises."""
    now = now or clock()
    result = RollupResult(started_at=now, day=now.date() - timedelta(days=1))

    try:
        with get_db_context(session_factory) as db:
            result.deleted = cleanup_old_clicks(db, now, years=retention_years)
    except Exception as e:
        logger.exception(f"Click cleanup failed: {e}")
        result.errors.append(f"cleanup: {e}")

    try:
        with get_db_context(session_factory) as db:
            result.summary = summarize_day(db, result.day)
        logger.info(
            f"Daily analytics generated: {len(result.summary)} movies had clicks on "
            f"{result.day.isoformat()}"
        )
        for row in result.summary:
            logger.info(
                f"  {row['movieId']}: {row['clickCount']} clicks, "
                f"{row['uniqueIPCount']} unique IPs"
            )
    except Exception as e:
        logger.exception(f"Daily summary failed: {e}")
        result.errors.append(f"summary: {e}")

    return result
