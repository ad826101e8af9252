"""
Global request limit over a trailing window, counted in fixed time buckets (rate_limit_global).

Anonymous: nothing about the client is stored. The counter lives in the database so every instance
sees the same budget; the per-bucket upsert is atomic, a race can only over-admit slightly.
A broken store never blocks traffic: on error the request is admitted and the error logged.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError

from wage_survey.config import RATE_LIMIT_BUCKET_SECONDS, RATE_LIMIT_MAX_REQUESTS, RATE_LIMIT_WINDOW_SECONDS
from wage_survey.db import get_db, upsert
from wage_survey.models import RateLimitWindow

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def bucket_start(moment: datetime, bucket_seconds: int) -> datetime:
    """Start of the bucket containing `moment` (buckets are aligned to the epoch)."""
    ts = int(moment.timestamp()) // bucket_seconds * bucket_seconds
    return datetime.fromtimestamp(ts, tz=timezone.utc)


class GlobalRateLimiter:
    def __init__(
        self,
        window_seconds: int = RATE_LIMIT_WINDOW_SECONDS,
        max_requests: int = RATE_LIMIT_MAX_REQUESTS,
        bucket_seconds: int = RATE_LIMIT_BUCKET_SECONDS,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self.bucket_seconds = bucket_seconds
        self._clock = clock

    def _cutoff(self, now: datetime) -> datetime:
        return now - timedelta(seconds=self.window_seconds)

    def admit(self) -> bool:
        """Count this request against the global budget. False if the window is already full."""
        now = self._clock()
        cutoff = self._cutoff(now)
        try:
            with get_db() as db:
                db.execute(delete(RateLimitWindow).where(RateLimitWindow.window_start < cutoff))
                total = db.execute(
                    select(func.coalesce(func.sum(RateLimitWindow.request_count), 0))
                    .where(RateLimitWindow.window_start >= cutoff)
                ).scalar_one()
                if total >= self.max_requests:
                    db.commit()
                    logger.warning(
                        "Global rate limit exceeded: %s requests in last %s seconds", total, self.window_seconds
                    )
                    return False

                stmt = upsert(db, RateLimitWindow).values(
                    window_start=bucket_start(now, self.bucket_seconds),
                    request_count=1,
                    updated_at=now,
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=["window_start"],
                    set_={"request_count": RateLimitWindow.request_count + 1, "updated_at": now},
                )
                db.execute(stmt)
                db.commit()
                return True
        except SQLAlchemyError as e:
            logger.error("Global rate limit: store error, allowing request: %s", e)
            return True

    def window_usage(self) -> dict[str, Any]:
        """Requests counted in the trailing window, for monitoring."""
        now = self._clock()
        cutoff = self._cutoff(now)
        try:
            with get_db() as db:
                row = db.execute(
                    select(
                        func.coalesce(func.sum(RateLimitWindow.request_count), 0),
                        func.min(RateLimitWindow.window_start),
                    ).where(RateLimitWindow.window_start >= cutoff)
                ).one()
        except SQLAlchemyError as e:
            logger.error("Global rate limit: cannot read window usage: %s", e)
            return {"request_count": 0, "window_start": None, "window_end": now.isoformat()}
        return {
            "request_count": int(row[0] or 0),
            "window_start": row[1].isoformat() if row[1] else None,
            "window_end": now.isoformat(),
        }

    def reclaim(self) -> int:
        """Delete buckets that fell out of the window. Returns the number of rows removed."""
        cutoff = self._cutoff(self._clock())
        with get_db() as db:
            result = db.execute(delete(RateLimitWindow).where(RateLimitWindow.window_start < cutoff))
            db.commit()
            return result.rowcount or 0
