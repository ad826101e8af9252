"""
Public statistics read from the aggregate row. Individual responses are never exposed.
"""
import logging
import threading
import time
from typing import Any, Callable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from wage_survey.config import STATS_CACHE_SECONDS
from wage_survey.db import get_db, is_timeout_error
from wage_survey.errors import PersistenceFailure, PersistenceTimeout
from wage_survey.models import AggregatedStats

logger = logging.getLogger(__name__)

_cache_lock = threading.Lock()
_cache: dict[str, Any] = {"value": None, "expires": 0.0}


def clear_cache() -> None:
    with _cache_lock:
        _cache["value"] = None
        _cache["expires"] = 0.0


def _to_dict(row: AggregatedStats) -> dict[str, Any]:
    return {
        "total": int(row.total_responses or 0),
        "avgMonths": round(float(row.avg_salary_months or 0), 1),
        "medianMonths": round(float(row.median_salary_months or 0), 1),
        "income": {
            "growth": int(row.income_growth or 0),
            "stable": int(row.income_stable or 0),
            "decline": int(row.income_decline or 0),
        },
        "friends": {
            "better": int(row.friends_better or 0),
            "mixed": int(row.friends_mixed or 0),
            "worse": int(row.friends_worse or 0),
        },
        "arrears": {
            "safe": int(row.arrears_safe or 0),
            "risk": int(row.arrears_risk or 0),
        },
        "lastUpdated": row.last_updated.isoformat() if row.last_updated else None,
    }


class StatsReader:
    def __init__(self, cache_seconds: int = STATS_CACHE_SECONDS, clock: Callable[[], float] = time.monotonic) -> None:
        self.cache_seconds = cache_seconds
        self._clock = clock

    def read(self) -> dict[str, Any]:
        """Aggregate snapshot, cached per process for cache_seconds (0 disables the cache)."""
        now = self._clock()
        if self.cache_seconds > 0:
            with _cache_lock:
                if _cache["value"] is not None and now < _cache["expires"]:
                    return _cache["value"]

        try:
            with get_db() as db:
                row = db.execute(select(AggregatedStats).where(AggregatedStats.id == 1)).scalar_one_or_none()
                stats = _to_dict(row) if row is not None else None
        except SQLAlchemyError as e:
            if is_timeout_error(e):
                raise PersistenceTimeout(f"stats read timed out: {e.__class__.__name__}") from e
            logger.error("Reading aggregated_stats failed: %s", e)
            raise PersistenceFailure(f"stats read failed: {e.__class__.__name__}") from e
        if stats is None:
            logger.error("aggregated_stats row id=1 missing, migrations not applied?")
            raise PersistenceFailure("aggregated_stats row missing")

        if self.cache_seconds > 0:
            with _cache_lock:
                _cache["value"] = stats
                _cache["expires"] = now + self.cache_seconds
        return stats
