"""
GET /api/survey/stats: public aggregate snapshot (no individual responses).
GET /api/survey/questions: question catalog the validator enforces.
"""
from typing import Any

from fastapi import APIRouter, Depends, Response

from wage_survey import config
from wage_survey.deps import get_rate_limiter, get_stats_reader
from wage_survey.errors import RateLimitExceeded
from wage_survey.questions import question_catalog
from wage_survey.rate_limit import GlobalRateLimiter
from wage_survey.stats import StatsReader

router = APIRouter(tags=["survey"])


@router.get("/api/survey/stats")
def get_stats(
    response: Response,
    limiter: GlobalRateLimiter = Depends(get_rate_limiter),
    reader: StatsReader = Depends(get_stats_reader),
) -> dict[str, Any]:
    """Totals, mean/median salary months and bucket counts. Counts against the global rate limit."""
    if not limiter.admit():
        raise RateLimitExceeded("global window full", retry_after=limiter.window_seconds)
    response.headers["Cache-Control"] = f"public, max-age={config.STATS_CACHE_SECONDS}"
    return reader.read()


@router.get("/api/survey/questions")
def get_questions() -> dict[str, Any]:
    return {"questions": question_catalog()}
