"""Periodic cleanup of expired rate-limit buckets and spent tokens (POST /api/cleanup, cron)."""
import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from wage_survey.rate_limit import GlobalRateLimiter
from wage_survey.tokens import TokenLedger

logger = logging.getLogger(__name__)


def run_cleanup(limiter: GlobalRateLimiter, ledger: TokenLedger) -> dict[str, Any]:
    """
    Each cleanup part runs on its own; a failure is logged and reported as None for that part.
    rateLimitUsage is the global window after cleanup, so cron output doubles as a load sample.
    """
    result: dict[str, Any] = {"rateLimitCleaned": None, "tokensCleaned": None}
    try:
        result["rateLimitCleaned"] = limiter.reclaim()
    except SQLAlchemyError as e:
        logger.error("Cleanup of rate_limit_global failed: %s", e)
    try:
        result["tokensCleaned"] = ledger.reclaim()
    except SQLAlchemyError as e:
        logger.error("Cleanup of used_tokens failed: %s", e)
    result["rateLimitUsage"] = limiter.window_usage()
    logger.info("Cleanup done: %s", result)
    return result
