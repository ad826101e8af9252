"""
POST /api/cleanup: delete expired rate-limit buckets and spent tokens, report current window usage. Meant for cron.
If CLEANUP_SECRET is set, requires "Authorization: Bearer <CLEANUP_SECRET>".
"""
import hmac
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from wage_survey import config
from wage_survey.deps import get_rate_limiter, get_token_ledger
from wage_survey.maintenance import run_cleanup
from wage_survey.rate_limit import GlobalRateLimiter
from wage_survey.tokens import TokenLedger

router = APIRouter(tags=["maintenance"])

security = HTTPBearer(auto_error=False)


def require_cleanup_secret(credentials: HTTPAuthorizationCredentials | None = Depends(security)) -> None:
    if not config.CLEANUP_SECRET:
        return
    if not credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    if not hmac.compare_digest(credentials.credentials.encode(), config.CLEANUP_SECRET.encode()):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid cleanup secret")


@router.post("/api/cleanup", dependencies=[Depends(require_cleanup_secret)])
def cleanup(
    limiter: GlobalRateLimiter = Depends(get_rate_limiter),
    ledger: TokenLedger = Depends(get_token_ledger),
) -> dict[str, Any]:
    return {"success": True, **run_cleanup(limiter, ledger)}
