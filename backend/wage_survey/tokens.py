"""
One-time submit tokens: "<timestamp_ms>-<nonce>".

Tokens are minted by the client and carry no signature. A key shipped to the browser is readable by
anyone, so an HMAC over the answers would prove nothing. Replay protection rests on one thing:
the unique constraint on used_tokens.token. Inserting the token is the lock; a second insert of the
same token inserts nothing and the submission is a replay.
"""
import logging
import re
import secrets
import string
import time
from datetime import datetime, timedelta, timezone
from typing import Callable

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError

from wage_survey.config import TOKEN_CLOCK_SKEW_SECONDS, TOKEN_NONCE_LENGTH, TOKEN_VALIDITY_SECONDS
from wage_survey.db import get_db, is_timeout_error, upsert
from wage_survey.errors import PersistenceFailure, PersistenceTimeout
from wage_survey.models import UsedToken

logger = logging.getLogger(__name__)

_NONCE_ALPHABET = string.ascii_lowercase + string.digits


def _now_ms() -> int:
    return int(time.time() * 1000)


def generate_token(nonce_length: int = TOKEN_NONCE_LENGTH, now_ms: int | None = None) -> str:
    """Token in the wire format the client produces. Carries no user data."""
    ts = _now_ms() if now_ms is None else now_ms
    nonce = "".join(secrets.choice(_NONCE_ALPHABET) for _ in range(nonce_length))
    return f"{ts}-{nonce}"


class TokenLedger:
    def __init__(
        self,
        validity_seconds: int = TOKEN_VALIDITY_SECONDS,
        clock_skew_seconds: int = TOKEN_CLOCK_SKEW_SECONDS,
        nonce_length: int = TOKEN_NONCE_LENGTH,
        clock_ms: Callable[[], int] = _now_ms,
    ) -> None:
        self.validity_seconds = validity_seconds
        self.clock_skew_seconds = clock_skew_seconds
        self.nonce_length = nonce_length
        self._clock_ms = clock_ms
        self._pattern = re.compile(r"^(\d{1,15})-([A-Za-z0-9]{%d})$" % nonce_length)

    def _timestamp_ms(self, token: str) -> int | None:
        m = self._pattern.match(token)
        return int(m.group(1)) if m else None

    def validate_format(self, token: object) -> bool:
        """Shape is timestamp-nonce, not issued in the future (beyond skew), not older than the validity window."""
        if not isinstance(token, str) or not token:
            return False
        ts = self._timestamp_ms(token)
        if ts is None:
            return False
        age_ms = self._clock_ms() - ts
        if age_ms < -self.clock_skew_seconds * 1000:
            return False
        return age_ms <= self.validity_seconds * 1000

    def consume(self, token: str) -> bool:
        """
        Spend the token. True if this call spent it, False if it had already been spent.
        Store errors fail closed (PersistenceTimeout / PersistenceFailure), never as "not used".
        """
        ts = self._timestamp_ms(token)
        if ts is None:
            return False
        expires_at = datetime.fromtimestamp(ts / 1000, tz=timezone.utc) + timedelta(seconds=self.validity_seconds)
        used_at = datetime.fromtimestamp(self._clock_ms() / 1000, tz=timezone.utc)
        try:
            with get_db() as db:
                stmt = (
                    upsert(db, UsedToken)
                    .values(token=token, used_at=used_at, expires_at=expires_at)
                    .on_conflict_do_nothing(index_elements=["token"])
                )
                result = db.execute(stmt)
                db.commit()
                return result.rowcount == 1
        except SQLAlchemyError as e:
            if is_timeout_error(e):
                raise PersistenceTimeout(f"token consume timed out: {e.__class__.__name__}") from e
            logger.error("Token consume failed: %s", e)
            raise PersistenceFailure(f"token consume failed: {e.__class__.__name__}") from e

    def reclaim(self) -> int:
        """Delete spent tokens past their expiry; such tokens already fail validate_format."""
        now = datetime.fromtimestamp(self._clock_ms() / 1000, tz=timezone.utc)
        with get_db() as db:
            result = db.execute(delete(UsedToken).where(UsedToken.expires_at < now))
            db.commit()
            return result.rowcount or 0
