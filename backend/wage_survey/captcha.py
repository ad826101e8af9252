"""Human verification through a siteverify endpoint (Google reCAPTCHA; Cloudflare Turnstile answers the same way)."""
import logging
from typing import Any

import httpx

from wage_survey import config
from wage_survey.errors import VerificationFailed, VerificationUnavailable

logger = logging.getLogger(__name__)


class HumanVerifier:
    """
    The service's answer is authoritative. If it cannot be asked, or answers garbage, the submission
    is rejected (fail closed). Without a secret key the check is skipped only in development.
    """

    def __init__(
        self,
        secret_key: str | None = None,
        verify_url: str | None = None,
        timeout: float | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self.secret_key = config.HUMAN_VERIFY_SECRET_KEY if secret_key is None else secret_key
        self.verify_url = verify_url or config.HUMAN_VERIFY_URL
        self.timeout = config.HUMAN_VERIFY_TIMEOUT_SECONDS if timeout is None else timeout
        self._client = client

    def _post(self, token: str) -> httpx.Response:
        data = {"secret": self.secret_key, "response": token}
        if self._client is not None:
            return self._client.post(self.verify_url, data=data, timeout=self.timeout)
        return httpx.post(self.verify_url, data=data, timeout=self.timeout)

    def verify(self, token: Any) -> None:
        """Raise VerificationFailed / VerificationUnavailable unless the service confirms the token."""
        if not self.secret_key:
            if config.is_development():
                logger.warning("HUMAN_VERIFY_SECRET_KEY not set, human verification skipped (development)")
                return
            logger.error("HUMAN_VERIFY_SECRET_KEY not configured, rejecting submission")
            raise VerificationUnavailable("verification secret key not configured")

        if not isinstance(token, str) or not token.strip():
            raise VerificationFailed("verification token missing", "请完成人机验证")

        try:
            r = self._post(token.strip())
        except httpx.HTTPError as e:
            logger.warning("Human verification request failed: %s", e)
            raise VerificationUnavailable(f"verification request failed: {e.__class__.__name__}") from e

        if not r.is_success:
            logger.error("Human verification HTTP error: %s", r.status_code)
            raise VerificationUnavailable(f"verification service returned HTTP {r.status_code}")
        try:
            data = r.json()
        except ValueError as e:
            raise VerificationUnavailable("verification service returned non-JSON body") from e
        if not isinstance(data, dict) or not isinstance(data.get("success"), bool):
            raise VerificationUnavailable("verification service returned malformed body")

        if not data["success"]:
            logger.warning("Human verification rejected: %s", data.get("error-codes"))
            raise VerificationFailed(f"verification rejected: {data.get('error-codes')}")
