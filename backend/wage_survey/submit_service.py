"""
Admission pipeline for POST /api/survey/submit.

Stages run strictly in order and the first failure short-circuits with an AdmissionRejected subclass:
origin -> global rate limit -> body size -> JSON parse -> human verification -> one-time token ->
behavior telemetry -> payload validation -> persistence. Nothing is retried inside a request.
"""
import json
import logging
from dataclasses import dataclass
from typing import Any

from wage_survey import config
from wage_survey.behavior import BehaviorScorer
from wage_survey.captcha import HumanVerifier
from wage_survey.errors import (
    AdmissionRejected,
    MalformedRequest,
    PayloadTooLarge,
    RateLimitExceeded,
    ReplayDetected,
    ValidationFailed,
)
from wage_survey.origin_guard import check_origin, requires_origin_check
from wage_survey.persistence import PersistenceGateway
from wage_survey.rate_limit import GlobalRateLimiter
from wage_survey.tokens import TokenLedger
from wage_survey.validators import sanitize, validate_survey_data

logger = logging.getLogger(__name__)

SUCCESS_MESSAGE = "提交成功，感谢您的参与！"


@dataclass(frozen=True)
class SubmissionEnvelope:
    """What the pipeline needs from the HTTP request. No client address."""

    method: str
    origin: str | None
    referer: str | None
    host: str | None
    user_agent: str | None
    body: bytes | None
    # Body exceeded MAX_BODY_BYTES while reading; it was not kept
    oversized: bool = False


def parse_body(body: bytes | None) -> dict[str, Any]:
    if not body:
        raise MalformedRequest("empty body")
    try:
        data = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError, RecursionError) as e:
        raise MalformedRequest(f"body is not valid JSON: {e.__class__.__name__}") from e
    if not isinstance(data, dict):
        raise MalformedRequest("body is not a JSON object")
    return data


class SubmissionPipeline:
    def __init__(
        self,
        limiter: GlobalRateLimiter,
        verifier: HumanVerifier,
        ledger: TokenLedger,
        scorer: BehaviorScorer,
        gateway: PersistenceGateway,
        max_body_bytes: int | None = None,
    ) -> None:
        self.limiter = limiter
        self.verifier = verifier
        self.ledger = ledger
        self.scorer = scorer
        self.gateway = gateway
        self.max_body_bytes = config.MAX_BODY_BYTES if max_body_bytes is None else max_body_bytes

    def admit(self, envelope: SubmissionEnvelope) -> dict[str, Any]:
        """Run every stage; returns the success body or raises AdmissionRejected."""
        try:
            response_id = self._run(envelope)
        except AdmissionRejected as e:
            logger.warning("Submission rejected: %s %s", e.code, e.reason)
            raise
        logger.info("Submission accepted id=%s", response_id)
        return {"success": True, "message": SUCCESS_MESSAGE}

    def _run(self, envelope: SubmissionEnvelope) -> int:
        if requires_origin_check(envelope.method):
            check_origin(envelope.origin, envelope.referer, envelope.host)

        if not self.limiter.admit():
            raise RateLimitExceeded("global window full", retry_after=self.limiter.window_seconds)

        if envelope.oversized or (envelope.body is not None and len(envelope.body) > self.max_body_bytes):
            raise PayloadTooLarge(f"body larger than {self.max_body_bytes} bytes")

        data = parse_body(envelope.body)

        self.verifier.verify(data.get("humanVerificationToken"))

        token = data.get("submitToken")
        if not self.ledger.validate_format(token):
            raise MalformedRequest("submit token missing, malformed or expired", "提交令牌无效或已过期，请刷新页面后重试", code="INVALID_TOKEN")
        if not self.ledger.consume(token):
            raise ReplayDetected("submit token already used")

        if data.get("behaviorData") is None:
            raise MalformedRequest("behaviorData missing", "缺少行为数据", code="INVALID_BEHAVIOR_DATA")
        self.scorer.check(data["behaviorData"], envelope.user_agent)

        errors = validate_survey_data(data)
        if errors:
            raise ValidationFailed(errors, f"invalid fields: {', '.join(sorted({e['field'] for e in errors}))}")

        return self.gateway.save(sanitize(data))
