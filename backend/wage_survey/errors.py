"""
Rejection taxonomy of the admission pipeline.

Every stage turns its internal failure into one of these. `detail` is safe to show to the client,
`reason` is for logs (and for the response body only when APP_ENV=development).
"""
from typing import Any


class AdmissionRejected(Exception):
    """Base class: the submission is not admitted."""

    status_code = 400
    code = "REJECTED"
    default_detail = "提交失败"

    def __init__(self, reason: str = "", detail: str | None = None) -> None:
        self.reason = reason
        self.detail = detail or self.default_detail
        super().__init__(reason or self.detail)

    def to_dict(self, include_reason: bool = False) -> dict[str, Any]:
        body: dict[str, Any] = {"success": False, "code": self.code, "detail": self.detail}
        if include_reason and self.reason:
            body["reason"] = self.reason
        return body


class OriginMismatch(AdmissionRejected):
    status_code = 403
    code = "ORIGIN_MISMATCH"
    default_detail = "请求来源验证失败，请从正确的页面提交问卷"


class RateLimitExceeded(AdmissionRejected):
    status_code = 429
    code = "RATE_LIMITED"
    default_detail = "当前提交人数过多，请稍后再试"

    def __init__(self, reason: str = "", detail: str | None = None, retry_after: int = 60) -> None:
        super().__init__(reason, detail)
        self.retry_after = retry_after


class MalformedRequest(AdmissionRejected):
    status_code = 400
    code = "MALFORMED_REQUEST"
    default_detail = "请求数据格式错误"

    def __init__(self, reason: str = "", detail: str | None = None, code: str | None = None) -> None:
        super().__init__(reason, detail)
        if code:
            self.code = code


class PayloadTooLarge(MalformedRequest):
    status_code = 413
    code = "PAYLOAD_TOO_LARGE"
    default_detail = "提交的数据超过大小限制"


class VerificationFailed(AdmissionRejected):
    status_code = 403
    code = "VERIFICATION_FAILED"
    default_detail = "人机验证失败，请重试"


class VerificationUnavailable(AdmissionRejected):
    status_code = 503
    code = "VERIFICATION_UNAVAILABLE"
    default_detail = "人机验证服务暂不可用，请稍后重试"


class ReplayDetected(AdmissionRejected):
    status_code = 400
    code = "REPLAY_DETECTED"
    default_detail = "该问卷已提交，请刷新页面后重试"


class BehaviorAnomaly(AdmissionRejected):
    """The reason is human-readable guidance and is shown to the client as the detail."""

    status_code = 403
    code = "BEHAVIOR_ANOMALY"
    default_detail = "检测到异常行为，请正常填写问卷"

    def __init__(self, reason: str = "", detail: str | None = None) -> None:
        super().__init__(reason, detail or reason or None)


class ValidationFailed(AdmissionRejected):
    status_code = 400
    code = "VALIDATION_FAILED"
    default_detail = "提交的数据不符合要求"

    def __init__(self, errors: list[dict[str, str]], reason: str = "") -> None:
        super().__init__(reason or f"{len(errors)} field error(s)")
        self.errors = errors

    def to_dict(self, include_reason: bool = False) -> dict[str, Any]:
        body = super().to_dict(include_reason)
        body["errors"] = self.errors
        return body


class PersistenceTimeout(AdmissionRejected):
    status_code = 503
    code = "PERSISTENCE_TIMEOUT"
    default_detail = "服务器繁忙，请稍后重试"


class PersistenceFailure(AdmissionRejected):
    status_code = 500
    code = "PERSISTENCE_FAILURE"
    default_detail = "服务器处理请求时发生错误，请稍后重试"
