"""
Behavior telemetry check: does the interaction reported by the page look like a person filling the form?

Heuristic, not proof. Each threshold is an independent necessary condition; the first one violated
rejects the submission with a reason the respondent can act on.
"""
import logging
import re
import time
from dataclasses import dataclass
from typing import Annotated, Any, Callable

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from wage_survey import config
from wage_survey.errors import BehaviorAnomaly, MalformedRequest

logger = logging.getLogger(__name__)

MOBILE_UA_RE = re.compile(r"Android|iPhone|iPad|iPod|BlackBerry|IEMobile|Opera Mini", re.IGNORECASE)

Count = Annotated[float, Field(ge=0, strict=True, allow_inf_nan=False)]


def is_mobile_user_agent(user_agent: str | None) -> bool:
    if not user_agent:
        return False
    return MOBILE_UA_RE.search(user_agent) is not None


class BehaviorTelemetry(BaseModel):
    """Counters collected by the page. Times are epoch milliseconds; missing counters are 0."""

    model_config = ConfigDict(extra="ignore")

    mouse_movements: Count = Field(0, alias="mouseMovements")
    clicks: Count = 0
    scrolls: Count = 0
    key_presses: Count = Field(0, alias="keyPresses")
    touch_events: Count = Field(0, alias="touchEvents")
    start_time: Count = Field(0, alias="startTime")
    last_activity: Count = Field(0, alias="lastActivity")


@dataclass(frozen=True)
class BehaviorThresholds:
    # Reject if the form was open for less than this: nobody reads seven questions faster.
    min_dwell_seconds: float = 10
    # Reject if the session started longer ago than this: stale or recorded session.
    max_window_seconds: float = 600
    # Reject if nothing happened on the page for longer than this before submitting.
    max_idle_seconds: float = 120
    # Tolerance for lastActivity being ahead of the server clock.
    max_clock_skew_seconds: float = 60
    # Desktop: minimum sampled pointer moves.
    min_pointer_moves: int = 5
    # Mobile: minimum touch events.
    min_touch_events: int = 3
    # Both: minimum clicks (each answer needs one).
    min_clicks: int = 3

    @classmethod
    def from_config(cls) -> "BehaviorThresholds":
        return cls(
            min_dwell_seconds=config.BEHAVIOR_MIN_DWELL_SECONDS,
            max_window_seconds=config.BEHAVIOR_MAX_WINDOW_SECONDS,
            max_idle_seconds=config.BEHAVIOR_MAX_IDLE_SECONDS,
            max_clock_skew_seconds=config.BEHAVIOR_MAX_CLOCK_SKEW_SECONDS,
            min_pointer_moves=config.BEHAVIOR_MIN_POINTER_MOVES,
            min_touch_events=config.BEHAVIOR_MIN_TOUCH_EVENTS,
            min_clicks=config.BEHAVIOR_MIN_CLICKS,
        )


def parse_telemetry(raw: Any) -> BehaviorTelemetry:
    """Every counter must be a finite, non-negative number. Anything else is malformed, not suspicious."""
    if not isinstance(raw, dict):
        raise MalformedRequest("behaviorData is not an object", "无效的行为数据格式", code="INVALID_BEHAVIOR_DATA")
    try:
        return BehaviorTelemetry.model_validate(raw)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise MalformedRequest(
            f"behaviorData invalid: {fields}", "行为数据包含无效值", code="INVALID_BEHAVIOR_DATA"
        ) from e


class BehaviorScorer:
    def __init__(
        self,
        thresholds: BehaviorThresholds | None = None,
        clock_ms: Callable[[], float] = lambda: time.time() * 1000,
    ) -> None:
        self.thresholds = thresholds or BehaviorThresholds.from_config()
        self._clock_ms = clock_ms

    def first_violation(self, telemetry: BehaviorTelemetry, mobile: bool) -> str | None:
        """Reason of the first failed condition, or None if the telemetry passes."""
        t = self.thresholds
        now = self._clock_ms()

        elapsed = (now - telemetry.start_time) / 1000 if telemetry.start_time else 0.0
        if elapsed < 0 or elapsed > t.max_window_seconds:
            return "检测到异常行为：时间数据异常"
        if elapsed < t.min_dwell_seconds:
            return "检测到异常行为：停留时间过短，请正常填写问卷"

        idle = (now - telemetry.last_activity) / 1000 if telemetry.last_activity else float("inf")
        if idle > t.max_idle_seconds:
            return "检测到异常行为：长时间无活动，请刷新页面重新填写"
        if telemetry.last_activity > now + t.max_clock_skew_seconds * 1000:
            return "检测到异常行为：时间数据异常"
        # Activity cannot precede the session it belongs to
        if telemetry.last_activity < telemetry.start_time:
            return "检测到异常行为：时间数据异常"

        if mobile and telemetry.touch_events < t.min_touch_events:
            return "检测到异常行为：缺少正常交互，请正常填写问卷"
        if not mobile and telemetry.mouse_movements < t.min_pointer_moves:
            return "检测到异常行为：缺少正常交互，请正常填写问卷"

        if telemetry.clicks < t.min_clicks:
            return "检测到异常行为：交互次数过少，请正常填写问卷"
        return None

    def check(self, raw: Any, user_agent: str | None) -> None:
        """Raise MalformedRequest for bad telemetry, BehaviorAnomaly if it does not look human."""
        telemetry = parse_telemetry(raw)
        mobile = is_mobile_user_agent(user_agent)
        reason = self.first_violation(telemetry, mobile)
        if reason:
            logger.warning("Behavior check failed (%s): %s", "mobile" if mobile else "desktop", reason)
            raise BehaviorAnomaly(reason)
