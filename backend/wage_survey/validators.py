"""
Validation of submitted answers against the question catalog.

Every problem is collected as {"field", "message"} so one response tells the client everything that
is wrong. Option values must match exactly; nothing is coerced into an option.
"""
import json
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from wage_survey.config import MAX_STRING_LENGTH, STORED_STRING_LENGTH
from wage_survey.questions import (
    ANSWER_FIELDS,
    CHOICE_FIELDS,
    MULTI_FIELDS,
    SALARY_MONTHS_MAX,
    SALARY_MONTHS_MIN,
)

# Non-answer keys the submit endpoint accepts
ENVELOPE_FIELDS = ("submitToken", "behaviorData", "humanVerificationToken")
ALLOWED_FIELDS = frozenset(ANSWER_FIELDS + ENVELOPE_FIELDS)

_HALF = Decimal("0.5")


@dataclass(frozen=True)
class SurveyAnswers:
    """Validated, sanitized answers ready for persistence."""

    industry: str
    salary_months: Decimal
    personal_income: str
    personal_arrears: str
    friends_status: str
    friends_arrears_perception: str
    welfare_cut: tuple[str, ...]

    def welfare_cut_json(self) -> str:
        return json.dumps(list(self.welfare_cut), ensure_ascii=False)


def _error(field: str, message: str) -> dict[str, str]:
    return {"field": field, "message": message}


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return False


def parse_salary_months(value: Any) -> Decimal | None:
    """Number or numeric string -> Decimal. Booleans, NaN and infinity are not numbers here."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        value = str(value)
    if not isinstance(value, str):
        return None
    try:
        d = Decimal(value.strip())
    except InvalidOperation:
        return None
    if not d.is_finite():
        return None
    return d


def validate_salary_months(value: Any) -> str | None:
    """Error message or None. Range [0, 18], half-month steps."""
    d = parse_salary_months(value)
    if d is None:
        return "salary_months 必须是有效的数字"
    if d < SALARY_MONTHS_MIN or d > SALARY_MONTHS_MAX:
        return f"salary_months 必须在 {SALARY_MONTHS_MIN}-{SALARY_MONTHS_MAX} 之间"
    if d % _HALF != 0:
        return "salary_months 必须是 0.5 的倍数"
    return None


def validate_multi_choice(field: str, value: Any, options: tuple[str, ...]) -> list[str]:
    """Error messages for a multi-select answer: a list of distinct options, at most one of each."""
    if not isinstance(value, list):
        return [f"{field} 必须是数组"]
    messages = []
    if len(value) > len(options):
        messages.append(f"{field} 选项数量超过限制")
    if any(not isinstance(item, str) for item in value):
        messages.append(f"{field} 包含非字符串选项")
        return messages
    for item in value:
        if item not in options:
            messages.append(f"{field} 包含无效选项: {item[:MAX_STRING_LENGTH]}")
    if len(set(value)) != len(value):
        messages.append(f"{field} 包含重复选项")
    return messages


def validate_survey_data(data: Any) -> list[dict[str, str]]:
    """All validation errors of a submission body; an empty list means valid."""
    if not isinstance(data, dict):
        return [_error("body", "无效的数据格式")]

    errors: list[dict[str, str]] = []

    for key in data:
        if key not in ALLOWED_FIELDS:
            errors.append(_error(str(key)[:MAX_STRING_LENGTH], f"包含未知字段: {str(key)[:MAX_STRING_LENGTH]}"))

    for key, value in data.items():
        if isinstance(value, str) and len(value) > MAX_STRING_LENGTH:
            errors.append(_error(str(key), f"{key} 长度超过限制 (最大 {MAX_STRING_LENGTH} 字符)"))
        elif isinstance(value, list) and any(isinstance(v, str) and len(v) > MAX_STRING_LENGTH for v in value):
            errors.append(_error(str(key), f"{key} 选项长度超过限制 (最大 {MAX_STRING_LENGTH} 字符)"))

    missing = [f for f in ANSWER_FIELDS if _is_blank(data.get(f))]
    for field in missing:
        errors.append(_error(field, f"缺少必填字段: {field}"))

    if "salary_months" not in missing:
        msg = validate_salary_months(data["salary_months"])
        if msg:
            errors.append(_error("salary_months", msg))

    for field, options in CHOICE_FIELDS.items():
        if field in missing:
            continue
        value = data[field]
        if not isinstance(value, str) or value not in options:
            errors.append(_error(field, f"{field} 选项无效"))

    for field, options in MULTI_FIELDS.items():
        if field in missing:
            continue
        for msg in validate_multi_choice(field, data[field], options):
            errors.append(_error(field, msg))

    return errors


def _clean(value: Any) -> str:
    return str(value).strip()[:STORED_STRING_LENGTH]


def sanitize(data: dict[str, Any]) -> SurveyAnswers:
    """Trim and cap strings again before they reach the database. Call only on validated data."""
    return SurveyAnswers(
        industry=_clean(data["industry"]),
        salary_months=parse_salary_months(data["salary_months"]),
        personal_income=_clean(data["personal_income"]),
        personal_arrears=_clean(data["personal_arrears"]),
        friends_status=_clean(data["friends_status"]),
        friends_arrears_perception=_clean(data["friends_arrears_perception"]),
        welfare_cut=tuple(_clean(v) for v in data["welfare_cut"]),
    )
