"""
Survey question catalog: the fixed option set of every answer field.
Validator, aggregate triggers and GET /api/survey/questions all read from here.
"""
from typing import Any

INDUSTRY_OPTIONS = (
    "公务员/体制内 (岸上)",
    "新能源/硬科技/出海",
    "互联网/大厂",
    "房地产/建筑/设计",
    "金融/证券/投资",
    "制造业/外贸/实体",
    "餐饮/服务/零售",
    "自由职业/待业",
)

PERSONAL_INCOME_OPTIONS = (
    "逆势增长 (涨幅 > 10%)",
    "基本持平 (波动 < 10%)",
    "温和下跌 (跌幅 10%-30%)",
    "严重下跌 (跌幅 > 30%)",
    "腰斩/失业归零",
)

PERSONAL_ARREARS_OPTIONS = (
    "从未欠薪，按时发放",
    "偶尔延迟，最终发了",
    "正在被拖欠 (3个月以内)",
    "正在被拖欠 (半年以上/无望)",
)

FRIENDS_STATUS_OPTIONS = (
    "普遍在涨薪/跳槽，行情不错",
    "只有极个别能力强的在涨，大部分苟着",
    "大家都在降薪/被裁，怨气很重",
    "都在谈论维权/讨薪，情况恶劣",
)

FRIENDS_ARREARS_PERCEPTION_OPTIONS = (
    "几乎没听说过 (罕见)",
    "听说过一两个案例 (偶发)",
    "经常听到有人抱怨 (普遍)",
    "几乎各行各业都在发生 (泛滥)",
)

WELFARE_CUT_OPTIONS = (
    "公积金/社保基数调降",
    "年终奖/13薪 消失",
    "加班费/打车餐补 取消",
    "裁员赔偿 N+1 变 N 或更少",
    "没有任何福利缩水/维持原状",
    "福利反而增加了",
)

SALARY_MONTHS_MIN = 0
SALARY_MONTHS_MAX = 18
SALARY_MONTHS_STEP = 0.5

# Single-choice fields -> option set
CHOICE_FIELDS: dict[str, tuple[str, ...]] = {
    "industry": INDUSTRY_OPTIONS,
    "personal_income": PERSONAL_INCOME_OPTIONS,
    "personal_arrears": PERSONAL_ARREARS_OPTIONS,
    "friends_status": FRIENDS_STATUS_OPTIONS,
    "friends_arrears_perception": FRIENDS_ARREARS_PERCEPTION_OPTIONS,
}
MULTI_FIELDS: dict[str, tuple[str, ...]] = {
    "welfare_cut": WELFARE_CUT_OPTIONS,
}
ANSWER_FIELDS = (
    "industry",
    "salary_months",
    "personal_income",
    "personal_arrears",
    "friends_status",
    "friends_arrears_perception",
    "welfare_cut",
)

# Aggregate buckets: aggregated_stats column -> (answer field, options counted in it)
AGGREGATE_BUCKETS: dict[str, tuple[str, tuple[str, ...]]] = {
    "income_growth": ("personal_income", PERSONAL_INCOME_OPTIONS[0:1]),
    "income_stable": ("personal_income", PERSONAL_INCOME_OPTIONS[1:2]),
    "income_decline": ("personal_income", PERSONAL_INCOME_OPTIONS[2:5]),
    "friends_better": ("friends_status", FRIENDS_STATUS_OPTIONS[0:1]),
    "friends_mixed": ("friends_status", FRIENDS_STATUS_OPTIONS[1:2]),
    "friends_worse": ("friends_status", FRIENDS_STATUS_OPTIONS[2:4]),
    "arrears_safe": ("personal_arrears", PERSONAL_ARREARS_OPTIONS[0:2]),
    "arrears_risk": ("personal_arrears", PERSONAL_ARREARS_OPTIONS[2:4]),
}


def question_catalog() -> list[dict[str, Any]]:
    """Questions in form order, for rendering on the client."""
    catalog: list[dict[str, Any]] = [{"id": "industry", "type": "choice", "options": list(INDUSTRY_OPTIONS)}]
    catalog.append({
        "id": "salary_months",
        "type": "range",
        "min": SALARY_MONTHS_MIN,
        "max": SALARY_MONTHS_MAX,
        "step": SALARY_MONTHS_STEP,
    })
    for field in ("personal_income", "personal_arrears", "friends_status", "friends_arrears_perception"):
        catalog.append({"id": field, "type": "choice", "options": list(CHOICE_FIELDS[field])})
    for field, options in MULTI_FIELDS.items():
        catalog.append({"id": field, "type": "multi", "options": list(options)})
    return catalog
