import json
from decimal import Decimal

import pytest

from wage_survey.questions import MULTI_FIELDS
from wage_survey.validators import sanitize, validate_multi_choice, validate_salary_months, validate_survey_data


def fields(errors):
    return {e["field"] for e in errors}


def test_valid_answers(valid_answers):
    assert validate_survey_data(valid_answers) == []


def test_envelope_keys_are_allowed(valid_answers):
    data = dict(valid_answers, submitToken="1-x", behaviorData={}, humanVerificationToken="t")
    assert validate_survey_data(data) == []


@pytest.mark.parametrize("months", [i / 2 for i in range(37)])
def test_every_half_month_accepted(months):
    assert validate_salary_months(months) is None


@pytest.mark.parametrize("months", ["0", "12.5", " 18 ", 13, "6.0"])
def test_numeric_strings_and_ints_accepted(months):
    assert validate_salary_months(months) is None


@pytest.mark.parametrize(
    "months",
    [12.3, 0.25, 18.5, -0.5, 19, 100, True, False, "abc", "", None, [12], float("nan"), float("inf"), "Infinity"],
)
def test_invalid_salary_months(months):
    assert validate_salary_months(months) is not None


def test_unknown_option_in_welfare_cut(valid_answers):
    errors = validate_survey_data(dict(valid_answers, welfare_cut=["不存在的选项"]))
    assert fields(errors) == {"welfare_cut"}


@pytest.mark.parametrize(
    "welfare_cut",
    [
        "年终奖/13薪 消失",
        ["年终奖/13薪 消失", "年终奖/13薪 消失"],
        ["年终奖/13薪 消失", 3],
        ["公积金/社保基数调降"] * 7,
        [],
    ],
)
def test_invalid_welfare_cut(valid_answers, welfare_cut):
    assert fields(validate_survey_data(dict(valid_answers, welfare_cut=welfare_cut))) == {"welfare_cut"}


def test_all_welfare_cut_options_together(valid_answers):
    data = dict(
        valid_answers,
        welfare_cut=[
            "公积金/社保基数调降",
            "年终奖/13薪 消失",
            "加班费/打车餐补 取消",
            "裁员赔偿 N+1 变 N 或更少",
            "没有任何福利缩水/维持原状",
            "福利反而增加了",
        ],
    )
    assert validate_survey_data(data) == []


@pytest.mark.parametrize("value", ["互联网/大厂 ", "互联网", "INTERNET", 1, None, ""])
def test_choice_must_match_exactly(valid_answers, value):
    assert fields(validate_survey_data(dict(valid_answers, industry=value))) == {"industry"}


def test_missing_fields_all_reported(valid_answers):
    data = dict(valid_answers)
    del data["friends_status"]
    del data["salary_months"]
    errors = validate_survey_data(data)
    assert fields(errors) == {"friends_status", "salary_months"}


def test_unknown_top_level_key(valid_answers):
    errors = validate_survey_data(dict(valid_answers, ip="10.0.0.1"))
    assert fields(errors) == {"ip"}


def test_overlong_string(valid_answers):
    errors = validate_survey_data(dict(valid_answers, personal_income="涨" * 201))
    assert any(e["field"] == "personal_income" and "长度" in e["message"] for e in errors)


def test_several_problems_collected(valid_answers):
    data = dict(valid_answers, salary_months=12.3, personal_arrears="不知道", welfare_cut=["不存在的选项"])
    assert fields(validate_survey_data(data)) == {"salary_months", "personal_arrears", "welfare_cut"}


@pytest.mark.parametrize("body", [None, [], "text", 12])
def test_non_object_body(body):
    assert fields(validate_survey_data(body)) == {"body"}


def test_sanitize(valid_answers):
    answers = sanitize(dict(valid_answers, salary_months="12.5"))
    assert answers.salary_months == Decimal("12.5")
    assert answers.industry == "互联网/大厂"
    assert answers.welfare_cut == ("年终奖/13薪 消失",)
    assert json.loads(answers.welfare_cut_json()) == ["年终奖/13薪 消失"]
    assert "年终奖" in answers.welfare_cut_json()


def test_multi_choice_messages_name_the_field():
    options = ("甲", "乙")
    assert validate_multi_choice("perks", ["甲", "乙"], options) == []
    assert validate_multi_choice("perks", "甲", options) == ["perks 必须是数组"]
    assert validate_multi_choice("perks", ["丙"], options) == ["perks 包含无效选项: 丙"]
    assert validate_multi_choice("perks", ["甲", "甲"], options) == ["perks 包含重复选项"]
    assert validate_multi_choice("perks", ["甲", "甲", "乙"], options) == ["perks 选项数量超过限制", "perks 包含重复选项"]


@pytest.mark.parametrize("field", sorted(MULTI_FIELDS))
def test_every_multi_field_is_validated(valid_answers, field):
    errors = validate_survey_data(dict(valid_answers, **{field: ["不存在的选项"]}))
    assert fields(errors) == {field}
