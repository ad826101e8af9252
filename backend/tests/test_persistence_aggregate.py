import json
from decimal import Decimal

import pytest
from sqlalchemy import delete, func, select

from wage_survey.db import check_schema
from wage_survey.errors import PersistenceFailure
from wage_survey.models import AggregatedStats, SurveyResponse, aggregate_trigger_ddl, refresh_aggregate_sql
from wage_survey.persistence import PersistenceGateway
from wage_survey.validators import sanitize


def answers(valid_answers, **overrides):
    return sanitize(dict(valid_answers, **overrides))


def aggregate(db_session) -> AggregatedStats:
    db_session.expire_all()
    return db_session.execute(select(AggregatedStats).where(AggregatedStats.id == 1)).scalar_one()


def row_count(db_session) -> int:
    return db_session.execute(select(func.count()).select_from(SurveyResponse)).scalar_one()


def test_schema_seeded(engine, db_session):
    assert check_schema() is True
    stats = aggregate(db_session)
    assert stats.total_responses == 0
    assert stats.avg_salary_months == 0
    assert stats.median_salary_months == 0


def test_save_returns_id_and_stores_row(engine, db_session, valid_answers):
    gateway = PersistenceGateway()
    first = gateway.save(answers(valid_answers))
    second = gateway.save(answers(valid_answers, salary_months=6.5))
    assert second > first

    row = db_session.get(SurveyResponse, second)
    assert row.salary_months == Decimal("6.5")
    assert json.loads(row.welfare_cut) == ["年终奖/13薪 消失"]
    assert row.created_at is not None


def test_aggregate_total_matches_rows(engine, db_session, valid_answers):
    gateway = PersistenceGateway()
    for i in range(5):
        gateway.save(answers(valid_answers, salary_months=i))
        assert aggregate(db_session).total_responses == row_count(db_session) == i + 1


def test_aggregate_tracks_deletes(engine, db_session, valid_answers):
    gateway = PersistenceGateway()
    ids = [gateway.save(answers(valid_answers)) for _ in range(3)]
    db_session.execute(delete(SurveyResponse).where(SurveyResponse.id == ids[0]))
    db_session.commit()
    assert aggregate(db_session).total_responses == row_count(db_session) == 2


def test_mean_median_and_buckets(engine, db_session, valid_answers):
    gateway = PersistenceGateway()
    gateway.save(answers(valid_answers, salary_months=6, personal_income="逆势增长 (涨幅 > 10%)"))
    gateway.save(answers(valid_answers, salary_months=12, personal_income="严重下跌 (跌幅 > 30%)"))
    gateway.save(answers(valid_answers, salary_months=13, personal_arrears="正在被拖欠 (半年以上/无望)"))
    gateway.save(answers(
        valid_answers,
        salary_months=17,
        friends_status="都在谈论维权/讨薪，情况恶劣",
        personal_arrears="正在被拖欠 (3个月以内)",
    ))

    stats = aggregate(db_session)
    assert stats.total_responses == 4
    assert float(stats.avg_salary_months) == pytest.approx(12.0)
    assert float(stats.median_salary_months) == pytest.approx(12.5)
    assert (stats.income_growth, stats.income_stable, stats.income_decline) == (1, 2, 1)
    assert (stats.friends_better, stats.friends_mixed, stats.friends_worse) == (0, 3, 1)
    assert (stats.arrears_safe, stats.arrears_risk) == (2, 2)


def test_median_of_odd_count(engine, db_session, valid_answers):
    gateway = PersistenceGateway()
    for months in (18, 0.5, 3):
        gateway.save(answers(valid_answers, salary_months=months))
    assert float(aggregate(db_session).median_salary_months) == pytest.approx(3.0)


def test_store_error_raises_persistence_failure(engine, valid_answers):
    SurveyResponse.__table__.drop(engine)
    with pytest.raises(PersistenceFailure):
        PersistenceGateway().save(answers(valid_answers))


def test_trigger_ddl_per_dialect():
    pg = aggregate_trigger_ddl("postgresql")
    assert any("FOR EACH STATEMENT" in stmt for stmt in pg)
    assert "PERCENTILE_CONT" in refresh_aggregate_sql("postgresql")
    sqlite = aggregate_trigger_ddl("sqlite")
    assert len(sqlite) == 3
    with pytest.raises(RuntimeError):
        refresh_aggregate_sql("mysql")


def test_pg_trigger_locks_aggregate_row_before_recompute():
    function = aggregate_trigger_ddl("postgresql")[0]
    lock = function.index("PERFORM 1 FROM aggregated_stats WHERE id = 1 FOR UPDATE;")
    assert lock < function.index("UPDATE aggregated_stats SET")
