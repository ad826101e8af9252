"""
Tables of the survey store and the trigger that keeps aggregated_stats in step with survey_responses.

The aggregate is maintained by the database itself inside the writing transaction, so application
instances never race each other on read-modify-write of the counters.
Migrations (backend/alembic) create the same objects in production; metadata.create_all() is used
for local SQLite databases and tests.
"""
from sqlalchemy import CheckConstraint, Column, DateTime, Integer, Numeric, String, Text, event, func, text

from wage_survey.db import Base
from wage_survey.questions import AGGREGATE_BUCKETS


class SurveyResponse(Base):
    """One accepted submission. Append-only."""

    __tablename__ = "survey_responses"
    __table_args__ = (
        CheckConstraint("salary_months >= 0 AND salary_months <= 18", name="survey_responses_salary_months_check"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    industry = Column(String(100), nullable=False)
    salary_months = Column(Numeric(4, 1), nullable=False)
    personal_income = Column(String(100), nullable=False, index=True)
    friends_status = Column(String(100), nullable=False, index=True)
    personal_arrears = Column(String(100), nullable=False, index=True)
    friends_arrears_perception = Column(String(100), nullable=False)
    # JSON array of welfare_cut options
    welfare_cut = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)


class AggregatedStats(Base):
    """Single row (id = 1) summarizing survey_responses. Written only by the trigger."""

    __tablename__ = "aggregated_stats"

    id = Column(Integer, primary_key=True, autoincrement=False)
    total_responses = Column(Integer, nullable=False, server_default="0")
    avg_salary_months = Column(Numeric(10, 2), nullable=False, server_default="0")
    median_salary_months = Column(Numeric(10, 2), nullable=False, server_default="0")
    income_growth = Column(Integer, nullable=False, server_default="0")
    income_stable = Column(Integer, nullable=False, server_default="0")
    income_decline = Column(Integer, nullable=False, server_default="0")
    friends_better = Column(Integer, nullable=False, server_default="0")
    friends_mixed = Column(Integer, nullable=False, server_default="0")
    friends_worse = Column(Integer, nullable=False, server_default="0")
    arrears_safe = Column(Integer, nullable=False, server_default="0")
    arrears_risk = Column(Integer, nullable=False, server_default="0")
    last_updated = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class RateLimitWindow(Base):
    """Global request counter per time bucket. No client data."""

    __tablename__ = "rate_limit_global"

    id = Column(Integer, primary_key=True, autoincrement=True)
    window_start = Column(DateTime(timezone=True), nullable=False, unique=True)
    request_count = Column(Integer, nullable=False, server_default="0")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class UsedToken(Base):
    """Consumed one-time submit token. The unique constraint on token is the replay lock."""

    __tablename__ = "used_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    token = Column(String(100), nullable=False, unique=True)
    used_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)


SEED_AGGREGATE_SQL = "INSERT INTO aggregated_stats (id) VALUES (1) ON CONFLICT (id) DO NOTHING"

_MEDIAN_SQL = {
    "postgresql": (
        "(SELECT COALESCE(PERCENTILE_CONT(0.5) WITHIN GROUP (ORDER BY salary_months), 0) "
        "FROM survey_responses)"
    ),
    # SQLite has no percentile aggregate: average of the one or two middle rows
    "sqlite": (
        "(SELECT COALESCE(AVG(salary_months), 0) FROM ("
        "SELECT salary_months FROM survey_responses ORDER BY salary_months "
        "LIMIT 2 - (SELECT COUNT(*) FROM survey_responses) % 2 "
        "OFFSET (SELECT (COUNT(*) - 1) / 2 FROM survey_responses)))"
    ),
}


def _sql_list(options: tuple[str, ...]) -> str:
    return ", ".join("'" + o.replace("'", "''") + "'" for o in options)


def refresh_aggregate_sql(dialect: str) -> str:
    """UPDATE that recomputes the aggregate row from survey_responses."""
    if dialect not in _MEDIAN_SQL:
        raise RuntimeError(f"Aggregate trigger is not available for dialect {dialect!r}")
    assignments = [
        "total_responses = (SELECT COUNT(*) FROM survey_responses)",
        "avg_salary_months = (SELECT COALESCE(AVG(salary_months), 0) FROM survey_responses)",
        f"median_salary_months = {_MEDIAN_SQL[dialect]}",
    ]
    for column, (field, options) in AGGREGATE_BUCKETS.items():
        assignments.append(
            f"{column} = (SELECT COUNT(*) FROM survey_responses WHERE {field} IN ({_sql_list(options)}))"
        )
    assignments.append("last_updated = CURRENT_TIMESTAMP")
    return "UPDATE aggregated_stats SET " + ", ".join(assignments) + " WHERE id = 1"


def aggregate_trigger_ddl(dialect: str) -> list[str]:
    """DDL for the aggregate trigger: statement-level on PostgreSQL, one row-level trigger per event on SQLite."""
    refresh = refresh_aggregate_sql(dialect)
    if dialect == "postgresql":
        # Lock first, in its own statement: under READ COMMITTED the UPDATE then takes a fresh
        # snapshot that includes rows committed by the transaction that held the lock.
        return [
            "CREATE OR REPLACE FUNCTION refresh_aggregated_stats() RETURNS TRIGGER AS $$\n"
            "BEGIN\n  PERFORM 1 FROM aggregated_stats WHERE id = 1 FOR UPDATE;\n"
            f"  {refresh};\n  RETURN NULL;\nEND;\n$$ LANGUAGE plpgsql",
            "DROP TRIGGER IF EXISTS trigger_refresh_aggregated_stats ON survey_responses",
            "CREATE TRIGGER trigger_refresh_aggregated_stats "
            "AFTER INSERT OR UPDATE OR DELETE ON survey_responses "
            "FOR EACH STATEMENT EXECUTE FUNCTION refresh_aggregated_stats()",
        ]
    return [
        f"CREATE TRIGGER IF NOT EXISTS trigger_refresh_aggregated_stats_{op.lower()} "
        f"AFTER {op} ON survey_responses BEGIN {refresh}; END"
        for op in ("INSERT", "UPDATE", "DELETE")
    ]


@event.listens_for(Base.metadata, "after_create")
def _install_aggregate(target, connection, **kw) -> None:
    dialect = connection.dialect.name
    connection.execute(text(SEED_AGGREGATE_SQL))
    for stmt in aggregate_trigger_ddl(dialect):
        connection.execute(text(stmt))
    connection.execute(text(refresh_aggregate_sql(dialect)))
