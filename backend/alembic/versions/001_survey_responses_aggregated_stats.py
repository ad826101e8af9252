"""survey_responses, aggregated_stats and the trigger that keeps the aggregate current

Revision ID: 001
Revises:
Create Date: Initial schema

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

from wage_survey.models import aggregate_trigger_ddl

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "survey_responses",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("industry", sa.String(100), nullable=False),
        sa.Column("salary_months", sa.Numeric(4, 1), nullable=False),
        sa.Column("personal_income", sa.String(100), nullable=False),
        sa.Column("friends_status", sa.String(100), nullable=False),
        sa.Column("personal_arrears", sa.String(100), nullable=False),
        sa.Column("friends_arrears_perception", sa.String(100), nullable=False),
        sa.Column("welfare_cut", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_check_constraint(
        "survey_responses_salary_months_check",
        "survey_responses",
        "salary_months >= 0 AND salary_months <= 18",
    )
    op.create_index("ix_survey_responses_created_at", "survey_responses", ["created_at"], unique=False)
    op.create_index("ix_survey_responses_personal_income", "survey_responses", ["personal_income"], unique=False)
    op.create_index("ix_survey_responses_friends_status", "survey_responses", ["friends_status"], unique=False)
    op.create_index("ix_survey_responses_personal_arrears", "survey_responses", ["personal_arrears"], unique=False)

    # Single row, id = 1; written only by the trigger below
    op.create_table(
        "aggregated_stats",
        sa.Column("id", sa.Integer(), autoincrement=False, nullable=False),
        sa.Column("total_responses", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("avg_salary_months", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("median_salary_months", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("income_growth", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("income_stable", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("income_decline", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("friends_better", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("friends_mixed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("friends_worse", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("arrears_safe", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("arrears_risk", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_updated", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.execute(sa.text("INSERT INTO aggregated_stats (id) VALUES (1) ON CONFLICT (id) DO NOTHING"))

    for stmt in aggregate_trigger_ddl("postgresql"):
        op.execute(sa.text(stmt))


def downgrade() -> None:
    op.execute(sa.text("DROP TRIGGER IF EXISTS trigger_refresh_aggregated_stats ON survey_responses"))
    op.execute(sa.text("DROP FUNCTION IF EXISTS refresh_aggregated_stats()"))
    op.drop_table("aggregated_stats")
    op.drop_index("ix_survey_responses_personal_arrears", table_name="survey_responses")
    op.drop_index("ix_survey_responses_friends_status", table_name="survey_responses")
    op.drop_index("ix_survey_responses_personal_income", table_name="survey_responses")
    op.drop_index("ix_survey_responses_created_at", table_name="survey_responses")
    op.drop_table("survey_responses")
