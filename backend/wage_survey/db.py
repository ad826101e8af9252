"""
Database session (sync). Tables: survey_responses, aggregated_stats, rate_limit_global, used_tokens.
All cross-instance coordination goes through the store's atomic operations, see models.py.
"""
from contextlib import contextmanager
from typing import Any, Generator

from sqlalchemy import create_engine, text
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import DBAPIError, TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from wage_survey.config import DATABASE_URL, DB_CONNECT_TIMEOUT_SECONDS, DB_STATEMENT_TIMEOUT_SECONDS

# PostgreSQL: "canceling statement due to statement timeout"
QUERY_CANCELED_PGCODE = "57014"


def _connect_args(url: str) -> dict[str, Any]:
    if url.startswith("postgresql"):
        return {
            "connect_timeout": DB_CONNECT_TIMEOUT_SECONDS,
            "options": f"-c statement_timeout={DB_STATEMENT_TIMEOUT_SECONDS * 1000}",
        }
    return {}


engine = create_engine(DATABASE_URL, pool_pre_ping=True, connect_args=_connect_args(DATABASE_URL))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


@contextmanager
def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def dialect_name(db: Session) -> str:
    return db.get_bind().dialect.name


def upsert(db: Session, model):
    """INSERT ... ON CONFLICT construct for the session's dialect (PostgreSQL in production, SQLite locally)."""
    if dialect_name(db) == "postgresql":
        return pg_insert(model)
    return sqlite_insert(model)


def set_local_statement_timeout(db: Session, seconds: int) -> None:
    """Bound every statement of the current transaction. No-op outside PostgreSQL."""
    if dialect_name(db) == "postgresql":
        db.execute(text(f"SET LOCAL statement_timeout = {int(seconds) * 1000}"))


def is_timeout_error(exc: Exception) -> bool:
    """Statement cancelled by statement_timeout, or no pooled connection became available in time."""
    if isinstance(exc, PoolTimeoutError):
        return True
    if isinstance(exc, DBAPIError):
        return getattr(exc.orig, "pgcode", None) == QUERY_CANCELED_PGCODE
    return False


def check_schema() -> bool:
    """Check that migrations are applied: the aggregate row must exist."""
    with get_db() as db:
        r = db.execute(text("SELECT 1 FROM aggregated_stats WHERE id = 1"))
        return r.scalar() is not None
