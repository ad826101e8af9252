"""
Pytest configuration and fixtures.

Tests run against an in-memory SQLite database created from the ORM metadata (tables, aggregate
triggers and the seed row), patched into wage_survey.db.SessionLocal.
"""
import os
import time

# Must be set before wage_survey.config is imported
os.environ["APP_ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.pop("HUMAN_VERIFY_SECRET_KEY", None)
os.environ.pop("CLEANUP_SECRET", None)

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import wage_survey.models  # noqa: F401 - register tables on Base.metadata
from wage_survey import db as db_module
from wage_survey.behavior import BehaviorScorer, BehaviorThresholds
from wage_survey.captcha import HumanVerifier
from wage_survey.db import Base
from wage_survey.deps import get_stats_reader, get_submission_pipeline
from wage_survey.persistence import PersistenceGateway
from wage_survey.rate_limit import GlobalRateLimiter
from wage_survey.stats import StatsReader, clear_cache
from wage_survey.submit_service import SubmissionPipeline
from wage_survey.tokens import TokenLedger, generate_token


@pytest.fixture
def engine(monkeypatch):
    """Fresh database per test."""
    eng = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(bind=eng)
    monkeypatch.setattr(db_module, "SessionLocal", sessionmaker(autocommit=False, autoflush=False, bind=eng))
    yield eng
    eng.dispose()


@pytest.fixture
def db_session(engine):
    session = db_module.SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def valid_answers():
    return {
        "industry": "互联网/大厂",
        "salary_months": 12,
        "personal_income": "基本持平 (波动 < 10%)",
        "personal_arrears": "从未欠薪，按时发放",
        "friends_status": "只有极个别能力强的在涨，大部分苟着",
        "friends_arrears_perception": "听说过一两个案例 (偶发)",
        "welfare_cut": ["年终奖/13薪 消失"],
    }


@pytest.fixture
def human_behavior():
    """Telemetry of someone who spent 45 s on the form and clicked through it."""
    def _make(**overrides):
        now = int(time.time() * 1000)
        data = {
            "mouseMovements": 40,
            "clicks": 9,
            "scrolls": 4,
            "keyPresses": 0,
            "touchEvents": 0,
            "startTime": now - 45_000,
            "lastActivity": now - 500,
        }
        data.update(overrides)
        return data
    return _make


@pytest.fixture
def make_submission(valid_answers, human_behavior):
    """Complete submit body with a fresh token; keyword arguments replace top-level keys."""
    def _make(**overrides):
        body = dict(valid_answers)
        body["submitToken"] = generate_token()
        body["behaviorData"] = human_behavior()
        body["humanVerificationToken"] = "test-pass"
        body.update(overrides)
        return body
    return _make


def mock_verifier(success=True, status_code=200):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, json={"success": success})
    return HumanVerifier(secret_key="test-secret", client=httpx.Client(transport=httpx.MockTransport(handler)))


@pytest.fixture
def make_pipeline(engine):
    def _make(verify_success=True, verify_status=200, limiter=None):
        return SubmissionPipeline(
            limiter=limiter or GlobalRateLimiter(),
            verifier=mock_verifier(verify_success, verify_status),
            ledger=TokenLedger(),
            scorer=BehaviorScorer(BehaviorThresholds()),
            gateway=PersistenceGateway(),
        )
    return _make


@pytest.fixture
def app(engine):
    from wage_survey.main import app as fastapi_app

    clear_cache()
    fastapi_app.dependency_overrides[get_stats_reader] = lambda: StatsReader(cache_seconds=0)
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()
    clear_cache()


@pytest.fixture
def use_pipeline(app):
    """Route POST /api/survey/submit through the given pipeline."""
    def _use(pipeline):
        app.dependency_overrides[get_submission_pipeline] = lambda: pipeline
    return _use


@pytest.fixture
def client(app, make_pipeline, use_pipeline):
    use_pipeline(make_pipeline())
    return TestClient(app)
