from datetime import datetime, timedelta, timezone

from wage_survey import config
from wage_survey.deps import get_rate_limiter, get_token_ledger
from wage_survey.maintenance import run_cleanup
from wage_survey.models import UsedToken
from wage_survey.rate_limit import GlobalRateLimiter
from wage_survey.tokens import TokenLedger, generate_token

T0 = datetime(2026, 3, 1, 12, 0, 30, tzinfo=timezone.utc)
T0_MS = int(T0.timestamp() * 1000)


def stale_limiter_and_ledger():
    """One rate-limit bucket and one token, both written five minutes before 'now'."""
    GlobalRateLimiter(clock=lambda: T0).admit()
    TokenLedger(clock_ms=lambda: T0_MS).consume(generate_token(now_ms=T0_MS))
    later = T0 + timedelta(minutes=5)
    return (
        GlobalRateLimiter(clock=lambda: later),
        TokenLedger(clock_ms=lambda: int(later.timestamp() * 1000)),
    )


def cleaned(result):
    return {k: result[k] for k in ("rateLimitCleaned", "tokensCleaned")}


def test_run_cleanup_reports_deleted_rows(engine):
    limiter, ledger = stale_limiter_and_ledger()
    assert cleaned(run_cleanup(limiter, ledger)) == {"rateLimitCleaned": 1, "tokensCleaned": 1}
    assert cleaned(run_cleanup(limiter, ledger)) == {"rateLimitCleaned": 0, "tokensCleaned": 0}


def test_run_cleanup_reports_window_usage(engine):
    limiter, ledger = stale_limiter_and_ledger()
    limiter.admit()
    limiter.admit()
    usage = run_cleanup(limiter, ledger)["rateLimitUsage"]
    assert usage["request_count"] == 2
    assert usage["window_end"] == (T0 + timedelta(minutes=5)).isoformat()


def test_one_failing_part_does_not_stop_the_other(engine):
    limiter, ledger = stale_limiter_and_ledger()
    UsedToken.__table__.drop(engine)
    assert cleaned(run_cleanup(limiter, ledger)) == {"rateLimitCleaned": 1, "tokensCleaned": None}


def test_cleanup_endpoint_open_without_secret(app, client):
    limiter, ledger = stale_limiter_and_ledger()
    app.dependency_overrides[get_rate_limiter] = lambda: limiter
    app.dependency_overrides[get_token_ledger] = lambda: ledger
    r = client.post("/api/cleanup")
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert cleaned(body) == {"rateLimitCleaned": 1, "tokensCleaned": 1}
    assert body["rateLimitUsage"]["request_count"] == 0
    assert body["rateLimitUsage"]["window_start"] is None


def test_cleanup_endpoint_requires_secret(client, monkeypatch):
    monkeypatch.setattr(config, "CLEANUP_SECRET", "s3cret")
    assert client.post("/api/cleanup").status_code == 401
    assert client.post("/api/cleanup", headers={"Authorization": "Bearer wrong"}).status_code == 401
    r = client.post("/api/cleanup", headers={"Authorization": "Bearer s3cret"})
    assert r.status_code == 200
    assert r.json()["success"] is True
