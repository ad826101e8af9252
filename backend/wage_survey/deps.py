"""FastAPI dependencies: pipeline stages built from config. Tests replace them via app.dependency_overrides."""
from wage_survey.behavior import BehaviorScorer
from wage_survey.captcha import HumanVerifier
from wage_survey.persistence import PersistenceGateway
from wage_survey.rate_limit import GlobalRateLimiter
from wage_survey.stats import StatsReader
from wage_survey.submit_service import SubmissionPipeline
from wage_survey.tokens import TokenLedger


def get_rate_limiter() -> GlobalRateLimiter:
    return GlobalRateLimiter()


def get_token_ledger() -> TokenLedger:
    return TokenLedger()


def get_stats_reader() -> StatsReader:
    return StatsReader()


def get_submission_pipeline() -> SubmissionPipeline:
    return SubmissionPipeline(
        limiter=GlobalRateLimiter(),
        verifier=HumanVerifier(),
        ledger=TokenLedger(),
        scorer=BehaviorScorer(),
        gateway=PersistenceGateway(),
    )
