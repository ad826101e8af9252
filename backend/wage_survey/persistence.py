"""
Append one accepted response to survey_responses.

The insert and the aggregate trigger run in the same transaction: either both the row and the
refreshed aggregate become visible, or neither does.
"""
import logging

from sqlalchemy.exc import SQLAlchemyError

from wage_survey.config import PERSIST_TIMEOUT_SECONDS
from wage_survey.db import get_db, is_timeout_error, set_local_statement_timeout
from wage_survey.errors import PersistenceFailure, PersistenceTimeout
from wage_survey.models import SurveyResponse
from wage_survey.validators import SurveyAnswers

logger = logging.getLogger(__name__)


class PersistenceGateway:
    def __init__(self, timeout_seconds: int = PERSIST_TIMEOUT_SECONDS) -> None:
        self.timeout_seconds = timeout_seconds

    def save(self, answers: SurveyAnswers) -> int:
        """Insert the response and return its id."""
        with get_db() as db:
            try:
                set_local_statement_timeout(db, self.timeout_seconds)
                row = SurveyResponse(
                    industry=answers.industry,
                    salary_months=answers.salary_months,
                    personal_income=answers.personal_income,
                    personal_arrears=answers.personal_arrears,
                    friends_status=answers.friends_status,
                    friends_arrears_perception=answers.friends_arrears_perception,
                    welfare_cut=answers.welfare_cut_json(),
                )
                db.add(row)
                db.flush()
                response_id = row.id
                if response_id is None:
                    raise PersistenceFailure("insert returned no id")
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                if is_timeout_error(e):
                    logger.error("Saving survey response timed out after %ss", self.timeout_seconds)
                    raise PersistenceTimeout(f"insert timed out: {e.__class__.__name__}") from e
                logger.error("Saving survey response failed: %s", e)
                raise PersistenceFailure(f"insert failed: {e.__class__.__name__}") from e
            except PersistenceFailure:
                db.rollback()
                raise
        logger.info("Survey response saved id=%s", response_id)
        return response_id
