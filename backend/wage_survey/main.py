"""
Anonymous wage survey: Backend.
FastAPI entry point. Run: uvicorn wage_survey.main:app --host 0.0.0.0 --port 8000
"""
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from wage_survey import config
from wage_survey.db import check_schema
from wage_survey.errors import AdmissionRejected, RateLimitExceeded
from wage_survey.routers import cleanup, stats, submit

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Wage Survey",
    description="Anonymous wage survey: submission gate and public statistics",
    version="0.1.0",
)

app.include_router(submit.router)
app.include_router(stats.router)
app.include_router(cleanup.router)


@app.exception_handler(AdmissionRejected)
async def admission_rejected_handler(request: Request, exc: AdmissionRejected) -> JSONResponse:
    headers = {"Retry-After": str(exc.retry_after)} if isinstance(exc, RateLimitExceeded) else None
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(include_reason=config.is_development()),
        headers=headers,
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"success": False, "code": "INTERNAL_ERROR", "detail": "服务器内部错误，请稍后重试"},
    )


@app.on_event("startup")
def startup():
    """Warn early if migrations have not been applied."""
    try:
        if not check_schema():
            logger.warning("aggregated_stats row id=1 missing: run `alembic upgrade head`")
    except SQLAlchemyError as e:
        logger.warning("Schema check failed, database unavailable? %s", e)


@app.get("/health")
def health():
    """Liveness check."""
    return {"status": "ok"}


@app.get("/")
def root():
    return {"service": "wage-survey-backend", "docs": "/docs"}
