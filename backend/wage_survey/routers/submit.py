"""
POST /api/survey/submit: anonymous survey submission.
The body is read here (bounded); every check runs in SubmissionPipeline on a worker thread.
"""
from typing import Any

from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool

from wage_survey import config
from wage_survey.deps import get_submission_pipeline
from wage_survey.submit_service import SubmissionEnvelope, SubmissionPipeline

router = APIRouter(tags=["survey"])


async def read_body_capped(request: Request, limit: int) -> tuple[bytes, bool]:
    """Read at most limit + 1 bytes. Returns (body, oversized); an oversized body is dropped."""
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > limit:
        return b"", True
    chunks: list[bytes] = []
    size = 0
    async for chunk in request.stream():
        size += len(chunk)
        if size > limit:
            return b"", True
        chunks.append(chunk)
    return b"".join(chunks), False


@router.post("/api/survey/submit")
async def submit(
    request: Request,
    pipeline: SubmissionPipeline = Depends(get_submission_pipeline),
) -> dict[str, Any]:
    """Accept one survey response. Errors are rendered by the AdmissionRejected handler in main.py."""
    body, oversized = await read_body_capped(request, config.MAX_BODY_BYTES)
    envelope = SubmissionEnvelope(
        method=request.method,
        origin=request.headers.get("origin"),
        referer=request.headers.get("referer"),
        host=request.headers.get("host"),
        user_agent=request.headers.get("user-agent"),
        body=body,
        oversized=oversized,
    )
    return await run_in_threadpool(pipeline.admit, envelope)
