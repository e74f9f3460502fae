"""
Job delivery endpoint.

The scheduler POSTs ``{"sessionId": "..."}`` here once a session's audio is
uploaded. The body is read once as raw bytes and its signature verified
before anything is parsed. All domain errors propagate to the registered
exception handlers, which map them to 401 / 400 / 404 / 500.
"""

import logging

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError

from src.core.config import get_settings
from src.core.exceptions import InvalidPayloadError, SignatureError
from src.core.models import ProcessJobRequest, ProcessJobResponse
from src.core.security import SIGNATURE_HEADER, SignatureVerifier, get_verifier
from src.services.orchestrator import SessionPipeline, get_pipeline

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/internal", tags=["internal"])

PROCESS_PATH = "/api/internal/process"


def get_delivery_url() -> str | None:
    """URL the scheduler signs as the token subject, or None when ``APP_URL`` is unset."""
    app_url = get_settings().app_url.rstrip("/")
    return f"{app_url}{PROCESS_PATH}" if app_url else None


@router.post("/process", response_model=ProcessJobResponse)
async def process_session(
    request: Request,
    verifier: SignatureVerifier = Depends(get_verifier),
    pipeline: SessionPipeline = Depends(get_pipeline),
    delivery_url: str | None = Depends(get_delivery_url),
) -> ProcessJobResponse:
    """Verify, parse and run the pipeline for one session."""
    signature = request.headers.get(SIGNATURE_HEADER)
    body = await request.body()

    if not signature:
        raise SignatureError("Missing signature")
    if not verifier.verify(signature, body, url=delivery_url):
        raise SignatureError("Invalid signature")

    try:
        job = ProcessJobRequest.model_validate_json(body)
    except ValidationError as exc:
        logger.warning("Rejected job delivery with malformed body: %s", exc.error_count())
        raise InvalidPayloadError() from exc

    await pipeline.run(job.session_id)
    return ProcessJobResponse()
