"""Controllers bridging the HTTP layer and the detox workflow."""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Optional, Sequence

from fastapi import HTTPException, Request, UploadFile

from services.detox_workflow import DetoxWorkflow
from services.rate_limiter import RateLimiter
from utils.errors import DetoxError, QuotaExceeded, ValidationError
from utils.media_validation import read_file_bytes, sniff_image_type, spooled_upload, validate_image_upload

logger = logging.getLogger(__name__)


def client_identity(request: Request) -> str:
    """Return the caller's network identity used for rate limiting."""
    return request.client.host if request.client else "unknown"


def to_http_exception(exc: DetoxError) -> HTTPException:
    """Translate a domain error into an HTTPException with a client-safe detail."""
    headers: Optional[Dict[str, str]] = None
    if isinstance(exc, QuotaExceeded) and exc.retry_after is not None:
        headers = {"Retry-After": str(max(1, math.ceil(exc.retry_after)))}
    return HTTPException(status_code=exc.status_code, detail=exc.message, headers=headers)


def _workflow(request: Request) -> DetoxWorkflow:
    workflow = getattr(request.app.state, "workflow", None)
    if workflow is None:
        raise HTTPException(status_code=500, detail="Detox workflow not initialized.")
    return workflow


def _acquire_quota(limiter: Optional[RateLimiter], identity: str) -> None:
    """Charge one call to `identity` or raise QuotaExceeded."""
    if limiter is None:
        return
    if not limiter.try_acquire(identity):
        logger.info("Quota exhausted for %s", identity)
        raise QuotaExceeded(limiter.quota_message(), retry_after=limiter.retry_after(identity))
    logger.info("Charged quota for %s (%d left)", identity, limiter.remaining(identity))


def _refund_quota(limiter: Optional[RateLimiter], identity: str) -> None:
    if limiter is not None:
        limiter.release(identity)


async def analyze_upload(request: Request, image: Optional[UploadFile]) -> Dict[str, Any]:
    """Phase 1: validate and spool the upload, then run the analysis.

    The quota is charged before the body is read and refunded if the upload
    fails validation, so rejected files never count against the caller.
    """
    limiter: Optional[RateLimiter] = getattr(request.app.state, "analyze_limiter", None)
    settings = getattr(request.app.state, "settings", None)
    workflow = _workflow(request)
    identity = client_identity(request)

    try:
        _acquire_quota(limiter, identity)
        try:
            if image is None:
                raise ValidationError("No image file uploaded")
            mime_type = validate_image_upload(image)
            tmp_dir = settings.upload_tmp_dir if settings is not None else None
            async with spooled_upload(image, workflow.max_upload_bytes, tmp_dir) as path:
                image_bytes = await read_file_bytes(path)
            sniff_image_type(image_bytes)
        except Exception:
            _refund_quota(limiter, identity)
            raise
        result = await workflow.analyze(image_bytes, mime_type)
    except DetoxError as exc:
        raise to_http_exception(exc) from exc

    return result.to_response()


async def generate_detox(
    request: Request,
    original_image_key: str,
    prompt_for_dalle: str,
    diagnosis_points: Sequence[str],
    contamination_level: Optional[int],
) -> Dict[str, Any]:
    """Phase 2: generate and persist the detoxified image."""
    limiter: Optional[RateLimiter] = getattr(request.app.state, "generate_limiter", None)
    workflow = _workflow(request)
    identity = client_identity(request)

    try:
        _acquire_quota(limiter, identity)
        try:
            workflow.validate_generation_input(original_image_key, prompt_for_dalle)
        except ValidationError:
            _refund_quota(limiter, identity)
            raise
        result = await workflow.generate(original_image_key, prompt_for_dalle, diagnosis_points, contamination_level)
    except DetoxError as exc:
        raise to_http_exception(exc) from exc

    return result.to_creation_response()


async def get_image(request: Request, image_id: int) -> Dict[str, Any]:
    try:
        signed = await _workflow(request).get_by_id(image_id)
    except DetoxError as exc:
        raise to_http_exception(exc) from exc
    return signed.to_response()


async def list_gallery(request: Request) -> List[Dict[str, Any]]:
    entries = await _workflow(request).list_public()
    return [entry.to_response() for entry in entries]


async def delete_image(request: Request, image_id: int) -> Dict[str, Any]:
    """Delete an image if it is still inside the deletion window."""
    try:
        await _workflow(request).delete_by_id(image_id)
    except DetoxError as exc:
        raise to_http_exception(exc) from exc
    return {"status": "deleted", "id": image_id}


async def count_images(request: Request) -> Dict[str, int]:
    return {"count": await _workflow(request).count()}
