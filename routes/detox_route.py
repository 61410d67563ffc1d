"""FastAPI routes for the two-phase analyze / generate workflow."""

import logging
from typing import List, Optional

from fastapi import APIRouter, File, HTTPException, Request, UploadFile
from pydantic import BaseModel, ConfigDict, Field

from controllers.detox_controller import analyze_upload, generate_detox

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["detox"])


class GeneratePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    original_image_key: str = Field("", alias="originalImageKey")
    prompt_for_dalle: str = Field("", alias="promptForDalle")
    diagnosis_points: List[str] = Field(default_factory=list, alias="diagnosisPoints")
    contamination_level: Optional[int] = Field(None, alias="contaminationLevel")


@router.post("/analyze", summary="Diagnose an uploaded image")
async def analyze_route(request: Request, image: Optional[UploadFile] = File(None)):
    """Store the upload, diagnose it and return the partial analysis.

    Returns:
        diagnosisPoints, contaminationLevel, originalImageUrl, description,
        originalImageKey and promptForDalle for the follow-up generate call.
    """
    try:
        return await analyze_upload(request, image)
    except HTTPException:
        raise
    except Exception as exc:  # pylint: disable=broad-exception-caught
        logger.exception("Unhandled error while analyzing upload")
        raise HTTPException(status_code=500, detail="Error processing image") from exc


@router.post("/generate", summary="Generate the detoxified image")
async def generate_route(request: Request, payload: GeneratePayload):
    """Generate, store and persist the detoxified counterpart of an analyzed image."""
    try:
        return await generate_detox(
            request,
            payload.original_image_key,
            payload.prompt_for_dalle,
            payload.diagnosis_points,
            payload.contamination_level,
        )
    except HTTPException:
        raise
    except Exception as exc:  # pylint: disable=broad-exception-caught
        logger.exception("Unhandled error while generating detoxified image")
        raise HTTPException(status_code=500, detail="Error generating detoxified image") from exc
