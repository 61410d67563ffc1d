"""Two-phase detox workflow: analyze an upload, then generate its realistic twin.

Phase 1 (`analyze`) stores the original and asks the vision model for a
diagnosis, returning quickly so the caller can render partial results.
Phase 2 (`generate`) runs the slow image generation, stores the result and
persists the record. Reads re-sign storage URLs every time; URLs are never
persisted.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, List, Optional, Sequence

from dal.image_dal import ImageDAL
from models.analysis_models import GalleryEntry, PartialAnalysis, SignedImage
from models.image_record import ImageRecord
from services.object_store import S3ObjectStore
from services.openai.detox_prompts import build_generation_prompt, description_from_prompt
from services.openai.diagnosis_result import coerce_contamination_level, coerce_points
from services.openai.image_diagnoser import ImageDiagnoser
from services.openai.image_generator import ImageGenerator
from services.openai.treatment_planner import TreatmentPlanner
from utils.error_sanitizer import classify_upstream_error
from utils.errors import Forbidden, NotFound, UpstreamFailure, ValidationError
from utils.media_validation import (
    ALLOWED_IMAGE_TYPES,
    TYPE_ERROR_MESSAGE,
    normalize_content_type,
    size_error_message,
    sniff_image_type,
)

logger = logging.getLogger(__name__)

GENERATED_CONTENT_TYPE = "image/png"
DELETION_WINDOW_MESSAGE = (
    "Images can only be deleted within 2 minutes of creation. "
    "Please contact support for removal requests."
)


async def _gather_or_cancel(*coros: Awaitable[Any]) -> List[Any]:
    """Run `coros` concurrently; if one fails, cancel and drain the rest before re-raising."""
    tasks = [asyncio.ensure_future(c) for c in coros]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


class DetoxWorkflow:
    """Coordinate storage, models and persistence for the detox flow.

    Args:
        store: Object storage adapter.
        images: Metadata store.
        diagnoser: Vision model client for phase 1.
        generator: Image model client for phase 2.
        planner: Text model client producing treatment points in phase 2.
        max_upload_bytes: Size ceiling for uploaded images.
        deletion_window_seconds: Maximum record age at which deletion is allowed.
        clock: Source of the current unix time.
    """

    def __init__(
        self,
        store: S3ObjectStore,
        images: ImageDAL,
        diagnoser: ImageDiagnoser,
        generator: ImageGenerator,
        planner: TreatmentPlanner,
        *,
        max_upload_bytes: int = 4 * 1024 * 1024,
        deletion_window_seconds: float = 120,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.images = images
        self.diagnoser = diagnoser
        self.generator = generator
        self.planner = planner
        self.max_upload_bytes = max_upload_bytes
        self.deletion_window_seconds = deletion_window_seconds
        self._clock = clock

    async def analyze(self, image_bytes: bytes, mime_type: str) -> PartialAnalysis:
        """Phase 1: store the original, diagnose it and build the generation prompt.

        Raises:
            ValidationError: Unsupported type, oversized or empty image.
            UpstreamFailure: Storage or model failure.
        """
        if not image_bytes:
            raise ValidationError("No image file uploaded")
        if len(image_bytes) > self.max_upload_bytes:
            raise ValidationError(size_error_message(self.max_upload_bytes))
        declared = normalize_content_type(mime_type)
        if declared not in ALLOWED_IMAGE_TYPES:
            raise ValidationError(TYPE_ERROR_MESSAGE)

        detected = sniff_image_type(image_bytes)
        if detected != declared:
            logger.info("Declared type %s differs from detected %s; using detected", declared, detected)

        try:
            original_key = await self.store.upload_image(image_bytes, detected)
            diagnosis = await self.diagnoser.diagnose(image_bytes, detected)
            original_url = await self.store.get_image_url(original_key)
        except Exception as exc:
            raise classify_upstream_error(exc, "Error processing image") from exc

        logger.info("Analyzed upload %s (contamination %d)", original_key, diagnosis.contamination_level)
        return PartialAnalysis(
            diagnosis_points=diagnosis.diagnosis_points,
            contamination_level=diagnosis.contamination_level,
            original_image_url=original_url,
            description=diagnosis.description,
            original_image_key=original_key,
            prompt_for_dalle=build_generation_prompt(diagnosis.description),
        )

    def validate_generation_input(self, original_image_key: str, generation_prompt: str) -> None:
        """Reject a missing key or prompt before any upstream call is made."""
        if not (original_image_key or "").strip():
            raise ValidationError("originalImageKey is required")
        if not (generation_prompt or "").strip():
            raise ValidationError("promptForDalle is required")

    async def generate(
        self,
        original_image_key: str,
        generation_prompt: str,
        diagnosis_points: Sequence[str],
        contamination_level: Optional[int],
    ) -> SignedImage:
        """Phase 2: generate, store and persist the detoxified image.

        Raises:
            ValidationError: Missing key or prompt, or a key that was never stored.
            UpstreamFailure: Storage, model or database failure.
        """
        self.validate_generation_input(original_image_key, generation_prompt)
        original_image_key = original_image_key.strip()
        generation_prompt = generation_prompt.strip()

        try:
            known = await self.store.exists(original_image_key)
        except Exception as exc:
            raise classify_upstream_error(exc, "Error generating detoxified image") from exc
        if not known:
            raise ValidationError("Unknown originalImageKey; analyze the image first")

        points = coerce_points(list(diagnosis_points or []))
        level = coerce_contamination_level(contamination_level)

        try:
            image_bytes, treatment_points = await _gather_or_cancel(
                self.generator.generate(generation_prompt),
                self.planner.plan(points, level),
            )
            detoxified_key = await self.store.upload_image(image_bytes, GENERATED_CONTENT_TYPE)
        except Exception as exc:
            raise classify_upstream_error(exc, "Error generating detoxified image") from exc

        try:
            record = await self.images.create_image(
                ImageRecord(
                    id=None,
                    original_image_key=original_image_key,
                    detoxified_image_key=detoxified_key,
                    diagnosis_points=points,
                    treatment_points=treatment_points,
                    contamination_level=level,
                    description=description_from_prompt(generation_prompt),
                    is_public=True,
                    created_at=self._clock(),
                )
            )
        except Exception as exc:
            raise classify_upstream_error(exc, "Error saving image data") from exc

        try:
            detoxified_url = await self.store.get_image_url(detoxified_key)
        except Exception as exc:
            raise classify_upstream_error(exc, "Error generating detoxified image") from exc
        original_url = await self._sign_or_empty(original_image_key)

        return SignedImage(record=record, original_image_url=original_url, detoxified_image_url=detoxified_url)

    async def get_by_id(self, image_id: int) -> SignedImage:
        """Return a stored record with freshly signed URLs.

        Raises:
            NotFound: If no record has `image_id`.
        """
        record = await self.images.get_image_by_id(image_id)
        if record is None:
            raise NotFound("Image not found")
        original_url, detoxified_url = await asyncio.gather(
            self._sign_or_empty(record.original_image_key),
            self._sign_or_empty(record.detoxified_image_key),
        )
        return SignedImage(record=record, original_image_url=original_url, detoxified_image_url=detoxified_url)

    async def list_public(self) -> List[GalleryEntry]:
        """Return public gallery entries, newest first, with freshly signed URLs."""
        records = await self.images.list_public_images()

        async def _entry(record: ImageRecord) -> GalleryEntry:
            original_url, detoxified_url = await asyncio.gather(
                self._sign_or_empty(record.original_image_key),
                self._sign_or_empty(record.detoxified_image_key),
            )
            return GalleryEntry(
                id=int(record.id),
                original_image_url=original_url,
                detoxified_image_url=detoxified_url,
                contamination_level=record.contamination_level,
            )

        return list(await asyncio.gather(*(_entry(r) for r in records)))

    async def delete_by_id(self, image_id: int, now: Optional[float] = None) -> None:
        """Delete a record and both of its blobs while the deletion window is open.

        Raises:
            NotFound: If no record has `image_id`.
            Forbidden: If the record is older than the deletion window.
            UpstreamFailure: If a blob could not be removed; the row is kept.
        """
        record = await self.images.get_image_by_id(image_id)
        if record is None:
            raise NotFound("Image not found")

        now = self._clock() if now is None else now
        created_at = record.created_at if record.created_at is not None else float("-inf")
        if now - created_at > self.deletion_window_seconds:
            raise Forbidden(DELETION_WINDOW_MESSAGE)

        try:
            await _gather_or_cancel(
                self.store.delete_image(record.original_image_key),
                self.store.delete_image(record.detoxified_image_key),
            )
        except Exception as exc:
            logger.error("Failed to delete blobs for image %s: %s", image_id, exc)
            raise UpstreamFailure("Failed to delete image. Please try again or contact support.") from exc

        if not await self.images.delete_image(image_id):
            raise NotFound("Image not found")
        logger.info("Deleted image %s", image_id)

    async def count(self) -> int:
        return await self.images.count_images()

    async def _sign_or_empty(self, key: Optional[str]) -> str:
        """Sign `key`, degrading to "" so one bad blob never fails a whole read."""
        if not key:
            return ""
        try:
            return await self.store.get_image_url(key)
        except Exception as exc:
            logger.error("Error generating signed URL for %s: %s", key, exc)
            return ""
