"""Turn raw upstream exceptions into client-safe domain errors."""

import logging

from utils.errors import DetoxError, UpstreamFailure, ValidationError

logger = logging.getLogger(__name__)

FORMAT_ERROR_MESSAGE = (
    "Image format error: Please upload a valid JPG, JPEG, PNG, or WEBP file less than 4MB"
)
SIZE_ERROR_MESSAGE = "Image is too large. Please upload an image smaller than 4MB."

_FORMAT_MARKERS = ("invalid_image_format", "Invalid input image", "Image format error")
_SIZE_MARKERS = ("file too large", "exceeds the size limit")


def classify_upstream_error(exc: BaseException, generic_message: str) -> DetoxError:
    """Map an exception from a model or storage call onto the error taxonomy.

    Domain errors pass through unchanged. Image format rejections from the
    model become `ValidationError`; everything else becomes
    `UpstreamFailure(generic_message)`. The raw exception text is logged,
    never returned.
    """
    if isinstance(exc, DetoxError):
        return exc

    text = str(exc)
    logger.error("Upstream call failed: %s", text, exc_info=exc)

    if any(marker in text for marker in _FORMAT_MARKERS):
        return ValidationError(FORMAT_ERROR_MESSAGE)
    if any(marker in text for marker in _SIZE_MARKERS):
        return ValidationError(SIZE_ERROR_MESSAGE)
    if isinstance(exc, (FileNotFoundError, PermissionError)):
        return ValidationError("Error accessing the image file. Please try uploading again.")
    return UpstreamFailure(generic_message)
