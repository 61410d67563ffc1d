"""Framework-independent state machine for the client upload flow.

    initial --file_accepted--> uploading --analyze_succeeded--> partial_results
    partial_results --generate_succeeded--> results
    uploading/partial_results --*_failed--> initial
    results --restart | delete_succeeded--> initial

`transition` is the only place the state tag changes. Events that are not
valid for the current state are rejected without touching the context,
which is what keeps a second file from being accepted while a call is in
flight.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from models.upload_state import Effect, EffectKind, Transition, UploadContext, UploadEvent, UploadState

CLIENT_ALLOWED_TYPES = ("image/jpeg", "image/png", "image/webp")
CLIENT_MAX_BYTES = 10 * 1024 * 1024
DELETION_WINDOW_SECONDS = 120

INVALID_TYPE_MESSAGE = "Only JPEG, PNG, and WEBP images are allowed."
TOO_LARGE_MESSAGE = "File is too large. Maximum size is 10MB."
FORMAT_ERROR_MESSAGE = (
    "Image format error: Please upload a valid JPG, PNG, or WEBP file. "
    "The image will be automatically converted to PNG with transparency for processing."
)
SIZE_ERROR_MESSAGE = "Image is too large. Please upload an image smaller than 4MB."
GENERIC_ERROR_MESSAGE = "Failed to process image"

ANALYZE_MESSAGES = ("Analyzing Ghibli contamination...", "Identifying fantasy elements...")
ANALYZE_INTERVAL = 2.0
ANALYZE_PROGRESS_CEILING = 40.0
GENERATE_MESSAGES = ("Neutralizing excessive whimsy...", "Finalizing clinical detoxification...")
GENERATE_INTERVAL = 2.5
GENERATE_PROGRESS_START = 50.0
GENERATE_PROGRESS_END = 90.0


def check_client_file(content_type: Optional[str], size: int) -> Optional[str]:
    """Return a validation message for a file the client must not send, else None."""
    if (content_type or "").lower() not in CLIENT_ALLOWED_TYPES:
        return INVALID_TYPE_MESSAGE
    if size > CLIENT_MAX_BYTES:
        return TOO_LARGE_MESSAGE
    return None


def describe_api_error(message: Optional[str]) -> str:
    """Reduce a server error message to a user-facing one."""
    text = message or ""
    if any(m in text for m in ("invalid_image_format", "Image format error", "Invalid input image")):
        return FORMAT_ERROR_MESSAGE
    if any(m in text for m in ("file too large", "exceeds the size limit", "Image is too large")):
        return SIZE_ERROR_MESSAGE
    return text or GENERIC_ERROR_MESSAGE


def progress_schedule(phase: UploadState) -> List[Tuple[float, str, float]]:
    """Return `(delay_seconds, message, percent)` steps for a busy state.

    Purely cosmetic; the steps carry no correctness meaning.
    """
    if phase is UploadState.UPLOADING:
        # The first message is shown immediately; later ones advance the bar.
        count = len(ANALYZE_MESSAGES)
        return [
            (ANALYZE_INTERVAL, ANALYZE_MESSAGES[i], (i + 1) * ANALYZE_PROGRESS_CEILING / count)
            for i in range(1, count)
        ]
    if phase is UploadState.PARTIAL_RESULTS:
        step = (GENERATE_PROGRESS_END - GENERATE_PROGRESS_START) / len(GENERATE_MESSAGES)
        return [
            (GENERATE_INTERVAL, message, GENERATE_PROGRESS_START + (i + 1) * step)
            for i, message in enumerate(GENERATE_MESSAGES)
        ]
    return []


def can_delete(context: UploadContext, now: float) -> bool:
    """True while the final result is younger than the deletion window."""
    if context.state is not UploadState.RESULTS or context.created_at is None:
        return False
    return now - context.created_at <= DELETION_WINDOW_SECONDS


def generation_payload(partial: Mapping[str, Any]) -> Dict[str, Any]:
    """Build the generate request body from an analyze response."""
    return {
        "originalImageKey": partial.get("originalImageKey") or "",
        "promptForDalle": partial.get("promptForDalle") or "",
        "diagnosisPoints": list(partial.get("diagnosisPoints") or []),
        "contaminationLevel": partial.get("contaminationLevel"),
    }


def combine_results(partial: Mapping[str, Any], created: Mapping[str, Any]) -> Dict[str, Any]:
    """Merge the analyze and generate responses into the final analysis view."""
    image_id = created.get("id")
    return {
        "id": image_id,
        "diagnosisPoints": list(partial.get("diagnosisPoints") or []),
        "treatmentPoints": list(created.get("treatmentPoints") or []),
        "contaminationLevel": partial.get("contaminationLevel") or 50,
        "detoxifiedImageUrl": created.get("detoxifiedImageUrl") or "",
        "originalImageUrl": partial.get("originalImageUrl") or "",
        "description": partial.get("description"),
        "shareableUrl": f"/deghib/{image_id}",
    }


def _reset(error: Optional[str] = None) -> UploadContext:
    return UploadContext(error_message=error)


def _revoke(context: UploadContext) -> List[Effect]:
    if context.preview_url:
        return [Effect(EffectKind.REVOKE_PREVIEW, {"preview_url": context.preview_url})]
    return []


def _on_file_accepted(context: UploadContext, payload: Mapping[str, Any]) -> Transition:
    nxt = UploadContext(
        state=UploadState.UPLOADING,
        preview_url=payload.get("preview_url"),
        processing_message=ANALYZE_MESSAGES[0],
        progress_percent=25.0,
    )
    return Transition(nxt, [Effect(EffectKind.START_ANALYZE, dict(payload))])


def _on_file_rejected(context: UploadContext, payload: Mapping[str, Any]) -> Transition:
    message = payload.get("message") or INVALID_TYPE_MESSAGE
    return Transition(context.evolve(error_message=message), [Effect(EffectKind.SHOW_ERROR, {"message": message})])


def _on_analyze_succeeded(context: UploadContext, payload: Mapping[str, Any]) -> Transition:
    partial = dict(payload.get("partial") or {})
    nxt = context.evolve(
        state=UploadState.PARTIAL_RESULTS,
        partial=partial,
        processing_message="Creating detoxified image...",
        progress_percent=GENERATE_PROGRESS_START,
        error_message=None,
    )
    return Transition(nxt, [Effect(EffectKind.START_GENERATE, generation_payload(partial))])


def _on_failed(context: UploadContext, payload: Mapping[str, Any]) -> Transition:
    message = describe_api_error(payload.get("message"))
    effects = _revoke(context) + [Effect(EffectKind.SHOW_ERROR, {"message": message})]
    return Transition(_reset(message), effects)


def _on_generate_succeeded(context: UploadContext, payload: Mapping[str, Any]) -> Transition:
    analysis = combine_results(context.partial or {}, payload.get("created") or {})
    nxt = context.evolve(
        state=UploadState.RESULTS,
        analysis=analysis,
        created_at=payload.get("now"),
        processing_message="Detoxification complete",
        progress_percent=100.0,
    )
    return Transition(nxt)


def _on_reset(context: UploadContext, payload: Mapping[str, Any]) -> Transition:
    return Transition(_reset(), _revoke(context))


def _on_progress(context: UploadContext, payload: Mapping[str, Any]) -> Transition:
    return Transition(
        context.evolve(
            processing_message=payload.get("message", context.processing_message),
            progress_percent=float(payload.get("percent", context.progress_percent)),
        )
    )


_Handler = Callable[[UploadContext, Mapping[str, Any]], Transition]

TRANSITIONS: Dict[Tuple[UploadState, UploadEvent], _Handler] = {
    (UploadState.INITIAL, UploadEvent.FILE_ACCEPTED): _on_file_accepted,
    (UploadState.INITIAL, UploadEvent.FILE_REJECTED): _on_file_rejected,
    (UploadState.UPLOADING, UploadEvent.ANALYZE_SUCCEEDED): _on_analyze_succeeded,
    (UploadState.UPLOADING, UploadEvent.ANALYZE_FAILED): _on_failed,
    (UploadState.UPLOADING, UploadEvent.PROGRESS): _on_progress,
    (UploadState.PARTIAL_RESULTS, UploadEvent.GENERATE_SUCCEEDED): _on_generate_succeeded,
    (UploadState.PARTIAL_RESULTS, UploadEvent.GENERATE_FAILED): _on_failed,
    (UploadState.PARTIAL_RESULTS, UploadEvent.PROGRESS): _on_progress,
    (UploadState.RESULTS, UploadEvent.RESTART): _on_reset,
    (UploadState.RESULTS, UploadEvent.DELETE_SUCCEEDED): _on_reset,
}


def transition(
    context: UploadContext,
    event: UploadEvent,
    payload: Optional[Mapping[str, Any]] = None,
) -> Transition:
    """Apply `event` to `context` and return the new context plus effects to run."""
    handler = TRANSITIONS.get((context.state, event))
    if handler is None:
        return Transition(context, [], accepted=False)
    return handler(context, payload or {})
