"""Client-side upload workflow states, events and context."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional


class UploadState(str, Enum):
    INITIAL = "initial"
    UPLOADING = "uploading"
    PARTIAL_RESULTS = "partial_results"
    RESULTS = "results"


class UploadEvent(str, Enum):
    FILE_ACCEPTED = "file_accepted"
    FILE_REJECTED = "file_rejected"
    ANALYZE_SUCCEEDED = "analyze_succeeded"
    ANALYZE_FAILED = "analyze_failed"
    GENERATE_SUCCEEDED = "generate_succeeded"
    GENERATE_FAILED = "generate_failed"
    RESTART = "restart"
    DELETE_SUCCEEDED = "delete_succeeded"
    PROGRESS = "progress"


class EffectKind(str, Enum):
    START_ANALYZE = "start_analyze"
    START_GENERATE = "start_generate"
    REVOKE_PREVIEW = "revoke_preview"
    SHOW_ERROR = "show_error"


@dataclass(frozen=True)
class Effect:
    """Side effect the driver must perform after a transition."""

    kind: EffectKind
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class UploadContext:
    """Immutable snapshot of the upload UI.

    Attributes:
        state: Current state tag; it alone decides which events are accepted.
        preview_url: Local preview handle for the selected file.
        partial: Phase-1 response body, once available.
        analysis: Combined phase-1 and phase-2 result, once available.
        created_at: Client time at which the final result arrived.
        error_message: Last user-facing error or validation message.
        processing_message: Cosmetic progress caption.
        progress_percent: Cosmetic progress estimate.
    """

    state: UploadState = UploadState.INITIAL
    preview_url: Optional[str] = None
    partial: Optional[Dict[str, Any]] = None
    analysis: Optional[Dict[str, Any]] = None
    created_at: Optional[float] = None
    error_message: Optional[str] = None
    processing_message: str = "Analyzing Ghibli contamination..."
    progress_percent: float = 25.0

    def evolve(self, **changes: Any) -> "UploadContext":
        return replace(self, **changes)


@dataclass(frozen=True)
class Transition:
    """Result of feeding one event to the state machine.

    `accepted` is False when the event is not valid in the current state; the
    context is then returned unchanged and there are no effects.
    """

    context: UploadContext
    effects: List[Effect] = field(default_factory=list)
    accepted: bool = True
