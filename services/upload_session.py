"""Async driver for the client upload flow.

`UploadSession` feeds events into `services.upload_state_machine.transition`
and performs the effects it returns: the analyze call, the generate call
that is chained after it, preview release, and the cosmetic progress ticker.
`HttpDetoxApi` is the aiohttp transport to the detox service.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import Any, Callable, Dict, List, Optional, Protocol

import aiohttp

from models.upload_state import Effect, EffectKind, UploadContext, UploadEvent, UploadState
from services.upload_state_machine import can_delete, check_client_file, progress_schedule, transition

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Non-2xx response from the detox service."""

    def __init__(self, status: int, message: str) -> None:
        super().__init__(message)
        self.status = status
        self.message = message


class DetoxApi(Protocol):
    async def analyze(self, filename: str, content_type: str, data: bytes) -> Dict[str, Any]: ...

    async def generate(self, payload: Dict[str, Any]) -> Dict[str, Any]: ...

    async def delete(self, image_id: int) -> None: ...


class HttpDetoxApi:
    """aiohttp client for the detox HTTP API.

    Args:
        base_url: Service root, e.g. "http://localhost:8000".
        session: Open aiohttp session; the caller owns its lifecycle.
    """

    def __init__(self, base_url: str, session: aiohttp.ClientSession) -> None:
        self.base_url = base_url.rstrip("/")
        self.session = session

    @staticmethod
    async def _raise_for_status(response: aiohttp.ClientResponse) -> None:
        if response.status < 400:
            return
        message = response.reason or "Request failed"
        try:
            body = await response.json(content_type=None)
        except (aiohttp.ContentTypeError, ValueError):
            body = None
        if isinstance(body, dict):
            detail = body.get("detail") or body.get("message")
            if isinstance(detail, str):
                message = detail
        raise ApiError(response.status, message)

    @staticmethod
    async def _json_object(response: aiohttp.ClientResponse) -> Dict[str, Any]:
        body = await response.json(content_type=None)
        if not isinstance(body, dict):
            raise ValueError(f"Expected a JSON object, got {type(body).__name__}")
        return body

    async def analyze(self, filename: str, content_type: str, data: bytes) -> Dict[str, Any]:
        form = aiohttp.FormData()
        form.add_field("image", data, filename=filename, content_type=content_type)
        async with self.session.post(f"{self.base_url}/api/analyze", data=form) as response:
            await self._raise_for_status(response)
            return await self._json_object(response)

    async def generate(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        async with self.session.post(f"{self.base_url}/api/generate", json=payload) as response:
            await self._raise_for_status(response)
            return await self._json_object(response)

    async def delete(self, image_id: int) -> None:
        async with self.session.delete(f"{self.base_url}/api/images/{image_id}") as response:
            await self._raise_for_status(response)


def _preview_handle(filename: str) -> str:
    return f"blob:{uuid.uuid4().hex}/{filename}"


class UploadSession:
    """Drive one upload widget through analyze → generate.

    Args:
        api: Transport to the detox service.
        clock: Source of the current time, used for the deletion window.
        revoke_preview: Called with the preview handle when it is released.
        tick_scale: Multiplier for progress delays; 0 disables the ticker.
    """

    def __init__(
        self,
        api: DetoxApi,
        *,
        clock: Callable[[], float] = time.time,
        revoke_preview: Optional[Callable[[str], None]] = None,
        tick_scale: float = 1.0,
    ) -> None:
        self.api = api
        self.context = UploadContext()
        self.history: List[UploadState] = [self.context.state]
        self._clock = clock
        self._revoke_preview = revoke_preview
        self._tick_scale = tick_scale
        self._file: Optional[Dict[str, Any]] = None

    @property
    def state(self) -> UploadState:
        return self.context.state

    def _dispatch(self, event: UploadEvent, payload: Optional[Dict[str, Any]] = None) -> List[Effect]:
        result = transition(self.context, event, payload)
        if not result.accepted:
            logger.debug("Ignoring %s in state %s", event.value, self.context.state.value)
            return []
        if result.context.state is not self.context.state:
            self.history.append(result.context.state)
        self.context = result.context
        for effect in result.effects:
            if effect.kind is EffectKind.REVOKE_PREVIEW and self._revoke_preview is not None:
                self._revoke_preview(effect.payload["preview_url"])
            elif effect.kind is EffectKind.SHOW_ERROR:
                logger.info("Upload error shown: %s", effect.payload.get("message"))
        return result.effects

    async def submit(self, filename: str, content_type: str, data: bytes) -> UploadContext:
        """Validate a file locally, then run both phases back to back.

        Returns the final context. A rejected file or a failed call leaves the
        session in `initial` with `error_message` set.
        """
        message = check_client_file(content_type, len(data))
        if message is not None:
            self._dispatch(UploadEvent.FILE_REJECTED, {"message": message})
            return self.context

        effects = self._dispatch(
            UploadEvent.FILE_ACCEPTED,
            {"preview_url": _preview_handle(filename), "filename": filename, "content_type": content_type},
        )
        if not any(e.kind is EffectKind.START_ANALYZE for e in effects):
            # Another upload is still in flight.
            return self.context

        self._file = {"filename": filename, "content_type": content_type, "data": data}
        try:
            await self._run_analyze()
        finally:
            self._file = None
        return self.context

    async def _run_analyze(self) -> None:
        file = self._file or {}
        try:
            partial = await self._with_progress(
                UploadState.UPLOADING,
                self.api.analyze(file["filename"], file["content_type"], file["data"]),
            )
        except ApiError as exc:
            self._dispatch(UploadEvent.ANALYZE_FAILED, {"message": exc.message})
            return
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            logger.warning("Analyze request failed: %r", exc)
            self._dispatch(UploadEvent.ANALYZE_FAILED, {})
            return

        effects = self._dispatch(UploadEvent.ANALYZE_SUCCEEDED, {"partial": partial})
        for effect in effects:
            if effect.kind is EffectKind.START_GENERATE:
                await self._run_generate(effect.payload)

    async def _run_generate(self, payload: Dict[str, Any]) -> None:
        try:
            created = await self._with_progress(UploadState.PARTIAL_RESULTS, self.api.generate(payload))
        except ApiError as exc:
            self._dispatch(UploadEvent.GENERATE_FAILED, {"message": exc.message})
            return
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            logger.warning("Generate request failed: %r", exc)
            self._dispatch(UploadEvent.GENERATE_FAILED, {})
            return
        self._dispatch(UploadEvent.GENERATE_SUCCEEDED, {"created": created, "now": self._clock()})

    async def _with_progress(self, phase: UploadState, call):
        ticker = None
        if self._tick_scale > 0:
            ticker = asyncio.create_task(self._tick(phase))
        try:
            return await call
        finally:
            if ticker is not None:
                ticker.cancel()
                try:
                    await ticker
                except asyncio.CancelledError:
                    pass

    async def _tick(self, phase: UploadState) -> None:
        for delay, message, percent in progress_schedule(phase):
            await asyncio.sleep(delay * self._tick_scale)
            self._dispatch(UploadEvent.PROGRESS, {"message": message, "percent": percent})

    def restart(self) -> UploadContext:
        self._dispatch(UploadEvent.RESTART)
        return self.context

    def can_delete(self) -> bool:
        return can_delete(self.context, self._clock())

    async def delete(self) -> bool:
        """Delete the final image if still allowed; returns True when it was deleted."""
        analysis = self.context.analysis or {}
        image_id = analysis.get("id")
        if image_id is None or not self.can_delete():
            return False
        try:
            await self.api.delete(int(image_id))
        except (ApiError, aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.warning("Delete of image %s failed: %s", image_id, exc)
            return False
        self._dispatch(UploadEvent.DELETE_SUCCEEDED)
        return True
