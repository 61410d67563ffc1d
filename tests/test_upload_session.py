import asyncio
import json

import aiohttp
import pytest

from models.upload_state import UploadState
from services.upload_session import ApiError, HttpDetoxApi, UploadSession
from services.upload_state_machine import INVALID_TYPE_MESSAGE
from tests.conftest import FakeClock


class FakeApi:
    def __init__(self, analyze_error=None, generate_error=None, delete_error=None):
        self.analyze_error = analyze_error
        self.generate_error = generate_error
        self.delete_error = delete_error
        self.calls = []

    async def analyze(self, filename, content_type, data):
        self.calls.append(("analyze", filename))
        if self.analyze_error:
            raise self.analyze_error
        return {
            "diagnosisPoints": ["a"],
            "contaminationLevel": 40,
            "originalImageUrl": "https://signed.example/o",
            "description": "A field",
            "originalImageKey": "o",
            "promptForDalle": "Scene: A field",
        }

    async def generate(self, payload):
        self.calls.append(("generate", payload["originalImageKey"]))
        if self.generate_error:
            raise self.generate_error
        return {"id": 3, "treatmentPoints": ["t"], "detoxifiedImageUrl": "https://signed.example/d"}

    async def delete(self, image_id):
        self.calls.append(("delete", image_id))
        if self.delete_error:
            raise self.delete_error


def _session(api, clock=None, revoked=None):
    return UploadSession(
        api,
        clock=clock or FakeClock(),
        revoke_preview=(revoked.append if revoked is not None else None),
        tick_scale=0,
    )


async def test_submit_runs_both_phases():
    api = FakeApi()
    session = _session(api)
    ctx = await session.submit("scene.png", "image/png", b"data")

    assert ctx.state is UploadState.RESULTS
    assert api.calls == [("analyze", "scene.png"), ("generate", "o")]
    assert session.history == [
        UploadState.INITIAL,
        UploadState.UPLOADING,
        UploadState.PARTIAL_RESULTS,
        UploadState.RESULTS,
    ]
    assert ctx.analysis["shareableUrl"] == "/deghib/3"


async def test_invalid_file_never_reaches_api():
    api = FakeApi()
    session = _session(api)
    ctx = await session.submit("anim.gif", "image/gif", b"data")
    assert ctx.state is UploadState.INITIAL
    assert ctx.error_message == INVALID_TYPE_MESSAGE
    assert api.calls == []


async def test_analyze_error_returns_to_initial_and_revokes_preview():
    revoked = []
    api = FakeApi(analyze_error=ApiError(429, "You've reached your daily limit of 3 deghibs."))
    session = _session(api, revoked=revoked)
    ctx = await session.submit("scene.png", "image/png", b"data")
    assert ctx.state is UploadState.INITIAL
    assert "daily limit" in ctx.error_message
    assert len(revoked) == 1
    assert ("generate", "o") not in api.calls


async def test_generate_network_error_uses_generic_message():
    api = FakeApi(generate_error=aiohttp.ClientConnectionError("reset"))
    session = _session(api)
    ctx = await session.submit("scene.png", "image/png", b"data")
    assert ctx.state is UploadState.INITIAL
    assert ctx.error_message == "Failed to process image"
    assert ctx.partial is None


async def test_malformed_analyze_body_fails_and_allows_retry():
    api = FakeApi(analyze_error=json.JSONDecodeError("Expecting value", "{truncated", 0))
    session = _session(api)
    ctx = await session.submit("scene.png", "image/png", b"data")
    assert ctx.state is UploadState.INITIAL
    assert ctx.error_message == "Failed to process image"

    api.analyze_error = None
    ctx = await session.submit("scene.png", "image/png", b"data")
    assert ctx.state is UploadState.RESULTS


async def test_generate_timeout_fails_instead_of_hanging():
    api = FakeApi(generate_error=asyncio.TimeoutError())
    session = _session(api)
    ctx = await session.submit("scene.png", "image/png", b"data")
    assert ctx.state is UploadState.INITIAL
    assert ctx.error_message == "Failed to process image"


class _JsonResponse:
    def __init__(self, body):
        self.body = body

    async def json(self, content_type="application/json"):
        return self.body


async def test_non_object_json_body_is_rejected():
    assert await HttpDetoxApi._json_object(_JsonResponse({"id": 1})) == {"id": 1}
    with pytest.raises(ValueError):
        await HttpDetoxApi._json_object(_JsonResponse(["not", "an", "object"]))


async def test_delete_inside_window():
    clock = FakeClock()
    api = FakeApi()
    session = _session(api, clock=clock)
    await session.submit("scene.png", "image/png", b"data")
    clock.advance(90)
    assert session.can_delete()
    assert await session.delete() is True
    assert session.state is UploadState.INITIAL
    assert ("delete", 3) in api.calls


async def test_delete_outside_window_is_not_attempted():
    clock = FakeClock()
    api = FakeApi()
    session = _session(api, clock=clock)
    await session.submit("scene.png", "image/png", b"data")
    clock.advance(121)
    assert await session.delete() is False
    assert session.state is UploadState.RESULTS
    assert not any(call[0] == "delete" for call in api.calls)


async def test_failed_delete_keeps_results():
    api = FakeApi(delete_error=ApiError(403, "Images can only be deleted within 2 minutes of creation."))
    session = _session(api)
    await session.submit("scene.png", "image/png", b"data")
    assert await session.delete() is False
    assert session.state is UploadState.RESULTS


async def test_restart_clears_results():
    session = _session(FakeApi())
    await session.submit("scene.png", "image/png", b"data")
    assert session.restart().state is UploadState.INITIAL


async def test_oversized_file_sends_no_request():
    api = FakeApi()
    session = _session(api)
    ctx = await session.submit("big.png", "image/png", b"0" * (15 * 1024 * 1024))
    assert ctx.state is UploadState.INITIAL
    assert "too large" in ctx.error_message
    assert api.calls == []
