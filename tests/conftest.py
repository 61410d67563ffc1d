import io
from types import SimpleNamespace
from typing import Dict, List, Optional

import pytest
from PIL import Image

from dal.image_dal import ImageDAL
from services.detox_workflow import DetoxWorkflow
from services.openai.diagnosis_result import DiagnosisResult
from utils.database_init import AsyncDatabaseInitializer


def make_image_bytes(fmt: str = "PNG", size=(8, 8), color=(120, 180, 90)) -> bytes:
    """Return a tiny real image encoded with Pillow."""
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format=fmt)
    return buf.getvalue()


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeObjectStore:
    """In-memory stand-in for S3ObjectStore."""

    def __init__(self) -> None:
        self.objects: Dict[str, bytes] = {}
        self.content_types: Dict[str, str] = {}
        self.deleted: List[str] = []
        self.sign_count = 0
        self.fail_upload = False
        self.fail_delete = False
        self._next = 0

    async def upload_image(self, data: bytes, content_type: str, key: Optional[str] = None) -> str:
        if self.fail_upload:
            raise RuntimeError("connect timeout to https://account.r2.cloudflarestorage.com /srv/secret")
        self._next += 1
        key = key or f"key-{self._next}"
        self.objects[key] = data
        self.content_types[key] = content_type
        return key

    async def exists(self, key: str) -> bool:
        return key in self.objects

    async def get_image_url(self, key: str, expires_in: Optional[int] = None) -> str:
        self.sign_count += 1
        return f"https://signed.example/{key}?sig={self.sign_count}"

    async def delete_image(self, key: str) -> None:
        if self.fail_delete:
            raise RuntimeError("storage unavailable")
        self.objects.pop(key, None)
        self.deleted.append(key)


class FakeDiagnoser:
    def __init__(self, result: Optional[DiagnosisResult] = None, error: Optional[Exception] = None) -> None:
        self.result = result or DiagnosisResult(
            diagnosis_points=["Acute Totoro exposure", "Chronic soot sprite infestation", "Whimsical sky syndrome"],
            treatment_points=["Rest", "Fluids", "Spreadsheets"],
            description="A forest path under a big blue sky with a bus stop.",
            contamination_level=73,
        )
        self.error = error
        self.calls: List[tuple] = []

    async def diagnose(self, image_bytes: bytes, mime_type: str) -> DiagnosisResult:
        self.calls.append((len(image_bytes), mime_type))
        if self.error is not None:
            raise self.error
        return self.result


class FakeGenerator:
    def __init__(self, error: Optional[Exception] = None) -> None:
        self.error = error
        self.prompts: List[str] = []

    async def generate(self, prompt: str) -> bytes:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return make_image_bytes("PNG", size=(16, 16))


class FakePlanner:
    def __init__(self) -> None:
        self.calls: List[tuple] = []

    async def plan(self, diagnosis_points, contamination_level):
        self.calls.append((list(diagnosis_points), contamination_level))
        return ["Stare at a parking lot", "Replace clouds with fog", "Commute by regular bus"]


@pytest.fixture
def db_initializer(tmp_path):
    return AsyncDatabaseInitializer(tmp_path / "db")


@pytest.fixture
def image_dal(db_initializer):
    return ImageDAL(db_initializer)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return FakeObjectStore()


@pytest.fixture
def diagnoser():
    return FakeDiagnoser()


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def planner():
    return FakePlanner()


@pytest.fixture
def workflow(store, image_dal, diagnoser, generator, planner, clock):
    return DetoxWorkflow(
        store=store,
        images=image_dal,
        diagnoser=diagnoser,
        generator=generator,
        planner=planner,
        max_upload_bytes=4 * 1024 * 1024,
        deletion_window_seconds=120,
        clock=clock,
    )


@pytest.fixture
def png_bytes():
    return make_image_bytes("PNG")


@pytest.fixture
def jpeg_bytes():
    return make_image_bytes("JPEG")


def function_call_response(name: str, arguments: str, usage=None):
    """Build an object shaped like a Responses API result with one function call."""
    item = SimpleNamespace(type="function_call", name=name, arguments=arguments)
    return SimpleNamespace(output=[item], output_text="", usage=usage)
