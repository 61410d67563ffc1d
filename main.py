import inspect
import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles
from openai import AsyncOpenAI

from dal.image_dal import ImageDAL
from routes.detox_route import router as detox_router
from routes.image_route import router as image_router
from services.detox_workflow import DetoxWorkflow
from services.object_store import S3ObjectStore
from services.openai.image_diagnoser import ImageDiagnoser
from services.openai.image_generator import ImageGenerator
from services.openai.treatment_planner import TreatmentPlanner
from services.rate_limiter import RateLimiter
from utils.database_init import AsyncDatabaseInitializer
from utils.logging_setup import configure_logging
from utils.settings import Settings

BASE_DIR = Path(__file__).resolve().parent
PUBLIC_DIR = BASE_DIR / "public"

load_dotenv()  # Load environment variables from .env file if present

logger = logging.getLogger("detox")


async def _close_quietly(client) -> None:
    """Close a client exposing `aclose`/`close`, sync or async."""
    aclose = getattr(client, "aclose", None) or getattr(client, "close", None)
    if aclose is None:
        return
    try:
        if inspect.iscoroutinefunction(aclose):
            await aclose()
        else:
            result = aclose()
            if inspect.isawaitable(result):
                await result
    except Exception as exc:
        logger.warning("Error while closing %s: %s", type(client).__name__, exc)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan manager to initialize:
      - settings and logging
      - the SQLite metadata store (at DATABASE_DIR/app.db)
      - the OpenAI async client and the object storage client
      - the detox workflow and both rate limiters
    and attach them to `app.state`. Components injected through `create_app`
    are left untouched.
    """
    if getattr(app.state, "workflow", None) is not None:
        yield
        return

    settings = Settings.from_env()
    configure_logging(settings.log_level, settings.log_dir)
    app.state.settings = settings

    db_initializer = AsyncDatabaseInitializer(settings.database_dir)
    await db_initializer.ensure_database()
    app.state.db_initializer = db_initializer

    try:
        openai_client = AsyncOpenAI(api_key=settings.openai_api_key)
    except Exception as exc:
        raise RuntimeError("Failed to initialize OpenAI Async client") from exc
    app.state.openai_client = openai_client

    object_store = S3ObjectStore.from_settings(settings.storage)
    app.state.object_store = object_store

    models = settings.models
    app.state.workflow = DetoxWorkflow(
        store=object_store,
        images=ImageDAL(db_initializer),
        diagnoser=ImageDiagnoser(openai_client, model=models.vision_model),
        generator=ImageGenerator(
            openai_client,
            model=models.image_model,
            size=models.image_size,
            quality=models.image_quality,
        ),
        planner=TreatmentPlanner(openai_client, model=models.text_model),
        max_upload_bytes=settings.max_upload_bytes,
        deletion_window_seconds=settings.deletion_window_seconds,
    )
    app.state.analyze_limiter = RateLimiter(settings.max_deghibs_per_day)
    app.state.generate_limiter = RateLimiter(settings.max_deghibs_per_day)
    logger.info("Daily deghib limit per caller: %d", settings.max_deghibs_per_day)

    try:
        yield
    finally:
        await _close_quietly(app.state.openai_client)
        app.state.workflow = None


def create_app(
    *,
    settings: Optional[Settings] = None,
    workflow: Optional[DetoxWorkflow] = None,
    analyze_limiter: Optional[RateLimiter] = None,
    generate_limiter: Optional[RateLimiter] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application instance.

    Passing a `workflow` skips environment-driven initialization in the
    lifespan; the limiters are then optional.
    """
    app = FastAPI(title="Ghibli Detox Clinic", lifespan=lifespan)
    app.state.settings = settings
    app.state.workflow = workflow
    app.state.analyze_limiter = analyze_limiter
    app.state.generate_limiter = generate_limiter

    @app.middleware("http")
    async def log_api_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        if request.url.path.startswith("/api"):
            duration_ms = (time.perf_counter() - start) * 1000
            logger.info(
                "%s %s %s in %.0fms",
                request.method,
                request.url.path,
                response.status_code,
                duration_ms,
            )
        return response

    # Serve static assets from the public directory, if it exists.
    if PUBLIC_DIR.exists():
        app.mount("/public", StaticFiles(directory=PUBLIC_DIR), name="public")

    def _index() -> FileResponse:
        index_path = PUBLIC_DIR / "index.html"
        if not index_path.exists():
            raise HTTPException(status_code=404, detail="Frontend not found")
        return FileResponse(index_path)

    @app.get("/", include_in_schema=False)
    async def serve_index():
        """Serve the frontend index page from the public directory."""
        return _index()

    @app.get("/deghib/{image_id}", include_in_schema=False)
    async def serve_result_page(image_id: int):
        """Shareable result page; the frontend loads `/api/images/{id}`."""
        return _index()

    @app.get("/gallery", include_in_schema=False)
    async def serve_gallery_page():
        return _index()

    @app.get("/health")
    async def health(request: Request):
        """
        Simple health check that verifies the workflow and its clients are wired.
        """
        state = request.app.state
        return {
            "ok": True,
            "db_initialized": getattr(state, "db_initializer", None) is not None,
            "openai_available": getattr(state, "openai_client", None) is not None,
            "storage_available": getattr(state, "object_store", None) is not None,
            "workflow_ready": getattr(state, "workflow", None) is not None,
        }

    app.include_router(detox_router)
    app.include_router(image_router)

    return app


app = create_app()
