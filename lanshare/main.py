from contextlib import asynccontextmanager
from pathlib import Path
import logging

from apscheduler.schedulers.background import BackgroundScheduler
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles

from lanshare.config import Settings, get_settings
from lanshare.discovery import build_access_url
from lanshare.errors import FileShareError
from lanshare.middleware import UploadSizeLimitMiddleware
from lanshare.routers import files, live
from lanshare.services.broadcast import BroadcastChannel
from lanshare.services.file_service import FileService
from lanshare.services.registry import FileRegistry
from lanshare.storage import ContentStore

logger = logging.getLogger("lanshare")

BASE_DIR = Path(__file__).resolve().parent
STATIC_DIR = BASE_DIR / "static"


def _start_sweeper(storage: ContentStore, settings: Settings) -> BackgroundScheduler:
    scheduler = BackgroundScheduler()
    scheduler.add_job(
        storage.sweep_partials,
        "interval",
        minutes=settings.partial_sweep_interval_minutes,
        args=[settings.partial_max_age_seconds],
        id="sweep-partials",
    )
    scheduler.start()
    return scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    storage: ContentStore = app.state.storage

    storage.prepare()
    storage.sweep_partials(settings.partial_max_age_seconds)
    app.state.file_service.rebuild_registry()

    try:
        app.state.scheduler = _start_sweeper(storage, settings)
    except Exception:
        # Sharing still works without the periodic sweep.
        logger.exception("Failed to start the partial upload sweeper")

    network_url = build_access_url(settings.port, public_url=settings.public_url)
    logger.info(
        "File sharing server started: local http://localhost:%s, network %s, QR code at GET /qr",
        settings.port,
        network_url,
        extra={"network_url": network_url},
    )
    yield

    scheduler = getattr(app.state, "scheduler", None)
    if scheduler is not None:
        scheduler.shutdown(wait=False)
    logger.info("File sharing server stopped")


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(title="LAN File Share", lifespan=lifespan)

    storage = ContentStore(
        settings.upload_dir,
        max_file_size=settings.max_file_size_bytes,
        chunk_size=settings.upload_chunk_size,
    )
    broadcast = BroadcastChannel(queue_size=settings.broadcast_queue_size)
    registry = FileRegistry()
    app.state.settings = settings
    app.state.storage = storage
    app.state.registry = registry
    app.state.broadcast = broadcast
    app.state.file_service = FileService(
        storage, registry, broadcast, max_files_per_request=settings.max_files_per_request
    )

    # Registered first so it runs inside CORS and its 413s carry CORS headers.
    app.add_middleware(UploadSizeLimitMiddleware, max_bytes=settings.max_request_bytes)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["*"],
    )

    @app.exception_handler(FileShareError)
    async def file_share_error_handler(request: Request, exc: FileShareError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
        else:
            logger.warning("%s %s rejected: %s", request.method, request.url.path, exc.detail)
        return JSONResponse(status_code=exc.status_code, content=exc.to_envelope())

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"success": False, "message": "Internal server error", "error": str(exc)},
        )

    app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")
    app.include_router(files.router)
    app.include_router(live.router)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.get("/")
    def index():
        return FileResponse(STATIC_DIR / "index.html")

    return app


app = create_app()
