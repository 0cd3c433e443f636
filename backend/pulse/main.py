# backend/pulse/main.py
import functools
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import Settings
from .db import create_db_engine, init_db
from .ffmpeg_utils import probe_video
from .logging_utils import configure_logging
from .progress import ProgressHub
from .repository import UserRepository, VideoRepository
from .routers import admin, auth, realtime, videos
from .storage import LocalStorage
from .worker import ProcessingScheduler, process_video

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        init_db(app.state.engine)
        app.state.storage.ensure_dirs()
        logger.info("storing uploads in %s", app.state.storage.base)
        yield
        scheduler = app.state.scheduler
        if scheduler.pending:
            logger.info("waiting for %d videos still processing", scheduler.pending)
            if not await scheduler.wait_idle(timeout=settings.shutdown_grace_seconds):
                logger.warning("shutting down with %d videos still processing", scheduler.pending)
        app.state.engine.dispose()

    app = FastAPI(title="Pulse Video Portal", lifespan=lifespan)

    # --- shared components, built once and reached through app.state ---
    engine = create_db_engine(settings.database_url)
    storage = LocalStorage(settings.upload_dir)
    hub = ProgressHub()
    video_repository = VideoRepository(engine)
    runner = functools.partial(
        process_video,
        repository=video_repository,
        storage=storage,
        hub=hub,
        step_seconds=settings.processing_step_seconds,
        probe=functools.partial(
            probe_video, ffprobe=settings.ffprobe_path, timeout=settings.probe_timeout_seconds
        ),
    )

    app.state.settings = settings
    app.state.engine = engine
    app.state.storage = storage
    app.state.hub = hub
    app.state.videos = video_repository
    app.state.users = UserRepository(engine)
    app.state.scheduler = ProcessingScheduler(runner)

    # --- CORS for the browser client ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.client_origin],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(auth.router, prefix="/api")
    app.include_router(videos.router, prefix="/api")
    app.include_router(admin.router, prefix="/api")
    app.include_router(realtime.router)

    @app.get("/api/health")
    def health():
        return {"status": "ok"}

    return app


def run() -> None:
    import uvicorn

    settings = Settings()
    configure_logging(settings.log_level.upper())
    uvicorn.run(create_app(settings), host="0.0.0.0", port=4000)


if __name__ == "__main__":
    run()
