import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.orm import sessionmaker

from reelforge.api.routes import final_films, health, projects, prompt_layers, scene_videos
from reelforge.core.config import Settings, settings as default_settings
from reelforge.core.errors import PreconditionError, PromptLayerConflictError
from reelforge.core.files import MediaStore
from reelforge.core.log import configure_logging
from reelforge.db import Base, create_db_engine, create_session_factory
from reelforge.queue import QueuePipeline
from reelforge.services.ffmpeg import FfmpegToolkit
from reelforge.services.film_compiler import FilmCompiler
from reelforge.workers import build_pipeline


def create_app(
    settings: Optional[Settings] = None,
    session_factory: Optional[sessionmaker] = None,
    pipeline: Optional[QueuePipeline] = None,
) -> FastAPI:
    settings = settings or default_settings
    configure_logging(settings.LOG_LEVEL)

    if session_factory is None:
        session_factory = create_session_factory(create_db_engine(settings.SQLALCHEMY_DATABASE_URI))
    engine = session_factory.kw["bind"]
    media = MediaStore(settings.MEDIA_ROOT)
    media.ensure_media_dirs()
    pipeline = pipeline or build_pipeline(settings, session_factory, media=media)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Create DB tables on startup (no migrations yet)
        Base.metadata.create_all(bind=engine)
        if settings.QUEUE_AUTOSTART:
            pipeline.start()
        try:
            yield
        finally:
            pipeline.stop()

    app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)
    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.pipeline = pipeline
    app.state.film_compiler = FilmCompiler(media, FfmpegToolkit(settings.FFMPEG_BINARY))

    @app.exception_handler(PreconditionError)
    async def precondition_error_handler(request: Request, exc: PreconditionError):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    @app.exception_handler(PromptLayerConflictError)
    async def layer_conflict_handler(request: Request, exc: PromptLayerConflictError):
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    app.include_router(health.router, prefix=settings.API_V1_PREFIX)
    app.include_router(projects.router, prefix=settings.API_V1_PREFIX)
    app.include_router(scene_videos.router, prefix=settings.API_V1_PREFIX)
    app.include_router(final_films.router, prefix=settings.API_V1_PREFIX)
    app.include_router(prompt_layers.router, prefix=settings.API_V1_PREFIX)

    app.mount("/media", StaticFiles(directory=os.path.abspath(settings.MEDIA_ROOT)), name="media")
    return app


app = create_app()
