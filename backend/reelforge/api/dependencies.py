from fastapi import Request

from reelforge.core.config import Settings
from reelforge.queue import QueuePipeline
from reelforge.services.film_compiler import FilmCompiler


def get_db(request: Request):
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def get_pipeline(request: Request) -> QueuePipeline:
    return request.app.state.pipeline


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_film_compiler(request: Request) -> FilmCompiler:
    return request.app.state.film_compiler
