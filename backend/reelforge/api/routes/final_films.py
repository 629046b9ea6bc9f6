from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from reelforge import schemas
from reelforge.api.dependencies import get_db, get_film_compiler, get_pipeline
from reelforge.models import JobType
from reelforge.queue import QueuePipeline
from reelforge.services import job_store, storyboard
from reelforge.services.film_compiler import FilmCompiler

router = APIRouter(prefix="/projects/{project_id}/final-film", tags=["final-film"])


@router.post("", response_model=schemas.ProjectFinalFilm, status_code=status.HTTP_202_ACCEPTED)
def request_final_film(
    project_id: int,
    db: Session = Depends(get_db),
    pipeline: QueuePipeline = Depends(get_pipeline),
    compiler: FilmCompiler = Depends(get_film_compiler),
):
    film = compiler.request_compile(db, project_id)
    pipeline.enqueue(JobType.final_film, film.id)
    return film


@router.get("", response_model=schemas.ProjectFinalFilm)
def get_final_film(project_id: int, db: Session = Depends(get_db)):
    storyboard.get_project(db, project_id)
    film = job_store.get_latest_final_film(db, project_id)
    if not film:
        raise HTTPException(status_code=404, detail="No final film for this project")
    return film
