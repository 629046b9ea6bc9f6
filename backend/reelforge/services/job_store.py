"""Durable records for scene video renders and final film compiles.

Every status change goes through ``transition``, a conditional update keyed on
the status the caller expects the row to be in. Claiming (queued to
processing) is the one exception and lives in ``reelforge.queue.claimer``.
"""
import logging
from typing import Dict, List, Optional, Union

from pydantic import BaseModel
from sqlalchemy import func, update
from sqlalchemy.orm import Session

from reelforge import models, schemas
from reelforge.db.base import utcnow
from reelforge.models import JobStatus, JobType

logger = logging.getLogger(__name__)

Patch = Union[schemas.SceneVideoJobPatch, schemas.FinalFilmPatch]


def create_scene_video_job(
    db: Session,
    *,
    project_id: int,
    package_id: int,
    beat_id: str,
    provider: str,
    model_key: str,
    prompt: str = "",
    source_image_url: Optional[str] = None,
    prompt_layer_id: Optional[int] = None,
    continuity_threshold: float = 0.75,
    duration_seconds: float = 5,
) -> models.SceneVideoJob:
    job = models.SceneVideoJob(
        project_id=project_id,
        package_id=package_id,
        beat_id=beat_id,
        provider=provider,
        model_key=model_key,
        prompt=prompt,
        source_image_url=source_image_url,
        prompt_layer_id=prompt_layer_id,
        continuity_threshold=continuity_threshold,
        duration_seconds=duration_seconds,
        status=JobStatus.queued,
    )
    db.add(job)
    db.commit()
    db.refresh(job)
    return job


def create_final_film(db: Session, project_id: int) -> models.ProjectFinalFilm:
    film = models.ProjectFinalFilm(project_id=project_id, status=JobStatus.queued, source_count=0)
    db.add(film)
    db.commit()
    db.refresh(film)
    return film


def get_latest_scene_video(db: Session, project_id: int, beat_id: str) -> Optional[models.SceneVideoJob]:
    return (
        db.query(models.SceneVideoJob)
        .filter(models.SceneVideoJob.project_id == project_id, models.SceneVideoJob.beat_id == beat_id)
        .order_by(models.SceneVideoJob.created_at.desc(), models.SceneVideoJob.id.desc())
        .first()
    )


def _latest_per_beat(jobs: List[models.SceneVideoJob]) -> Dict[str, models.SceneVideoJob]:
    # jobs arrive newest first, so the first row seen per beat wins
    latest: Dict[str, models.SceneVideoJob] = {}
    for job in jobs:
        latest.setdefault(job.beat_id, job)
    return latest


def list_latest_scene_videos(db: Session, project_id: int) -> List[models.SceneVideoJob]:
    jobs = (
        db.query(models.SceneVideoJob)
        .filter(models.SceneVideoJob.project_id == project_id)
        .order_by(models.SceneVideoJob.created_at.desc(), models.SceneVideoJob.id.desc())
        .all()
    )
    return list(_latest_per_beat(jobs).values())


def latest_completed_by_beat(db: Session, project_id: int) -> Dict[str, models.SceneVideoJob]:
    """Newest completed job with a usable clip, keyed by beat."""
    jobs = (
        db.query(models.SceneVideoJob)
        .filter(
            models.SceneVideoJob.project_id == project_id,
            models.SceneVideoJob.status == JobStatus.completed,
            models.SceneVideoJob.video_url.isnot(None),
            models.SceneVideoJob.video_url != "",
        )
        .order_by(models.SceneVideoJob.created_at.desc(), models.SceneVideoJob.id.desc())
        .all()
    )
    return _latest_per_beat(jobs)


def completed_frames(db: Session, project_id: int) -> Dict[str, str]:
    """Last frame of each beat's newest completed clip, for beats that have one."""
    completed = latest_completed_by_beat(db, project_id)
    return {beat: job.last_frame_url for beat, job in completed.items() if job.last_frame_url}


def get_latest_final_film(db: Session, project_id: int) -> Optional[models.ProjectFinalFilm]:
    return (
        db.query(models.ProjectFinalFilm)
        .filter(models.ProjectFinalFilm.project_id == project_id)
        .order_by(models.ProjectFinalFilm.created_at.desc(), models.ProjectFinalFilm.id.desc())
        .first()
    )


def _apply(
    db: Session,
    job_type: JobType,
    job_id: int,
    expected: JobStatus,
    values: dict,
) -> bool:
    model = models.model_for(job_type)
    values["updated_at"] = utcnow()
    result = db.execute(
        update(model)
        .where(model.id == job_id, model.status == expected)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    changed = result.rowcount == 1
    if not changed:
        logger.warning(
            "[jobs] %s %s was not %s, update skipped", JobType(job_type).value, job_id, expected.value
        )
    return changed


def transition(
    db: Session,
    job_type: JobType,
    job_id: int,
    expected: JobStatus,
    new_status: JobStatus,
    patch: Optional[BaseModel] = None,
) -> bool:
    """Move a job from ``expected`` to ``new_status``, writing only fields set on ``patch``."""
    if new_status == JobStatus.processing:
        raise ValueError("processing is only entered through claim_next_queued")
    values = patch.model_dump(exclude_unset=True) if patch is not None else {}
    values["status"] = new_status
    return _apply(db, job_type, job_id, expected, values)


def update_in_flight(db: Session, job_type: JobType, job_id: int, patch: Optional[BaseModel] = None) -> bool:
    """Patch a processing job without changing its status.

    Called with no patch it only refreshes ``updated_at``, which keeps a long
    running job clear of the stale reclaimer.
    """
    values = patch.model_dump(exclude_unset=True) if patch is not None else {}
    return _apply(db, job_type, job_id, JobStatus.processing, values)


def queue_stats(db: Session) -> Dict[str, Dict[str, int]]:
    counts: Dict[str, Dict[str, int]] = {}
    for job_type in JobType:
        model = models.model_for(job_type)
        per_status = {status.value: 0 for status in JobStatus}
        for status, count in db.query(model.status, func.count(model.id)).group_by(model.status).all():
            per_status[JobStatus(status).value] = count
        counts[job_type.value] = per_status
    return counts
