import logging
from typing import Optional

from sqlalchemy import and_, exists, update
from sqlalchemy.orm import Session, aliased

from reelforge import models
from reelforge.db.base import utcnow
from reelforge.models import JobStatus, JobType

logger = logging.getLogger(__name__)


def _final_film_gate(project_id_column):
    """True when no film of the same project is already being compiled."""
    busy = aliased(models.ProjectFinalFilm)
    return ~exists().where(
        and_(busy.project_id == project_id_column, busy.status == JobStatus.processing)
    )


def claim_next_queued(db: Session, job_type: JobType, job_id: Optional[int] = None):
    """Move the oldest queued job of ``job_type`` to processing.

    Returns the claimed row, or None when nothing is claimable or another
    worker won the race for the candidate. The caller must not retry the
    same row on None.
    """
    job_type = JobType(job_type)
    model = models.model_for(job_type)

    query = db.query(model.id).filter(model.status == JobStatus.queued)
    if job_id is not None:
        query = query.filter(model.id == job_id)
    if job_type == JobType.final_film:
        query = query.filter(_final_film_gate(model.project_id))

    candidate = query.order_by(model.created_at.asc(), model.id.asc()).first()
    if candidate is None:
        return None

    conditions = [model.id == candidate.id, model.status == JobStatus.queued]
    if job_type == JobType.final_film:
        conditions.append(_final_film_gate(model.project_id))

    result = db.execute(
        update(model)
        .where(*conditions)
        .values(status=JobStatus.processing, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    db.commit()

    if result.rowcount != 1:
        logger.debug("[queue] lost claim race for %s %s", job_type.value, candidate.id)
        return None

    return db.get(model, candidate.id, populate_existing=True)
