import logging
from datetime import timedelta

from sqlalchemy import update
from sqlalchemy.orm import Session

from reelforge import models
from reelforge.db.base import utcnow
from reelforge.models import JobStatus, JobType

logger = logging.getLogger(__name__)

DEFAULT_STALE_TIMEOUT_SECONDS = 600


def requeue_stale_processing(
    db: Session, job_type: JobType, max_age_seconds: float = DEFAULT_STALE_TIMEOUT_SECONDS
) -> int:
    """Return processing rows untouched for longer than ``max_age_seconds`` to queued."""
    job_type = JobType(job_type)
    model = models.model_for(job_type)
    now = utcnow()
    cutoff = now - timedelta(seconds=max_age_seconds)

    result = db.execute(
        update(model)
        .where(model.status == JobStatus.processing, model.updated_at < cutoff)
        .values(status=JobStatus.queued, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()

    count = result.rowcount or 0
    if count:
        logger.warning("[queue] requeued %d stale %s job(s)", count, job_type.value)
    return count
