"""Entry points executed by RQ workers for each delivered queue message."""
import logging
from typing import Optional

from reelforge.models import JobType
from reelforge.queue import QueuePipeline

logger = logging.getLogger(__name__)

_pipeline: Optional[QueuePipeline] = None


def bind_pipeline(pipeline: QueuePipeline):
    """Attach the worker process's pipeline; called once before the RQ loop starts."""
    global _pipeline
    _pipeline = pipeline


def drain_message(job_type: str, job_id: int) -> bool:
    """Claim and run one job. Returning (rather than raising) acknowledges the message."""
    if _pipeline is None:
        raise RuntimeError("worker pipeline not bound; start workers through backend/worker.py")
    processed = _pipeline.drain(JobType(job_type), int(job_id))
    if not processed:
        logger.info("[queue] %s %s not claimable, message dropped", job_type, job_id)
    return processed
