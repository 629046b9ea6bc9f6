import logging
import threading
from typing import Callable, Dict, Optional

from sqlalchemy.orm import Session, sessionmaker

from reelforge import models
from reelforge.core.config import Settings
from reelforge.models import JobStatus, JobType
from reelforge.queue.backends import (
    BROKER,
    BrokerQueueBackend,
    PollingQueueBackend,
    QueueBackend,
    resolve_queue_backend,
)
from reelforge.queue.claimer import claim_next_queued
from reelforge.queue.reclaimer import requeue_stale_processing
from reelforge.services import job_store

logger = logging.getLogger(__name__)

# handler(db, claimed_job) runs the actual work for one claimed row
Handler = Callable[[Session, object], None]


class QueuePipeline:
    """Owns the queue backend and the drain callbacks for one process.

    Built once at startup and handed to the HTTP layer and the workers.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        backend: QueueBackend,
        handlers: Dict[JobType, Handler],
        stale_timeout_seconds: float = 600,
        sweep_interval_seconds: float = 180,
    ):
        self.session_factory = session_factory
        self.backend = backend
        self.handlers = {JobType(k): v for k, v in handlers.items()}
        self.stale_timeout_seconds = stale_timeout_seconds
        self.sweep_interval_seconds = sweep_interval_seconds
        self._stop = threading.Event()
        self._sweeper: Optional[threading.Thread] = None

    @property
    def backend_name(self) -> str:
        return self.backend.name

    def enqueue(self, job_type: JobType, job_id: int) -> bool:
        return self.backend.enqueue(JobType(job_type), job_id)

    def drain(self, job_type: JobType, job_id: Optional[int] = None) -> bool:
        """Claim one job and run its handler. False when nothing was claimed."""
        job_type = JobType(job_type)
        db = self.session_factory()
        try:
            job = claim_next_queued(db, job_type, job_id)
            if job is None:
                return False
            logger.info("[queue] claimed %s %s", job_type.value, job.id)
            self.handlers[job_type](db, job)
            return True
        finally:
            db.close()

    def sweep_stale(self) -> int:
        db = self.session_factory()
        try:
            requeued = 0
            for job_type in JobType:
                requeued += requeue_stale_processing(db, job_type, self.stale_timeout_seconds)
            if self.backend.needs_publish:
                self._republish_queued(db)
            return requeued
        finally:
            db.close()

    def _republish_queued(self, db: Session):
        for job_type in JobType:
            model = models.model_for(job_type)
            rows = db.query(model.id).filter(model.status == JobStatus.queued).all()
            for row in rows:
                self.enqueue(job_type, row.id)

    def queue_stats(self) -> Dict[str, Dict[str, int]]:
        db = self.session_factory()
        try:
            return job_store.queue_stats(db)
        finally:
            db.close()

    def _sweep_loop(self):
        while not self._stop.wait(self.sweep_interval_seconds):
            try:
                self.sweep_stale()
            except Exception:
                logger.exception("[queue] stale sweep failed")

    def start(self, consume: bool = True):
        """Run a startup sweep, then the stale sweeper and (optionally) the consumer."""
        self._stop.clear()
        self.sweep_stale()
        if consume:
            self.backend.start(self.drain)
        if self._sweeper is None or not self._sweeper.is_alive():
            self._sweeper = threading.Thread(target=self._sweep_loop, name="stale-sweeper", daemon=True)
            self._sweeper.start()
        logger.info("[queue] pipeline started on %s backend", self.backend_name)

    def stop(self):
        self._stop.set()
        self.backend.stop()
        if self._sweeper:
            self._sweeper.join(timeout=5)
            self._sweeper = None


def build_queue_backend(settings: Settings) -> QueueBackend:
    choice = resolve_queue_backend(settings.QUEUE_BACKEND, settings.REDIS_URL)
    if choice == BROKER:
        return BrokerQueueBackend.from_url(
            settings.REDIS_URL,
            settings.QUEUE_NAME,
            retry_attempts=settings.PROVIDER_MAX_ATTEMPTS,
            backoff_seconds=settings.PROVIDER_BACKOFF_SECONDS,
        )
    return PollingQueueBackend(settings.QUEUE_POLL_INTERVAL_SECONDS)
