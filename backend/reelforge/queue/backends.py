import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, Dict, Iterable, Optional

from rq import Queue, Retry, SimpleWorker

from reelforge.core.errors import ConfigurationError
from reelforge.core.redis import redis_connection
from reelforge.models import JobType
from reelforge.queue.ids import build_queue_run_id

logger = logging.getLogger(__name__)

POLLING = "polling"
BROKER = "broker"

_POLLING_ALIASES = {"polling", "sqlite", "poll"}
_BROKER_ALIASES = {"broker", "rq", "redis", "bullmq"}

# Import path RQ workers resolve for every delivered message
DRAIN_TASK = "reelforge.workers.tasks.drain_message"

# RQ states in which a message for the same job is still pending delivery
PENDING_STATES = {"queued", "started", "deferred", "scheduled"}

DrainFn = Callable[[JobType, Optional[int]], bool]


def resolve_queue_backend(selector: Optional[str], redis_url: Optional[str]) -> str:
    """Pick the queue backend from configuration alone.

    An explicit selector wins. ``auto`` (or nothing) means broker when a
    Redis URL is configured and polling otherwise.
    """
    choice = (selector or "auto").strip().lower()
    has_redis = bool(redis_url and redis_url.strip())

    if choice in _POLLING_ALIASES:
        return POLLING
    if choice in _BROKER_ALIASES:
        if not has_redis:
            raise ConfigurationError("QUEUE_BACKEND=broker requires REDIS_URL to be set")
        return BROKER
    if choice == "auto":
        return BROKER if has_redis else POLLING
    raise ConfigurationError(f"Unknown QUEUE_BACKEND '{selector}' (expected auto, polling or broker)")


def queue_name(prefix: str, job_type: JobType) -> str:
    return f"{prefix}:{JobType(job_type).value}"


class QueueBackend(ABC):
    name = ""
    # Whether queued rows must be published to become visible to workers
    needs_publish = False

    @abstractmethod
    def enqueue(self, job_type: JobType, job_id: int) -> bool:
        """Announce a queued job. Returns False when nothing was published."""

    def start(self, drain: DrainFn):
        pass

    def stop(self):
        pass


class PollingQueueBackend(QueueBackend):
    """Workers scan the job tables; the queued row is the enqueue signal."""

    name = POLLING

    def __init__(self, poll_interval_seconds: float = 2.5, job_types: Iterable[JobType] = tuple(JobType)):
        self.poll_interval_seconds = poll_interval_seconds
        self.job_types = [JobType(t) for t in job_types]
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def enqueue(self, job_type: JobType, job_id: int) -> bool:
        logger.debug("[queue] %s %s visible to pollers", JobType(job_type).value, job_id)
        return False

    def run_once(self, drain: DrainFn) -> int:
        """Drain every claimable job once. Returns how many were processed."""
        processed = 0
        for job_type in self.job_types:
            while not self._stop.is_set() and drain(job_type, None):
                processed += 1
        return processed

    def _loop(self, drain: DrainFn):
        while not self._stop.is_set():
            try:
                self.run_once(drain)
            except Exception:
                logger.exception("[queue] polling sweep failed")
            self._stop.wait(self.poll_interval_seconds)

    def start(self, drain: DrainFn):
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, args=(drain,), name="queue-poller", daemon=True)
        self._thread.start()
        logger.info("[queue] polling every %.1fs", self.poll_interval_seconds)

    def stop(self):
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None


class BrokerQueueBackend(QueueBackend):
    """One RQ queue per job type; each message asks a worker to drain one job."""

    name = BROKER
    needs_publish = True

    def __init__(
        self,
        queues: Dict[JobType, Queue],
        retry_attempts: int = 3,
        backoff_seconds: float = 1.0,
        result_ttl: int = 24 * 3600,
        failure_ttl: int = 7 * 24 * 3600,
    ):
        self.queues = {JobType(k): v for k, v in queues.items()}
        self.retry_attempts = max(1, retry_attempts)
        self.backoff_seconds = backoff_seconds
        self.result_ttl = result_ttl
        self.failure_ttl = failure_ttl

    @classmethod
    def from_url(cls, redis_url: str, prefix: str, **kwargs) -> "BrokerQueueBackend":
        connection = redis_connection(redis_url)
        queues = {t: Queue(queue_name(prefix, t), connection=connection) for t in JobType}
        return cls(queues, **kwargs)

    def _retry_for(self, job_type: JobType) -> Optional[Retry]:
        # Final films are never retried automatically
        if job_type == JobType.final_film or self.retry_attempts <= 1:
            return None
        intervals = [int(self.backoff_seconds * 2 ** i) or 1 for i in range(self.retry_attempts - 1)]
        return Retry(max=self.retry_attempts - 1, interval=intervals)

    def is_pending(self, job_type: JobType, job_id: int) -> bool:
        existing = self.queues[JobType(job_type)].fetch_job(build_queue_run_id(job_type, job_id))
        if existing is None:
            return False
        return str(getattr(existing.get_status(), "value", existing.get_status())) in PENDING_STATES

    def enqueue(self, job_type: JobType, job_id: int) -> bool:
        job_type = JobType(job_type)
        run_id = build_queue_run_id(job_type, job_id)

        if self.is_pending(job_type, job_id):
            logger.debug("[queue] %s already pending, skipping publish", run_id)
            return False

        self.queues[job_type].enqueue(
            DRAIN_TASK,
            job_type.value,
            job_id,
            job_id=run_id,
            retry=self._retry_for(job_type),
            result_ttl=self.result_ttl,
            failure_ttl=self.failure_ttl,
        )
        logger.info("[queue] published %s", run_id)
        return True

    def consume(self, burst: bool = False):
        """Block in an RQ worker over every job type queue."""
        queues = list(self.queues.values())
        worker = SimpleWorker(queues, connection=queues[0].connection)
        logger.info("[queue] rq worker listening on %s", [q.name for q in queues])
        return worker.work(burst=burst)
