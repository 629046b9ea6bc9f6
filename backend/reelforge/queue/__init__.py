from .backends import (
    BrokerQueueBackend,
    PollingQueueBackend,
    QueueBackend,
    resolve_queue_backend,
)
from .claimer import claim_next_queued
from .ids import build_queue_run_id, sanitize_queue_token
from .pipeline import QueuePipeline, build_queue_backend
from .reclaimer import requeue_stale_processing

__all__ = [
    "BrokerQueueBackend",
    "PollingQueueBackend",
    "QueueBackend",
    "QueuePipeline",
    "build_queue_backend",
    "build_queue_run_id",
    "claim_next_queued",
    "requeue_stale_processing",
    "resolve_queue_backend",
    "sanitize_queue_token",
]
