import logging
import multiprocessing
import signal
import threading

from reelforge.core.config import settings
from reelforge.core.log import configure_logging
from reelforge.db import Base, create_db_engine, create_session_factory
from reelforge.queue.backends import BROKER, resolve_queue_backend
from reelforge.workers import build_pipeline
from reelforge.workers.tasks import bind_pipeline

logger = logging.getLogger("reelforge.worker")


def _session_factory():
    return create_session_factory(create_db_engine(settings.SQLALCHEMY_DATABASE_URI))


def run_rq_worker(index: int):
    """One broker consumer process with its own pipeline and DB connections."""
    configure_logging(settings.LOG_LEVEL)
    pipeline = build_pipeline(settings, _session_factory())
    bind_pipeline(pipeline)
    logger.info("[Worker %d] consuming from %s", index, settings.QUEUE_NAME)
    pipeline.backend.consume()


def run_broker():
    processes = [
        multiprocessing.Process(target=run_rq_worker, args=(i,), name=f"rq-worker-{i}")
        for i in range(settings.queue_concurrency)
    ]
    for p in processes:
        p.start()

    # Stale sweeps and republishing run once, in the parent
    pipeline = build_pipeline(settings, _session_factory())
    pipeline.start(consume=False)
    try:
        for p in processes:
            p.join()
    finally:
        pipeline.stop()


def run_polling():
    pipeline = build_pipeline(settings, _session_factory())
    stop = threading.Event()
    signal.signal(signal.SIGTERM, lambda *_: stop.set())
    pipeline.start()
    logger.info("[Worker] polling every %.1fs", settings.QUEUE_POLL_INTERVAL_SECONDS)
    try:
        while not stop.wait(1.0):
            pass
    except KeyboardInterrupt:
        pass
    finally:
        pipeline.stop()


if __name__ == '__main__':
    configure_logging(settings.LOG_LEVEL)
    Base.metadata.create_all(bind=create_db_engine(settings.SQLALCHEMY_DATABASE_URI))

    if settings.CONTINUITY_SCORER == "clip":
        # Pre-warm CLIP model to avoid first-job slowness
        logger.info("[Worker] Pre-warming CLIP model...")
        from reelforge.services.continuity.embedding import get_clip_model
        get_clip_model()

    if resolve_queue_backend(settings.QUEUE_BACKEND, settings.REDIS_URL) == BROKER:
        run_broker()
    else:
        run_polling()
