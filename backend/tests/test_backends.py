import pytest

from conftest import add_final_film, add_scene_job, minutes_ago
from reelforge import models, schemas
from reelforge.core.config import Settings
from reelforge.core.errors import ConfigurationError
from reelforge.models import JobStatus, JobType
from reelforge.queue import (
    BrokerQueueBackend,
    PollingQueueBackend,
    QueuePipeline,
    build_queue_backend,
    resolve_queue_backend,
)
from reelforge.queue.backends import BROKER, DRAIN_TASK, POLLING
from reelforge.services import job_store
from reelforge.workers import tasks


class FakeRQJob:
    def __init__(self, status="queued"):
        self.status = status

    def get_status(self):
        return self.status


class FakeQueue:
    """Records publishes the way rq.Queue would receive them."""

    def __init__(self, name):
        self.name = name
        self.connection = None
        self.messages = []
        self.jobs = {}

    def enqueue(self, func, *args, **kwargs):
        self.messages.append((func, args, kwargs))
        self.jobs[kwargs["job_id"]] = FakeRQJob()
        return self.jobs[kwargs["job_id"]]

    def fetch_job(self, job_id):
        return self.jobs.get(job_id)


def broker_backend(**kwargs):
    queues = {t: FakeQueue(f"test:{t.value}") for t in JobType}
    return BrokerQueueBackend(queues, **kwargs)


def complete_handler(job_type):
    def handler(db, job):
        if job_type == JobType.scene_video:
            patch = schemas.SceneVideoJobPatch(video_url="/media/clips/x.mp4")
        else:
            patch = schemas.FinalFilmPatch(video_url="/media/films/x.mp4")
        job_store.transition(db, job_type, job.id, JobStatus.processing, JobStatus.completed, patch)
    return handler


def make_pipeline(session_factory, backend):
    return QueuePipeline(
        session_factory,
        backend,
        {t: complete_handler(t) for t in JobType},
        stale_timeout_seconds=600,
    )


@pytest.mark.parametrize(
    "selector, redis_url, expected",
    [
        (None, None, POLLING),
        ("auto", None, POLLING),
        ("auto", "redis://localhost:6379/0", BROKER),
        ("", "redis://localhost:6379/0", BROKER),
        ("polling", "redis://localhost:6379/0", POLLING),
        ("SQLite", None, POLLING),
        ("broker", "redis://localhost:6379/0", BROKER),
        ("rq", "redis://localhost:6379/0", BROKER),
        ("auto", "   ", POLLING),
    ],
)
def test_resolve_queue_backend(selector, redis_url, expected):
    assert resolve_queue_backend(selector, redis_url) == expected


def test_broker_without_redis_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        resolve_queue_backend("broker", None)


def test_unknown_selector_is_rejected():
    with pytest.raises(ConfigurationError):
        resolve_queue_backend("kafka", "redis://localhost:6379/0")


def test_polling_enqueue_publishes_nothing():
    assert PollingQueueBackend().enqueue(JobType.scene_video, 1) is False


def test_broker_publishes_drain_message_with_deterministic_id():
    backend = broker_backend(retry_attempts=3, backoff_seconds=1)

    assert backend.enqueue(JobType.scene_video, 42) is True

    func, args, kwargs = backend.queues[JobType.scene_video].messages[0]
    assert func == DRAIN_TASK
    assert args == ("scene-video", 42)
    assert kwargs["job_id"] == "scene-video-42"
    assert kwargs["retry"].max == 2
    assert kwargs["retry"].intervals == [1, 2]


def test_broker_never_retries_final_films():
    backend = broker_backend(retry_attempts=5)

    backend.enqueue(JobType.final_film, 7)

    func, args, kwargs = backend.queues[JobType.final_film].messages[0]
    assert kwargs["job_id"] == "final-film-7"
    assert kwargs["retry"] is None


def test_broker_skips_publish_while_message_is_pending():
    backend = broker_backend()
    queue = backend.queues[JobType.scene_video]

    assert backend.enqueue(JobType.scene_video, 1) is True
    assert backend.enqueue(JobType.scene_video, 1) is False
    assert len(queue.messages) == 1

    queue.jobs["scene-video-1"].status = "finished"
    assert backend.enqueue(JobType.scene_video, 1) is True
    assert len(queue.messages) == 2


def test_polling_run_once_drains_every_claimable_job(session_factory, db, project, package):
    jobs = [add_scene_job(db, project, package, beat) for beat in ("b1", "b2", "b3")]
    pipeline = make_pipeline(session_factory, PollingQueueBackend())

    assert pipeline.backend.run_once(pipeline.drain) == 3

    for job in jobs:
        db.refresh(job)
        assert job.status == JobStatus.completed


def deliver(pipeline, backend):
    """Hand every published message to the pipeline, as an RQ worker would."""
    delivered = 0
    for queue in backend.queues.values():
        for _, (job_type, job_id), _ in queue.messages:
            pipeline.drain(JobType(job_type), job_id)
            delivered += 1
    return delivered


@pytest.mark.parametrize("kind", [POLLING, BROKER])
def test_both_backends_drive_the_same_transitions(kind, session_factory, db, project, package):
    backend = PollingQueueBackend() if kind == POLLING else broker_backend()
    pipeline = make_pipeline(session_factory, backend)

    queued = add_scene_job(db, project, package, "b1")
    done = add_scene_job(db, project, package, "b2", status=JobStatus.completed)
    film = add_final_film(db, project)
    for job_type, row in ((JobType.scene_video, queued), (JobType.scene_video, done), (JobType.final_film, film)):
        pipeline.enqueue(job_type, row.id)

    if kind == POLLING:
        backend.run_once(pipeline.drain)
    else:
        deliver(pipeline, backend)

    for row in (queued, done, film):
        db.refresh(row)
    assert queued.status == JobStatus.completed
    assert queued.video_url == "/media/clips/x.mp4"
    assert done.status == JobStatus.completed
    assert film.status == JobStatus.completed


def test_redelivered_message_does_not_run_job_twice(session_factory, db, project, package):
    calls = []
    pipeline = make_pipeline(session_factory, broker_backend())
    pipeline.handlers[JobType.scene_video] = lambda session, job: calls.append(job.id)
    job = add_scene_job(db, project, package, "b1")

    assert pipeline.drain(JobType.scene_video, job.id) is True
    assert pipeline.drain(JobType.scene_video, job.id) is False
    assert calls == [job.id]


def test_broker_sweep_requeues_and_republishes(session_factory, db, project, package):
    backend = broker_backend()
    pipeline = make_pipeline(session_factory, backend)
    stale = add_scene_job(db, project, package, "b1", status=JobStatus.processing, created_at=minutes_ago(30))

    assert pipeline.sweep_stale() == 1

    db.refresh(stale)
    assert stale.status == JobStatus.queued
    run_ids = [kwargs["job_id"] for _, _, kwargs in backend.queues[JobType.scene_video].messages]
    assert run_ids == [f"scene-video-{stale.id}"]


def test_drain_message_uses_bound_pipeline(session_factory, db, project, package):
    pipeline = make_pipeline(session_factory, broker_backend())
    job = add_scene_job(db, project, package, "b1")
    tasks.bind_pipeline(pipeline)
    try:
        assert tasks.drain_message("scene-video", job.id) is True
        assert tasks.drain_message("scene-video", job.id) is False
    finally:
        tasks.bind_pipeline(None)

    db.refresh(job)
    assert job.status == JobStatus.completed


def test_drain_message_without_pipeline_raises():
    with pytest.raises(RuntimeError):
        tasks.drain_message("scene-video", 1)


def test_queue_stats_counts_every_status(session_factory, db, project, package):
    add_scene_job(db, project, package, "b1")
    add_scene_job(db, project, package, "b2", status=JobStatus.failed)
    add_final_film(db, project, status=JobStatus.completed)
    pipeline = make_pipeline(session_factory, PollingQueueBackend())

    stats = pipeline.queue_stats()

    assert stats["scene-video"] == {"queued": 1, "processing": 0, "completed": 0, "failed": 1}
    assert stats["final-film"]["completed"] == 1
    assert models.model_for(JobType.final_film) is models.ProjectFinalFilm


def test_build_queue_backend_defaults_to_polling_without_redis():
    backend = build_queue_backend(Settings(QUEUE_BACKEND="auto", REDIS_URL=None, QUEUE_POLL_INTERVAL_SECONDS=0.5))

    assert isinstance(backend, PollingQueueBackend)
    assert backend.poll_interval_seconds == 0.5
