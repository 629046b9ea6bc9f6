import threading
from datetime import timedelta

from conftest import BASE_TIME, add_final_film, add_scene_job
from reelforge import models
from reelforge.models import JobStatus, JobType
from reelforge.queue import claim_next_queued


def test_claims_oldest_queued_job_first(db, project, package):
    newer = add_scene_job(db, project, package, "b2", created_at=BASE_TIME + timedelta(seconds=5))
    older = add_scene_job(db, project, package, "b1", created_at=BASE_TIME)

    claimed = claim_next_queued(db, JobType.scene_video)

    assert claimed.id == older.id
    assert claimed.status == JobStatus.processing
    db.refresh(newer)
    assert newer.status == JobStatus.queued


def test_equal_timestamps_are_claimed_in_id_order(db, project, package):
    first = add_scene_job(db, project, package, "b1", created_at=BASE_TIME)
    second = add_scene_job(db, project, package, "b2", created_at=BASE_TIME)

    assert claim_next_queued(db, JobType.scene_video).id == first.id
    assert claim_next_queued(db, JobType.scene_video).id == second.id
    assert claim_next_queued(db, JobType.scene_video) is None


def test_skips_jobs_that_are_not_queued(db, project, package):
    add_scene_job(db, project, package, "b1", status=JobStatus.processing)
    add_scene_job(db, project, package, "b2", status=JobStatus.completed)
    add_scene_job(db, project, package, "b3", status=JobStatus.failed)

    assert claim_next_queued(db, JobType.scene_video) is None


def test_claim_by_id_only_takes_that_job(db, project, package):
    add_scene_job(db, project, package, "b1", created_at=BASE_TIME)
    target = add_scene_job(db, project, package, "b2", created_at=BASE_TIME + timedelta(seconds=1))

    claimed = claim_next_queued(db, JobType.scene_video, job_id=target.id)

    assert claimed.id == target.id
    # Delivering the same message again finds nothing to claim
    assert claim_next_queued(db, JobType.scene_video, job_id=target.id) is None


def test_exactly_one_of_many_racing_workers_wins(session_factory, db, project, package):
    job = add_scene_job(db, project, package, "b1")
    workers = 8
    barrier = threading.Barrier(workers)
    results = []
    lock = threading.Lock()

    def worker():
        session = session_factory()
        try:
            barrier.wait()
            claimed = claim_next_queued(session, JobType.scene_video)
            with lock:
                results.append(claimed.id if claimed else None)
        finally:
            session.close()

    threads = [threading.Thread(target=worker) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count(job.id) == 1
    assert results.count(None) == workers - 1
    db.refresh(job)
    assert job.status == JobStatus.processing


def test_final_film_claim_waits_for_running_compile_of_same_project(db, project):
    add_final_film(db, project, status=JobStatus.processing)
    waiting = add_final_film(db, project, created_at=BASE_TIME + timedelta(seconds=1))

    assert claim_next_queued(db, JobType.final_film) is None
    db.refresh(waiting)
    assert waiting.status == JobStatus.queued


def test_final_film_claims_for_different_projects_proceed(db, project):
    other = models.Project(name="Other")
    db.add(other)
    db.commit()
    add_final_film(db, project, status=JobStatus.processing)
    film = add_final_film(db, other)

    claimed = claim_next_queued(db, JobType.final_film)

    assert claimed.id == film.id
    assert claimed.project_id == other.id
