import os
import shutil
from datetime import datetime, timedelta

import pytest

from reelforge import models, schemas
from reelforge.core.errors import CompilationError, ProviderError
from reelforge.core.files import MediaStore
from reelforge.db import Base, create_db_engine, create_session_factory, utcnow
from reelforge.models import JobStatus
from reelforge.services import storyboard
from reelforge.services.video import ProviderRegistry, VideoProvider

BASE_TIME = datetime(2026, 1, 1, 12, 0, 0)

SCENES = [
    schemas.StoryboardSceneCreate(
        beat_id="b1",
        scene_number=1,
        slugline="INT. REACTOR LAB - NIGHT",
        visual_direction="Mara calibrates the core while alarms pulse red",
        camera="Slow push in from the doorway",
        camera_moves=["dolly-in"],
        image_url="/media/storyboard/b1.jpg",
    ),
    schemas.StoryboardSceneCreate(
        beat_id="b2",
        scene_number=2,
        slugline="INT. CORRIDOR - CONTINUOUS",
        visual_direction="Mara sprints toward the blast door",
        camera="Handheld tracking shot",
        camera_moves=["tracking", "Pan Left"],
        image_url="/media/storyboard/b2.jpg",
    ),
    schemas.StoryboardSceneCreate(
        beat_id="b3",
        scene_number=3,
        slugline="EXT. ROOFTOP - DAWN",
        visual_direction="Mara watches the sunrise over the city",
        camera="Wide static frame",
        image_url="/media/storyboard/b3.jpg",
    ),
]


@pytest.fixture
def engine(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'reelforge-test.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def media(tmp_path):
    store = MediaStore(str(tmp_path / "media"))
    store.ensure_media_dirs()
    return store


@pytest.fixture
def project(db):
    project = models.Project(name="Night Shift", description="Reactor thriller")
    db.add(project)
    db.commit()
    db.refresh(project)
    return project


@pytest.fixture
def package(db, project):
    return storyboard.publish_package(db, project.id, SCENES)


def add_scene_job(db, project, package, beat_id, status=JobStatus.queued, created_at=None, **fields):
    job = models.SceneVideoJob(
        project_id=project.id,
        package_id=package.id,
        beat_id=beat_id,
        provider="veo",
        model_key="veo2",
        prompt=fields.pop("prompt", ""),
        status=status,
        created_at=created_at or BASE_TIME,
        updated_at=created_at or BASE_TIME,
        **fields,
    )
    db.add(job)
    db.commit()
    db.refresh(job)
    return job


def add_final_film(db, project, status=JobStatus.queued, created_at=None):
    film = models.ProjectFinalFilm(
        project_id=project.id,
        status=status,
        source_count=0,
        created_at=created_at or BASE_TIME,
        updated_at=created_at or BASE_TIME,
    )
    db.add(film)
    db.commit()
    db.refresh(film)
    return film


def minutes_ago(minutes):
    return utcnow() - timedelta(minutes=minutes)


class FakeProvider(VideoProvider):
    """Replays scripted outcomes: a URL string, or an exception to raise."""

    name = "veo"

    def __init__(self, outcomes=None):
        self.outcomes = list(outcomes or ["https://cdn.example.com/clip.mp4"])
        self.requests = []

    def generate(self, model, request):
        self.requests.append(request)
        request.submitted(f"op-{len(self.requests)}")
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeFfmpeg:
    """Stands in for the ffmpeg CLI by copying bytes around."""

    def __init__(self, fail_concat=False, fail_frames=False):
        self.fail_concat = fail_concat
        self.fail_frames = fail_frames
        self.normalized = []
        self.concat_lists = []
        self.frames = []

    def extract_frame(self, video_path, output_path, last=True):
        if self.fail_frames:
            raise CompilationError("failed to extract frame: no video stream")
        os.makedirs(os.path.dirname(output_path), exist_ok=True)
        with open(output_path, "wb") as f:
            f.write(b"frame")
        self.frames.append((video_path, output_path, last))
        return output_path

    def normalize_clip(self, source_path, output_path, index=0):
        shutil.copyfile(source_path, output_path)
        self.normalized.append(source_path)
        return output_path

    def concat(self, list_path, output_path):
        with open(list_path, encoding="utf-8") as f:
            self.concat_lists.append(f.read())
        # ffmpeg leaves whatever it wrote before failing
        with open(output_path, "wb") as f:
            f.write(b"partial" if self.fail_concat else b"film")
        if self.fail_concat:
            raise CompilationError("failed to concatenate clips: Invalid data found when processing input")
        return output_path


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def registry(fake_provider):
    return ProviderRegistry({"veo": fake_provider, "runway": fake_provider}, max_attempts=3, backoff_seconds=0)


@pytest.fixture
def fake_ffmpeg():
    return FakeFfmpeg()


def provider_error(message, retryable=True):
    return ProviderError(message, provider="veo", retryable=retryable)
