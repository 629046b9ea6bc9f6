import pytest
from fastapi.testclient import TestClient

from conftest import add_scene_job
from reelforge.core.config import Settings
from reelforge.main import create_app
from reelforge.models import JobStatus, JobType
from reelforge.queue import PollingQueueBackend
from reelforge.services.continuity import HeuristicContinuityScorer
from reelforge.workers import build_pipeline

API = "/api/v1"


@pytest.fixture
def settings(media):
    return Settings(
        MEDIA_ROOT=media.root,
        QUEUE_BACKEND="polling",
        QUEUE_AUTOSTART=False,
        DEFAULT_CONTINUITY_THRESHOLD=0.75,
    )


@pytest.fixture
def pipeline(settings, session_factory, registry, fake_ffmpeg, media):
    return build_pipeline(
        settings,
        session_factory,
        backend=PollingQueueBackend(),
        providers=registry,
        scorer=HeuristicContinuityScorer(),
        ffmpeg=fake_ffmpeg,
        media=media,
    )


@pytest.fixture
def client(settings, session_factory, pipeline):
    app = create_app(settings, session_factory, pipeline)
    return TestClient(app)


def drain(pipeline):
    return pipeline.backend.run_once(pipeline.drain)


def test_health_reports_backend(client):
    response = client.get(f"{API}/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "queue_backend": "polling"}


def test_project_and_storyboard_lifecycle(client):
    project = client.post(f"{API}/projects", json={"name": "Night Shift"}).json()

    scenes = [
        {"beat_id": "s1", "scene_number": 1, "slugline": "INT. LAB", "image_url": "/media/storyboard/s1.jpg"},
        {"beat_id": "s2", "scene_number": 2, "slugline": "EXT. ROOF"},
    ]
    published = client.post(f"{API}/projects/{project['id']}/storyboard", json={"scenes": scenes})
    assert published.status_code == 201
    assert published.json()["version"] == 1

    again = client.post(f"{API}/projects/{project['id']}/storyboard", json={"scenes": scenes[:1]})
    assert again.json()["version"] == 2
    latest = client.get(f"{API}/projects/{project['id']}/storyboard").json()
    assert [s["beat_id"] for s in latest["scenes"]] == ["s1"]

    duplicate = client.post(f"{API}/projects/{project['id']}/storyboard", json={"scenes": scenes[:1] * 2})
    assert duplicate.status_code == 400

    assert client.delete(f"{API}/projects/{project['id']}").status_code == 204
    assert client.get(f"{API}/projects/{project['id']}").status_code == 404


def test_scene_video_request_is_accepted_then_completed(client, pipeline, project, package):
    response = client.post(
        f"{API}/projects/{project.id}/scenes/b2/video",
        json={"director_prompt": "Mara runs, terrified", "model_key": "veo3"},
    )

    assert response.status_code == 202
    job = response.json()
    assert job["status"] == "queued"
    assert job["model_key"] == "veo3"
    assert job["provider"] == "veo"
    assert job["prompt_layer_id"] is not None

    assert drain(pipeline) == 1

    latest = client.get(f"{API}/projects/{project.id}/scenes/b2/video").json()
    assert latest["id"] == job["id"]
    assert latest["status"] == "completed"
    assert latest["video_url"] == "https://cdn.example.com/clip.mp4"
    assert latest["continuity_reason"]

    layer = client.get(f"{API}/projects/{project.id}/scenes/b2/prompt-layer").json()
    assert layer["director_prompt"] == "Mara runs, terrified"
    assert layer["generation_model"] == "veo3"


def test_scene_video_for_unknown_beat_is_not_found(client, project, package):
    response = client.post(f"{API}/projects/{project.id}/scenes/b9/video", json={})

    assert response.status_code == 404
    assert response.json()["detail"] == "Scene not found for beat"


def test_scene_video_with_unknown_anchor_is_rejected(client, project, package):
    response = client.post(f"{API}/projects/{project.id}/scenes/b2/video", json={"anchor_beat_id": "b9"})

    assert response.status_code == 400
    assert response.json()["detail"] == "Anchor scene not found in storyboard"


def test_scene_video_with_unknown_model_is_rejected(client, project, package):
    response = client.post(f"{API}/projects/{project.id}/scenes/b2/video", json={"model_key": "sora"})

    assert response.status_code == 400


def test_prompt_layer_for_unknown_beat_is_not_found(client, project, package):
    response = client.put(
        f"{API}/projects/{project.id}/scenes/b9/prompt-layer", json={"director_prompt": "anything"}
    )

    assert response.status_code == 404


def test_prompt_layer_versions_and_restore(client, project, package):
    url = f"{API}/projects/{project.id}/scenes/b1/prompt-layer"

    first = client.put(url, json={"director_prompt": "Calm", "cinematographer_prompt": "Soft key"}).json()
    second = client.put(url, json={"director_prompt": "Panicked", "continuation_mode": "loose"}).json()

    assert (first["version"], second["version"]) == (1, 2)
    assert first["merged_prompt"].startswith("Calm | Soft key Camera moves: [dolly-in] Continuity (strict): opening frame")
    assert first["auto_regenerate_threshold"] == 0.75

    history = client.get(f"{url}/history").json()
    assert [h["version"] for h in history] == [2, 1]

    restored = client.post(f"{url}/restore/1")
    assert restored.status_code == 201
    assert restored.json()["version"] == 3
    assert restored.json()["source"] == "restored"
    assert restored.json()["director_prompt"] == "Calm"

    assert client.post(f"{url}/restore/42").status_code == 404


def test_saved_layer_merges_continuity_guidance_for_its_anchor(client, project, package):
    response = client.put(
        f"{API}/projects/{project.id}/scenes/b3/prompt-layer",
        json={
            "director_prompt": "Mara looks back",
            "cinematographer_prompt": "Wide lens",
            "continuation_mode": "strict",
            "anchor_beat_id": "b1",
        },
    )

    assert response.status_code == 200
    merged = response.json()["merged_prompt"]
    assert merged.startswith("Mara looks back | Wide lens Continuity (strict)")
    assert "beat b1 (/media/storyboard/b1.jpg)" in merged


def test_final_film_without_completed_clips_is_rejected(client, project, package):
    response = client.post(f"{API}/projects/{project.id}/final-film")

    assert response.status_code == 400
    assert response.json()["detail"] == "No completed scene videos available to compile"
    assert client.get(f"{API}/projects/{project.id}/final-film").status_code == 404


def test_final_film_is_compiled_from_completed_clips(client, pipeline, db, media, project, package):
    url = media.save_bytes(b"clip", "clips", "b1.mp4")
    add_scene_job(db, project, package, "b1", status=JobStatus.completed, video_url=url)

    response = client.post(f"{API}/projects/{project.id}/final-film")
    assert response.status_code == 202
    assert response.json()["status"] == "queued"

    drain(pipeline)

    film = client.get(f"{API}/projects/{project.id}/final-film").json()
    assert film["status"] == "completed"
    assert film["source_count"] == 1
    assert film["video_url"].endswith(f"final-film-{film['id']}.mp4")


def test_strict_generation_follows_explicit_anchor(client, pipeline, db, project, package):
    b1_frame = "/media/frames/b1-last.jpg"
    add_scene_job(
        db, project, package, "b1", status=JobStatus.completed,
        video_url="https://cdn.example.com/b1.mp4", last_frame_url=b1_frame,
    )

    response = client.post(
        f"{API}/projects/{project.id}/scenes/b3/video",
        json={"continuation_mode": "strict", "anchor_beat_id": "b1"},
    )
    assert response.status_code == 202
    drain(pipeline)

    traces = client.get(f"{API}/projects/{project.id}/scenes/b3/prompt-trace").json()
    assert len(traces) == 1
    anchor = traces[0]["payload"]["anchor"]
    assert anchor["beat_id"] == "b1"
    assert anchor["source_image_url"] == b1_frame
    assert traces[0]["job_id"] == response.json()["id"]
    assert f"beat b1 ({b1_frame})" in traces[0]["payload"]["merged_layers"]
    assert f"beat b1 ({b1_frame})" in traces[0]["payload"]["prompt"]

    job = client.get(f"{API}/projects/{project.id}/scenes/b3/video").json()
    assert job["source_image_url"] == b1_frame


def test_prompt_trace_diff_between_attempts(client, pipeline, project, package):
    video_url = f"{API}/projects/{project.id}/scenes/b2/video"
    client.post(video_url, json={"continuation_mode": "balanced"})
    drain(pipeline)
    client.post(video_url, json={"continuation_mode": "loose"})
    drain(pipeline)

    diff = client.get(f"{API}/projects/{project.id}/scenes/b2/prompt-trace/diff").json()

    changed = {c["field"]: c for c in diff["changes"]}
    assert changed["continuation_mode"]["previous"] == "balanced"
    assert changed["continuation_mode"]["current"] == "loose"


def test_queue_stats_and_scene_video_listing(client, pipeline, db, project, package):
    add_scene_job(db, project, package, "b1", status=JobStatus.failed, error="quota")
    client.post(f"{API}/projects/{project.id}/scenes/b2/video", json={})

    stats = client.get(f"{API}/queue/stats").json()
    assert stats["queue_backend"] == "polling"
    assert stats["counts"][JobType.scene_video.value]["queued"] == 1
    assert stats["counts"][JobType.scene_video.value]["failed"] == 1

    listing = client.get(f"{API}/projects/{project.id}/scene-videos").json()
    assert sorted(j["beat_id"] for j in listing) == ["b1", "b2"]
