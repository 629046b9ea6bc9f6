from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from reelforge import models, schemas
from reelforge.api.dependencies import get_db, get_pipeline, get_settings
from reelforge.core.config import Settings
from reelforge.core.errors import PreconditionError
from reelforge.models import ContinuationMode, JobType, LayerSource
from reelforge.queue import QueuePipeline
from reelforge.services import job_store, prompt_layers, storyboard
from reelforge.services.video import resolve_video_model

router = APIRouter(prefix="/projects/{project_id}", tags=["scene-videos"])

LAYER_FIELDS = {
    "prompt",
    "director_prompt",
    "cinematographer_prompt",
    "film_type",
    "continuation_mode",
    "anchor_beat_id",
    "auto_regenerate_threshold",
}


def _pick(body: schemas.SceneVideoRequest, name: str, fallback):
    value = getattr(body, name)
    return value if name in body.model_fields_set and value is not None else fallback


def _layer_for_request(
    db: Session,
    project_id: int,
    package: models.StoryboardPackage,
    scene: models.StoryboardScene,
    body: schemas.SceneVideoRequest,
    model_key: str,
    settings: Settings,
) -> Optional[models.ScenePromptLayer]:
    """Save a new layer version when the request edits any layer field, else reuse the current one."""
    latest = prompt_layers.get_latest_layer(db, project_id, scene.beat_id)
    if not (LAYER_FIELDS & body.model_fields_set):
        return latest

    director = _pick(body, "director_prompt", None)
    if director is None:
        director = _pick(body, "prompt", latest.director_prompt if latest else "")
    cinematographer = _pick(body, "cinematographer_prompt", latest.cinematographer_prompt if latest else "")

    if "anchor_beat_id" in body.model_fields_set:
        anchor_beat_id = body.anchor_beat_id
    else:
        anchor_beat_id = latest.anchor_beat_id if latest else None
    continuation_mode = _pick(
        body, "continuation_mode", latest.continuation_mode if latest else ContinuationMode.strict
    )

    options = schemas.PromptLayerSave(
        director_prompt=director,
        cinematographer_prompt=cinematographer,
        merged_prompt=prompt_layers.compose_merged_prompt(
            db, project_id, package, scene, director, cinematographer, continuation_mode, anchor_beat_id
        ),
        film_type=_pick(body, "film_type", latest.film_type if latest else None),
        generation_model=model_key,
        continuation_mode=continuation_mode,
        anchor_beat_id=anchor_beat_id,
        auto_regenerate_threshold=_pick(
            body,
            "auto_regenerate_threshold",
            latest.auto_regenerate_threshold if latest else settings.DEFAULT_CONTINUITY_THRESHOLD,
        ),
        source=LayerSource.manual,
    )
    return prompt_layers.save_layer(
        db, project_id, package.id, scene.beat_id, director, cinematographer, options
    )


@router.post(
    "/scenes/{beat_id}/video",
    response_model=schemas.SceneVideoJob,
    status_code=status.HTTP_202_ACCEPTED,
)
def request_scene_video(
    project_id: int,
    beat_id: str,
    body: schemas.SceneVideoRequest,
    db: Session = Depends(get_db),
    pipeline: QueuePipeline = Depends(get_pipeline),
    settings: Settings = Depends(get_settings),
):
    storyboard.get_project(db, project_id)
    package = storyboard.require_latest_package(db, project_id)
    scene = storyboard.require_scene(package, beat_id)

    if body.anchor_beat_id and storyboard.find_scene(package, body.anchor_beat_id) is None:
        raise PreconditionError("Anchor scene not found in storyboard")

    latest = prompt_layers.get_latest_layer(db, project_id, beat_id)
    model = resolve_video_model(
        body.model_key or (latest.generation_model if latest else None), settings.DEFAULT_VIDEO_MODEL
    )

    layer = _layer_for_request(db, project_id, package, scene, body, model.key, settings)
    job = job_store.create_scene_video_job(
        db,
        project_id=project_id,
        package_id=package.id,
        beat_id=beat_id,
        provider=model.provider,
        model_key=model.key,
        prompt=layer.merged_prompt if layer else "",
        source_image_url=scene.image_url,
        prompt_layer_id=layer.id if layer else None,
        continuity_threshold=(
            layer.auto_regenerate_threshold if layer else settings.DEFAULT_CONTINUITY_THRESHOLD
        ),
        duration_seconds=scene.duration_seconds or 5,
    )
    pipeline.enqueue(JobType.scene_video, job.id)
    return job


@router.get("/scenes/{beat_id}/video", response_model=schemas.SceneVideoJob)
def get_scene_video(project_id: int, beat_id: str, db: Session = Depends(get_db)):
    storyboard.get_project(db, project_id)
    job = job_store.get_latest_scene_video(db, project_id, beat_id)
    if not job:
        raise HTTPException(status_code=404, detail="No scene video for this beat")
    return job


@router.get("/scene-videos", response_model=List[schemas.SceneVideoJob])
def list_scene_videos(project_id: int, db: Session = Depends(get_db)):
    storyboard.get_project(db, project_id)
    return job_store.list_latest_scene_videos(db, project_id)
