from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from reelforge import schemas
from reelforge.api.dependencies import get_db, get_settings
from reelforge.core.config import Settings
from reelforge.core.errors import PreconditionError
from reelforge.services import prompt_layers, storyboard
from reelforge.services.video import resolve_video_model

router = APIRouter(prefix="/projects/{project_id}/scenes/{beat_id}", tags=["prompt-layers"])


@router.put("/prompt-layer", response_model=schemas.ScenePromptLayer)
def save_prompt_layer(
    project_id: int,
    beat_id: str,
    body: schemas.PromptLayerSave,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    storyboard.get_project(db, project_id)
    package = storyboard.require_latest_package(db, project_id)
    scene = storyboard.require_scene(package, beat_id)

    if body.anchor_beat_id and storyboard.find_scene(package, body.anchor_beat_id) is None:
        raise PreconditionError("Anchor scene not found in storyboard")
    if body.generation_model:
        body.generation_model = resolve_video_model(body.generation_model).key
    if body.merged_prompt is None:
        body.merged_prompt = prompt_layers.compose_merged_prompt(
            db,
            project_id,
            package,
            scene,
            body.director_prompt,
            body.cinematographer_prompt,
            body.continuation_mode,
            body.anchor_beat_id,
        )
    if body.auto_regenerate_threshold is None:
        body.auto_regenerate_threshold = settings.DEFAULT_CONTINUITY_THRESHOLD

    return prompt_layers.save_layer(
        db,
        project_id,
        package.id,
        beat_id,
        body.director_prompt,
        body.cinematographer_prompt,
        body,
    )


@router.get("/prompt-layer", response_model=schemas.ScenePromptLayer)
def get_prompt_layer(project_id: int, beat_id: str, db: Session = Depends(get_db)):
    layer = prompt_layers.get_latest_layer(db, project_id, beat_id)
    if not layer:
        raise HTTPException(status_code=404, detail="No prompt layer for this beat")
    return layer


@router.get("/prompt-layer/history", response_model=List[schemas.ScenePromptLayer])
def get_prompt_layer_history(project_id: int, beat_id: str, db: Session = Depends(get_db)):
    storyboard.get_project(db, project_id)
    return prompt_layers.list_layer_history(db, project_id, beat_id)


@router.post(
    "/prompt-layer/restore/{version}",
    response_model=schemas.ScenePromptLayer,
    status_code=status.HTTP_201_CREATED,
)
def restore_prompt_layer(project_id: int, beat_id: str, version: int, db: Session = Depends(get_db)):
    storyboard.get_project(db, project_id)
    package = storyboard.require_latest_package(db, project_id)
    storyboard.require_scene(package, beat_id)
    return prompt_layers.restore_layer(db, project_id, beat_id, version, package_id=package.id)


@router.get("/prompt-trace", response_model=List[schemas.PromptTrace])
def get_prompt_traces(
    project_id: int,
    beat_id: str,
    limit: int = Query(20, ge=1, le=200),
    db: Session = Depends(get_db),
):
    storyboard.get_project(db, project_id)
    return prompt_layers.list_traces(db, project_id, beat_id, limit)


@router.get("/prompt-trace/diff", response_model=schemas.PromptTraceDiff)
def get_prompt_trace_diff(project_id: int, beat_id: str, db: Session = Depends(get_db)):
    storyboard.get_project(db, project_id)
    return prompt_layers.diff_latest_traces(db, project_id, beat_id)
