import logging
import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from reelforge import models, schemas
from reelforge.core.errors import PreconditionError, PromptLayerConflictError
from reelforge.models import ContinuationMode, LayerSource
from reelforge.services import job_store
from reelforge.services.continuity.scorer import clamp_threshold
from reelforge.services.prompt_composer import (
    camera_move_tokens,
    continuity_guidance,
    merge_layers,
    resolve_anchor,
)

logger = logging.getLogger(__name__)

MAX_VERSION_ATTEMPTS = 5


def compose_merged_prompt(
    db: Session,
    project_id: int,
    package: models.StoryboardPackage,
    scene: models.StoryboardScene,
    director_prompt: str,
    cinematographer_prompt: str,
    continuation_mode: ContinuationMode,
    anchor_beat_id: Optional[str] = None,
) -> str:
    """Both layers, the scene's camera moves and the continuity guidance for the anchor in effect now."""
    anchor = resolve_anchor(
        continuation_mode,
        package.scenes,
        scene.beat_id,
        anchor_beat_id,
        job_store.completed_frames(db, project_id),
    )
    return merge_layers(
        director_prompt,
        cinematographer_prompt,
        camera_move_tokens(scene),
        continuity_guidance(continuation_mode, anchor),
    )


def _next_version(db: Session, project_id: int, beat_id: str) -> int:
    current = (
        db.query(func.max(models.ScenePromptLayer.version))
        .filter(
            models.ScenePromptLayer.project_id == project_id,
            models.ScenePromptLayer.beat_id == beat_id,
        )
        .scalar()
    )
    return (current or 0) + 1


def save_layer(
    db: Session,
    project_id: int,
    package_id: int,
    beat_id: str,
    director_prompt: str,
    cinematographer_prompt: str,
    options: Optional[schemas.PromptLayerSave] = None,
) -> models.ScenePromptLayer:
    """Insert the next version of a beat's prompt layer.

    Concurrent saves can compute the same max+1; the unique constraint on
    (project_id, beat_id, version) rejects the loser, which recomputes and
    tries again.
    """
    options = options or schemas.PromptLayerSave()
    merged = options.merged_prompt
    if merged is None:
        merged = " | ".join(p.strip() for p in (director_prompt, cinematographer_prompt) if p and p.strip())

    for attempt in range(1, MAX_VERSION_ATTEMPTS + 1):
        layer = models.ScenePromptLayer(
            project_id=project_id,
            package_id=package_id,
            beat_id=beat_id,
            director_prompt=(director_prompt or "").strip(),
            cinematographer_prompt=(cinematographer_prompt or "").strip(),
            merged_prompt=merged,
            film_type=options.film_type,
            generation_model=options.generation_model,
            continuation_mode=ContinuationMode(options.continuation_mode),
            anchor_beat_id=(options.anchor_beat_id or "").strip() or None,
            auto_regenerate_threshold=clamp_threshold(options.auto_regenerate_threshold),
            source=LayerSource(options.source),
            version=_next_version(db, project_id, beat_id),
        )
        db.add(layer)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.info("[layers] version collision for %s/%s, attempt %d", project_id, beat_id, attempt)
            continue
        db.refresh(layer)
        return layer

    raise PromptLayerConflictError(
        f"could not assign a prompt layer version for beat {beat_id} after {MAX_VERSION_ATTEMPTS} attempts"
    )


def get_latest_layer(db: Session, project_id: int, beat_id: str) -> Optional[models.ScenePromptLayer]:
    return (
        db.query(models.ScenePromptLayer)
        .filter(
            models.ScenePromptLayer.project_id == project_id,
            models.ScenePromptLayer.beat_id == beat_id,
        )
        .order_by(models.ScenePromptLayer.version.desc())
        .first()
    )


def list_layer_history(db: Session, project_id: int, beat_id: str) -> List[models.ScenePromptLayer]:
    return (
        db.query(models.ScenePromptLayer)
        .filter(
            models.ScenePromptLayer.project_id == project_id,
            models.ScenePromptLayer.beat_id == beat_id,
        )
        .order_by(models.ScenePromptLayer.version.desc())
        .all()
    )


def restore_layer(
    db: Session, project_id: int, beat_id: str, version: int, package_id: Optional[int] = None
) -> models.ScenePromptLayer:
    """Copy an earlier version forward as the newest one."""
    old = (
        db.query(models.ScenePromptLayer)
        .filter(
            models.ScenePromptLayer.project_id == project_id,
            models.ScenePromptLayer.beat_id == beat_id,
            models.ScenePromptLayer.version == version,
        )
        .first()
    )
    if old is None:
        raise PreconditionError(f"Prompt layer version {version} not found", status_code=404)

    options = schemas.PromptLayerSave(
        director_prompt=old.director_prompt,
        cinematographer_prompt=old.cinematographer_prompt,
        merged_prompt=old.merged_prompt,
        film_type=old.film_type,
        generation_model=old.generation_model,
        continuation_mode=old.continuation_mode,
        anchor_beat_id=old.anchor_beat_id,
        auto_regenerate_threshold=old.auto_regenerate_threshold,
        source=LayerSource.restored,
    )
    return save_layer(
        db,
        project_id,
        package_id or old.package_id,
        beat_id,
        old.director_prompt,
        old.cinematographer_prompt,
        options,
    )


def record_trace(
    db: Session,
    project_id: int,
    package_id: int,
    beat_id: str,
    payload: Dict[str, Any],
    job_id: Optional[int] = None,
) -> models.SceneVideoPromptTrace:
    trace = models.SceneVideoPromptTrace(
        trace_id=uuid.uuid4().hex,
        project_id=project_id,
        package_id=package_id,
        beat_id=beat_id,
        job_id=job_id,
        payload=payload,
    )
    db.add(trace)
    db.commit()
    db.refresh(trace)
    return trace


def list_traces(db: Session, project_id: int, beat_id: str, limit: int = 20) -> List[models.SceneVideoPromptTrace]:
    return (
        db.query(models.SceneVideoPromptTrace)
        .filter(
            models.SceneVideoPromptTrace.project_id == project_id,
            models.SceneVideoPromptTrace.beat_id == beat_id,
        )
        .order_by(models.SceneVideoPromptTrace.created_at.desc(), models.SceneVideoPromptTrace.id.desc())
        .limit(max(1, limit))
        .all()
    )


def _flatten(payload: Any, prefix: str = "") -> Dict[str, Any]:
    if not isinstance(payload, dict):
        return {prefix: payload}
    flat: Dict[str, Any] = {}
    for key, value in payload.items():
        path = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, dict) and value:
            flat.update(_flatten(value, path))
        else:
            flat[path] = value
    return flat


def diff_trace_payloads(previous: Dict[str, Any], current: Dict[str, Any]) -> List[schemas.TraceFieldChange]:
    before = _flatten(previous or {})
    after = _flatten(current or {})
    changes = []
    for field in sorted(set(before) | set(after)):
        if before.get(field) != after.get(field):
            changes.append(
                schemas.TraceFieldChange(field=field, previous=before.get(field), current=after.get(field))
            )
    return changes


def diff_latest_traces(db: Session, project_id: int, beat_id: str) -> schemas.PromptTraceDiff:
    """What changed between the two most recent generation attempts of a beat."""
    traces = list_traces(db, project_id, beat_id, limit=2)
    if not traces:
        return schemas.PromptTraceDiff()
    current = traces[0]
    if len(traces) == 1:
        return schemas.PromptTraceDiff(current_trace_id=current.trace_id)
    previous = traces[1]
    return schemas.PromptTraceDiff(
        current_trace_id=current.trace_id,
        previous_trace_id=previous.trace_id,
        changes=diff_trace_payloads(previous.payload, current.payload),
    )
