from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from reelforge import models, schemas
from reelforge.core.errors import PreconditionError


def get_project(db: Session, project_id: int) -> models.Project:
    project = db.query(models.Project).filter(models.Project.id == project_id).first()
    if not project:
        raise PreconditionError("Project not found", status_code=404)
    return project


def latest_package(db: Session, project_id: int) -> Optional[models.StoryboardPackage]:
    return (
        db.query(models.StoryboardPackage)
        .filter(models.StoryboardPackage.project_id == project_id)
        .order_by(models.StoryboardPackage.version.desc())
        .first()
    )


def require_latest_package(db: Session, project_id: int) -> models.StoryboardPackage:
    package = latest_package(db, project_id)
    if package is None:
        raise PreconditionError("Storyboard not found for project", status_code=404)
    return package


def find_scene(package: models.StoryboardPackage, beat_id: str) -> Optional[models.StoryboardScene]:
    for scene in package.scenes:
        if scene.beat_id == beat_id:
            return scene
    return None


def require_scene(package: models.StoryboardPackage, beat_id: str) -> models.StoryboardScene:
    scene = find_scene(package, beat_id)
    if scene is None:
        raise PreconditionError("Scene not found for beat", status_code=404)
    return scene


def publish_package(
    db: Session, project_id: int, scenes: List[schemas.StoryboardSceneCreate]
) -> models.StoryboardPackage:
    """Store a new storyboard version. Earlier versions stay untouched."""
    beat_ids = [s.beat_id for s in scenes]
    if not scenes:
        raise PreconditionError("Storyboard needs at least one scene")
    if len(set(beat_ids)) != len(beat_ids):
        raise PreconditionError("Storyboard beat ids must be unique")

    current = (
        db.query(func.max(models.StoryboardPackage.version))
        .filter(models.StoryboardPackage.project_id == project_id)
        .scalar()
    )
    package = models.StoryboardPackage(project_id=project_id, version=(current or 0) + 1)
    for scene in scenes:
        package.scenes.append(models.StoryboardScene(**scene.model_dump()))
    db.add(package)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise PreconditionError("Storyboard was published concurrently, retry", status_code=409)
    db.refresh(package)
    return package
