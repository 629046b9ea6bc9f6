from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session

from reelforge import models, schemas
from reelforge.api.dependencies import get_db
from reelforge.services import storyboard

router = APIRouter(prefix="/projects", tags=["projects"])


@router.post("", response_model=schemas.Project, status_code=status.HTTP_201_CREATED)
def create_project(project_in: schemas.ProjectCreate, db: Session = Depends(get_db)):
    project = models.Project(name=project_in.name, description=project_in.description)
    db.add(project)
    db.commit()
    db.refresh(project)
    return project


@router.get("", response_model=List[schemas.Project])
def list_projects(db: Session = Depends(get_db)):
    return db.query(models.Project).order_by(models.Project.created_at.desc()).all()


@router.get("/{project_id}", response_model=schemas.Project)
def get_project(project_id: int, db: Session = Depends(get_db)):
    return storyboard.get_project(db, project_id)


@router.delete("/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_project(project_id: int, db: Session = Depends(get_db)):
    # Cascades to storyboards, jobs, prompt layers, traces and films
    project = storyboard.get_project(db, project_id)
    db.delete(project)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{project_id}/storyboard",
    response_model=schemas.StoryboardPackage,
    status_code=status.HTTP_201_CREATED,
)
def publish_storyboard(
    project_id: int, body: schemas.StoryboardPublish, db: Session = Depends(get_db)
):
    storyboard.get_project(db, project_id)
    return storyboard.publish_package(db, project_id, body.scenes)


@router.get("/{project_id}/storyboard", response_model=schemas.StoryboardPackage)
def get_storyboard(project_id: int, db: Session = Depends(get_db)):
    storyboard.get_project(db, project_id)
    package = storyboard.latest_package(db, project_id)
    if not package:
        raise HTTPException(status_code=404, detail="Storyboard not found for project")
    return package
