from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class StoryboardSceneBase(BaseModel):
    beat_id: str
    scene_number: int
    slugline: Optional[str] = None
    visual_direction: Optional[str] = None
    camera: Optional[str] = None
    mood: Optional[str] = None
    camera_moves: List[str] = Field(default_factory=list)
    image_url: Optional[str] = None
    duration_seconds: float = 5


class StoryboardSceneCreate(StoryboardSceneBase):
    pass


class StoryboardPublish(BaseModel):
    scenes: List[StoryboardSceneCreate]


class StoryboardScene(StoryboardSceneBase):
    id: int
    camera_moves: Optional[List[str]] = None

    class Config:
        from_attributes = True


class StoryboardPackage(BaseModel):
    id: int
    project_id: int
    version: int
    created_at: datetime
    scenes: List[StoryboardScene] = []

    class Config:
        from_attributes = True
