from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from reelforge.models.scene_video_job import JobStatus


class ProjectFinalFilm(BaseModel):
    id: int
    project_id: int
    status: JobStatus
    source_count: int
    video_url: Optional[str] = None
    error: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class FinalFilmPatch(BaseModel):
    source_count: Optional[int] = None
    video_url: Optional[str] = None
    error: Optional[str] = None
