from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from reelforge.models.scene_video_job import JobStatus
from reelforge.models.prompt_layer import ContinuationMode


class SceneVideoRequest(BaseModel):
    prompt: Optional[str] = None
    director_prompt: Optional[str] = None
    cinematographer_prompt: Optional[str] = None
    film_type: Optional[str] = None
    model_key: Optional[str] = None
    continuation_mode: Optional[ContinuationMode] = None
    anchor_beat_id: Optional[str] = None
    auto_regenerate_threshold: Optional[float] = Field(default=None, ge=0, le=1)


class SceneVideoJob(BaseModel):
    id: int
    project_id: int
    package_id: int
    beat_id: str
    prompt_layer_id: Optional[int] = None
    provider: str
    model_key: str
    prompt: str
    source_image_url: Optional[str] = None
    continuity_score: Optional[float] = None
    continuity_threshold: float
    recommend_regenerate: bool
    continuity_reason: Optional[str] = None
    status: JobStatus
    external_job_id: Optional[str] = None
    video_url: Optional[str] = None
    last_frame_url: Optional[str] = None
    error: Optional[str] = None
    duration_seconds: float
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class SceneVideoJobPatch(BaseModel):
    """Fields to write on a transition. Only fields explicitly set are applied."""

    prompt: Optional[str] = None
    source_image_url: Optional[str] = None
    prompt_layer_id: Optional[int] = None
    external_job_id: Optional[str] = None
    video_url: Optional[str] = None
    last_frame_url: Optional[str] = None
    continuity_score: Optional[float] = None
    continuity_threshold: Optional[float] = None
    recommend_regenerate: Optional[bool] = None
    continuity_reason: Optional[str] = None
    error: Optional[str] = None
    duration_seconds: Optional[float] = None
