from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from reelforge.models.prompt_layer import ContinuationMode, LayerSource


class PromptLayerSave(BaseModel):
    director_prompt: str = ""
    cinematographer_prompt: str = ""
    merged_prompt: Optional[str] = None
    film_type: Optional[str] = None
    generation_model: Optional[str] = None
    continuation_mode: ContinuationMode = ContinuationMode.strict
    anchor_beat_id: Optional[str] = None
    auto_regenerate_threshold: Optional[float] = None
    source: LayerSource = LayerSource.manual


class ScenePromptLayer(BaseModel):
    id: int
    project_id: int
    package_id: int
    beat_id: str
    director_prompt: str
    cinematographer_prompt: str
    merged_prompt: str
    film_type: Optional[str] = None
    generation_model: Optional[str] = None
    continuation_mode: ContinuationMode
    anchor_beat_id: Optional[str] = None
    auto_regenerate_threshold: float
    source: LayerSource
    version: int
    created_at: datetime

    class Config:
        from_attributes = True


class PromptTrace(BaseModel):
    trace_id: str
    project_id: int
    package_id: int
    beat_id: str
    job_id: Optional[int] = None
    payload: Dict[str, Any]
    created_at: datetime

    class Config:
        from_attributes = True


class TraceFieldChange(BaseModel):
    field: str
    previous: Any = None
    current: Any = None


class PromptTraceDiff(BaseModel):
    current_trace_id: Optional[str] = None
    previous_trace_id: Optional[str] = None
    changes: List[TraceFieldChange] = Field(default_factory=list)
