from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from reelforge.core.errors import PreconditionError


@dataclass(frozen=True)
class VideoModel:
    key: str
    label: str
    provider: str
    model_id: str
    # Longest prompt the provider accepts
    char_limit: int
    durations: Tuple[int, ...]
    default_duration: int


VIDEO_MODELS: Dict[str, VideoModel] = {
    "veo2": VideoModel(
        key="veo2",
        label="Veo 2",
        provider="veo",
        model_id="veo-2.0-generate-exp",
        char_limit=1024,
        durations=(5, 6, 7, 8),
        default_duration=6,
    ),
    "veo3": VideoModel(
        key="veo3",
        label="Veo 3.1 Fast",
        provider="veo",
        model_id="veo-3.1-fast-generate-001",
        char_limit=1024,
        durations=(4, 6, 8),
        default_duration=6,
    ),
    "gen4_turbo": VideoModel(
        key="gen4_turbo",
        label="Runway Gen-4 Turbo",
        provider="runway",
        model_id="gen4_turbo",
        char_limit=1000,
        durations=(5, 10),
        default_duration=5,
    ),
}

DEFAULT_MODEL_KEY = "veo2"


def resolve_video_model(key: Optional[str] = None, default: str = DEFAULT_MODEL_KEY) -> VideoModel:
    normalized = (key or default).strip().lower()
    model = VIDEO_MODELS.get(normalized)
    if model is None:
        raise PreconditionError(f"Unknown video model '{key}'")
    return model


def resolve_model_duration(model: VideoModel, requested: Optional[float]) -> int:
    """Snap a requested clip length to the nearest length the model supports."""
    if not requested or requested <= 0:
        return model.default_duration
    return min(model.durations, key=lambda d: (abs(d - requested), d))
