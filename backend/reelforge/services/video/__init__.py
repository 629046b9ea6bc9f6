from .base import GenerationRequest, VideoProvider
from .models import VIDEO_MODELS, VideoModel, resolve_model_duration, resolve_video_model
from .registry import ProviderRegistry, build_provider_registry

__all__ = [
    "GenerationRequest",
    "VideoProvider",
    "VIDEO_MODELS",
    "VideoModel",
    "resolve_model_duration",
    "resolve_video_model",
    "ProviderRegistry",
    "build_provider_registry",
]
