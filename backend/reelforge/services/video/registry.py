import logging
from typing import Dict, Optional

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from reelforge.core.config import Settings
from reelforge.core.errors import ProviderError
from reelforge.core.files import MediaStore
from reelforge.services.video.base import GenerationRequest, VideoProvider
from reelforge.services.video.models import VideoModel, resolve_video_model
from reelforge.services.video.runway import RunwayVideoProvider
from reelforge.services.video.veo import VeoVideoProvider

logger = logging.getLogger(__name__)


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, ProviderError) and exc.retryable


class ProviderRegistry:
    """Dispatches generation calls to the provider that serves each model."""

    def __init__(
        self,
        providers: Dict[str, VideoProvider],
        max_attempts: int = 3,
        backoff_seconds: float = 1.0,
        max_backoff_seconds: float = 60.0,
    ):
        self.providers = providers
        self.max_attempts = max(1, max_attempts)
        self.backoff_seconds = backoff_seconds
        self.max_backoff_seconds = max_backoff_seconds

    def model(self, key: Optional[str]) -> VideoModel:
        return resolve_video_model(key)

    def provider_for(self, model: VideoModel) -> VideoProvider:
        provider = self.providers.get(model.provider)
        if provider is None:
            raise ProviderError(f"Unknown video provider: {model.provider}", retryable=False)
        return provider

    def generate(self, model: VideoModel, request: GenerationRequest) -> str:
        """Run one generation with exponential backoff between retryable failures.

        The last ProviderError is re-raised unchanged once attempts run out.
        """
        provider = self.provider_for(model)
        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff_seconds, max=self.max_backoff_seconds),
            before=lambda _state: request.progress(),
            retry=retry_if_exception(_is_retryable),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        logger.info("[video] %s generation started (model: %s -> %s)", provider.name, model.key, model.model_id)
        url = retrying(provider.generate, model, request)
        if not url:
            raise ProviderError(f"{model.label} generation returned no video URL", provider=provider.name)
        return url


def build_provider_registry(settings: Settings, media: MediaStore) -> ProviderRegistry:
    providers: Dict[str, VideoProvider] = {
        "veo": VeoVideoProvider(
            media,
            project_id=settings.GOOGLE_CLOUD_PROJECT_ID,
            location=settings.GOOGLE_CLOUD_LOCATION,
            credentials_path=settings.VEO_CREDENTIALS_PATH,
        ),
        "runway": RunwayVideoProvider(media, api_key=settings.RUNWAY_API_KEY),
    }
    return ProviderRegistry(
        providers,
        max_attempts=settings.PROVIDER_MAX_ATTEMPTS,
        backoff_seconds=settings.PROVIDER_BACKOFF_SECONDS,
    )
