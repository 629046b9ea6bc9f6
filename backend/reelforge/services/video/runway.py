import base64
import logging
import time
from typing import Any, Dict, Optional

import requests

from reelforge.core.errors import ProviderError
from reelforge.core.files import MediaStore
from reelforge.services.video.base import GenerationRequest, VideoProvider, read_image
from reelforge.services.video.models import VideoModel

logger = logging.getLogger(__name__)

RUNWAY_API = "https://api.runwayml.com/v1"
RUNWAY_VERSION = "2024-11-06"


class RunwayVideoProvider(VideoProvider):
    """Runway image_to_video tasks, polled until they succeed or fail."""

    name = "runway"

    def __init__(
        self,
        media: MediaStore,
        api_key: Optional[str],
        poll_interval_seconds: float = 5.0,
        timeout_seconds: float = 600.0,
    ):
        self.media = media
        self.api_key = api_key
        self.poll_interval_seconds = poll_interval_seconds
        self.timeout_seconds = timeout_seconds

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "X-Runway-Version": RUNWAY_VERSION,
            "Content-Type": "application/json",
        }

    def _prompt_image(self, image_url: str) -> str:
        # Runway fetches https URLs itself; anything local goes inline as a data URI
        if image_url.startswith("https://"):
            return image_url
        image_bytes, mime_type = read_image(self.media, image_url)
        return f"data:{mime_type};base64,{base64.b64encode(image_bytes).decode()}"

    def _build_body(self, model: VideoModel, request: GenerationRequest) -> Dict[str, Any]:
        if not request.image_url:
            raise ProviderError("Runway image_to_video needs a source image", provider=self.name, retryable=False)
        prompt = " ".join(request.prompt.split())
        return {
            "model": model.model_id,
            "promptImage": self._prompt_image(request.image_url),
            "promptText": prompt[: model.char_limit],
            "ratio": "1280:720",
            "duration": request.duration_seconds,
        }

    def generate(self, model: VideoModel, request: GenerationRequest) -> str:
        if not self.api_key:
            raise ProviderError("RUNWAY_API_KEY is not configured", provider=self.name, retryable=False)

        try:
            create = requests.post(
                f"{RUNWAY_API}/image_to_video",
                headers=self._headers(),
                json=self._build_body(model, request),
                timeout=60,
            )
        except requests.RequestException as e:
            raise ProviderError(f"Runway task creation failed: {e}", provider=self.name)
        if create.status_code >= 300:
            raise ProviderError(
                f"Runway task creation failed ({create.status_code}): {create.text[:500]}",
                provider=self.name,
                retryable=create.status_code == 429 or create.status_code >= 500,
            )

        task_id = create.json().get("id")
        if not task_id:
            raise ProviderError("Runway returned no task id", provider=self.name)
        request.submitted(task_id)
        logger.info("[video] runway task created: %s", task_id)

        deadline = time.monotonic() + self.timeout_seconds
        while time.monotonic() < deadline:
            time.sleep(self.poll_interval_seconds)
            try:
                poll = requests.get(f"{RUNWAY_API}/tasks/{task_id}", headers=self._headers(), timeout=60)
            except requests.RequestException as e:
                raise ProviderError(f"Runway poll failed: {e}", provider=self.name)
            if poll.status_code >= 300:
                raise ProviderError(f"Runway poll failed ({poll.status_code})", provider=self.name)

            task = poll.json()
            status = task.get("status")
            if status == "SUCCEEDED":
                output = task.get("output") or []
                if not output:
                    raise ProviderError("Runway task succeeded but returned no output URL", provider=self.name)
                return output[0]
            if status == "FAILED":
                raise ProviderError(
                    f"Runway generation failed: {task.get('failure') or 'unknown error'}",
                    provider=self.name,
                    retryable=False,
                )
            logger.debug("[video] runway task %s status: %s", task_id, status)
            request.progress()

        raise ProviderError(f"Runway generation timed out after {int(self.timeout_seconds)}s", provider=self.name)
