import mimetypes
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

import requests

from reelforge.core.errors import ProviderError
from reelforge.core.files import MediaStore
from reelforge.services.video.models import VideoModel


@dataclass
class GenerationRequest:
    prompt: str
    image_url: Optional[str] = None
    duration_seconds: int = 5
    # Used to name stored outputs, e.g. "p3-b2-job17"
    output_name: str = "clip"
    # Called with the provider's own task id once the request is accepted
    on_submitted: Optional[Callable[[str], None]] = None
    # Called after each poll while the provider is still working, and before every attempt
    on_progress: Optional[Callable[[], None]] = None

    def submitted(self, external_id: str):
        if self.on_submitted and external_id:
            self.on_submitted(external_id)

    def progress(self):
        if self.on_progress:
            self.on_progress()


class VideoProvider(ABC):
    name = ""

    @abstractmethod
    def generate(self, model: VideoModel, request: GenerationRequest) -> str:
        """
        Returns: URL of the generated clip (remote, or /media/... when stored locally).
        Raises ProviderError on any provider-side failure.
        """
        pass


def read_image(media: MediaStore, url: str, timeout: float = 60.0) -> Tuple[bytes, str]:
    """Load an anchor image from local media or over HTTP. Returns (bytes, mime type)."""
    mime_type = mimetypes.guess_type(url.split("?", 1)[0])[0] or "image/jpeg"
    local = media.local_path(url)
    if local is not None:
        try:
            with open(local, "rb") as f:
                return f.read(), mime_type
        except OSError as e:
            raise ProviderError(f"anchor image unreadable: {e}", retryable=False)

    try:
        resp = requests.get(url, timeout=timeout)
    except requests.RequestException as e:
        raise ProviderError(f"anchor image download failed: {e}")
    if resp.status_code != 200:
        raise ProviderError(f"anchor image download failed: {resp.status_code}")
    return resp.content, resp.headers.get("Content-Type", mime_type).split(";")[0]
