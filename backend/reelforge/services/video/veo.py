import base64
import logging
import time
from typing import Any, Dict, Optional

import requests
from google.oauth2 import service_account
import google.auth.transport.requests

from reelforge.core.errors import ProviderError
from reelforge.core.files import MediaStore
from reelforge.services.video.base import GenerationRequest, VideoProvider, read_image
from reelforge.services.video.models import VideoModel

logger = logging.getLogger(__name__)


class VeoVideoProvider(VideoProvider):
    """
    Video generation via Vertex AI Veo (predictLongRunning + fetchPredictOperation).
    """

    name = "veo"
    SCOPES = ["https://www.googleapis.com/auth/cloud-platform"]

    def __init__(
        self,
        media: MediaStore,
        project_id: Optional[str],
        location: str = "us-central1",
        credentials_path: str = "keys/veo.json",
        poll_interval_seconds: float = 5.0,
        timeout_seconds: float = 600.0,
    ):
        self.media = media
        self.project_id = project_id
        self.location = location
        self.credentials_path = credentials_path
        self.poll_interval_seconds = poll_interval_seconds
        self.timeout_seconds = timeout_seconds

    def _get_access_token(self) -> str:
        """Generate OAuth2 access token via service account."""
        credentials = service_account.Credentials.from_service_account_file(
            self.credentials_path, scopes=self.SCOPES
        )
        req = google.auth.transport.requests.Request()
        credentials.refresh(req)
        return credentials.token

    def _model_url(self, model: VideoModel, method: str) -> str:
        return (
            f"https://{self.location}-aiplatform.googleapis.com/v1/"
            f"projects/{self.project_id}/locations/{self.location}"
            f"/publishers/google/models/{model.model_id}:{method}"
        )

    def _build_payload(self, model: VideoModel, request: GenerationRequest) -> Dict[str, Any]:
        # Veo 2 models only support 720p, Veo 3 supports 1080p
        resolution = "720p" if model.model_id.startswith("veo-2") else "1080p"
        instance: Dict[str, Any] = {"prompt": request.prompt}
        if request.image_url:
            image_bytes, mime_type = read_image(self.media, request.image_url)
            instance["image"] = {
                "bytesBase64Encoded": base64.b64encode(image_bytes).decode(),
                "mimeType": mime_type,
            }
        return {
            "instances": [instance],
            "parameters": {
                "sampleCount": 1,
                "durationSeconds": request.duration_seconds,
                "resolution": resolution,
                "aspectRatio": "16:9",
            },
        }

    def _download_gcs(self, uri: str) -> bytes:
        from google.cloud import storage

        if not uri.startswith("gs://"):
            raise ProviderError(f"Invalid gcsUri: {uri}", provider=self.name, retryable=False)
        bucket, _, blob_path = uri[len("gs://"):].partition("/")
        client = storage.Client(project=self.project_id)
        return client.bucket(bucket).blob(blob_path).download_as_bytes()

    def _extract_video(self, poll_data: Dict[str, Any]) -> bytes:
        if poll_data.get("error"):
            raise ProviderError(
                f"Veo generation failed: {poll_data['error'].get('message', poll_data['error'])}",
                provider=self.name,
            )
        response = poll_data.get("response", {})
        # Newer responses carry "videos", older ones "predictions"
        candidates = response.get("videos") or response.get("predictions") or []
        if not candidates:
            reason = response.get("raiMediaFilteredReasons")
            raise ProviderError(
                f"Veo returned no video: {reason or poll_data}", provider=self.name, retryable=False
            )
        video = candidates[0]
        if "bytesBase64Encoded" in video:
            return base64.b64decode(video["bytesBase64Encoded"])
        if "gcsUri" in video:
            return self._download_gcs(video["gcsUri"])
        raise ProviderError(f"Unknown Veo response format: {video}", provider=self.name, retryable=False)

    def generate(self, model: VideoModel, request: GenerationRequest) -> str:
        if not self.project_id:
            raise ProviderError("GOOGLE_CLOUD_PROJECT_ID is not configured", provider=self.name, retryable=False)

        headers = {
            "Authorization": f"Bearer {self._get_access_token()}",
            "Content-Type": "application/json",
        }

        try:
            resp = requests.post(
                self._model_url(model, "predictLongRunning"),
                headers=headers,
                json=self._build_payload(model, request),
                timeout=60,
            )
        except requests.RequestException as e:
            raise ProviderError(f"Veo request failed: {e}", provider=self.name)
        if resp.status_code != 200:
            raise ProviderError(
                f"Veo LRO error: {resp.status_code} - {resp.text[:500]}",
                provider=self.name,
                retryable=resp.status_code == 429 or resp.status_code >= 500,
            )

        operation_name = resp.json().get("name")
        if not operation_name:
            raise ProviderError(f"No operation name returned: {resp.text[:500]}", provider=self.name)
        request.submitted(operation_name)
        logger.info("[video] veo operation started: %s", operation_name)

        deadline = time.monotonic() + self.timeout_seconds
        fetch_url = self._model_url(model, "fetchPredictOperation")
        while True:
            if time.monotonic() > deadline:
                raise ProviderError(
                    f"Veo generation timed out after {int(self.timeout_seconds)}s", provider=self.name
                )
            try:
                poll_resp = requests.post(
                    fetch_url, headers=headers, json={"operationName": operation_name}, timeout=60
                )
            except requests.RequestException as e:
                raise ProviderError(f"Failed to poll Veo operation: {e}", provider=self.name)
            if poll_resp.status_code != 200:
                raise ProviderError(
                    f"Failed to poll Veo operation: {poll_resp.status_code} - {poll_resp.text[:500]}",
                    provider=self.name,
                )
            poll_data = poll_resp.json()
            if poll_data.get("done"):
                break
            request.progress()
            time.sleep(self.poll_interval_seconds)

        video_bytes = self._extract_video(poll_data)
        return self.media.save_bytes(video_bytes, "clips", f"{request.output_name}.mp4")
