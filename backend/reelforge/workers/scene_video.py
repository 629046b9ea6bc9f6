import logging
import os
from typing import Optional

from sqlalchemy.orm import Session

from reelforge import models, schemas
from reelforge.core.errors import CompilationError, PipelineError, ProviderError
from reelforge.core.files import MediaStore
from reelforge.models import ContinuationMode, JobStatus, JobType
from reelforge.queue.ids import sanitize_queue_token
from reelforge.services import job_store, prompt_layers, storyboard
from reelforge.services.continuity import ContinuityInput, ContinuityScorer, HeuristicContinuityScorer
from reelforge.services.ffmpeg import FfmpegToolkit
from reelforge.services.prompt_composer import (
    LayerInputs,
    compose_prompt,
    resolve_anchor,
    trace_payload,
)
from reelforge.services.video import GenerationRequest, ProviderRegistry, resolve_model_duration

logger = logging.getLogger(__name__)


class SceneVideoWorker:
    """
    Drain handler for claimed scene video jobs: resolve the prompt and anchor,
    call the provider, score continuity and record the outcome on the job.
    """

    def __init__(
        self,
        providers: ProviderRegistry,
        scorer: ContinuityScorer,
        media: MediaStore,
        ffmpeg: FfmpegToolkit,
    ):
        self.providers = providers
        self.scorer = scorer
        self.media = media
        self.ffmpeg = ffmpeg

    def __call__(self, db: Session, job: models.SceneVideoJob):
        self.run(db, job)

    def _fail(self, db: Session, job_id: int, message: str):
        job_store.transition(
            db, JobType.scene_video, job_id, JobStatus.processing, JobStatus.failed,
            schemas.SceneVideoJobPatch(error=message),
        )

    def _layer_for(self, db: Session, job: models.SceneVideoJob) -> Optional[models.ScenePromptLayer]:
        if job.prompt_layer_id:
            layer = db.get(models.ScenePromptLayer, job.prompt_layer_id)
            if layer is not None:
                return layer
        return prompt_layers.get_latest_layer(db, job.project_id, job.beat_id)

    def _clip_input(self, video_url: str) -> str:
        # ffmpeg reads http(s) inputs directly
        return self.media.local_path(video_url) or video_url

    def _extract(self, job: models.SceneVideoJob, video_url: str, last: bool) -> Optional[str]:
        name = f"p{job.project_id}-{sanitize_queue_token(job.beat_id)}-job{job.id}-{'last' if last else 'first'}.jpg"
        path = self.media.path_for("frames", name)
        try:
            self.ffmpeg.extract_frame(self._clip_input(video_url), path, last=last)
        except CompilationError as e:
            # Non-critical: the clip is still usable without the still
            logger.warning("[worker] frame extraction failed for job %s: %s", job.id, e)
            return None
        return path

    def run(self, db: Session, job: models.SceneVideoJob):
        job_id = job.id
        try:
            package = db.get(models.StoryboardPackage, job.package_id)
            scene = storyboard.find_scene(package, job.beat_id) if package else None
            if scene is None:
                self._fail(db, job_id, "Scene not found for beat")
                return

            layer = self._layer_for(db, job)
            layers = LayerInputs(
                director_prompt=layer.director_prompt if layer else "",
                cinematographer_prompt=layer.cinematographer_prompt if layer else "",
                film_type=layer.film_type if layer else None,
                continuation_mode=layer.continuation_mode if layer else ContinuationMode.strict,
            )
            anchor = resolve_anchor(
                layers.continuation_mode,
                package.scenes,
                job.beat_id,
                layer.anchor_beat_id if layer else None,
                job_store.completed_frames(db, job.project_id),
            )
            model = self.providers.model(job.model_key)
            duration = resolve_model_duration(model, job.duration_seconds)
            composed = compose_prompt(scene, layers, anchor, model, duration)

            prompt_layers.record_trace(
                db,
                job.project_id,
                job.package_id,
                job.beat_id,
                trace_payload(composed, anchor, layers, model, layer.version if layer else None),
                job_id=job_id,
            )
            job_store.update_in_flight(
                db, JobType.scene_video, job_id,
                schemas.SceneVideoJobPatch(
                    prompt=composed.prompt,
                    source_image_url=anchor.source_image_url,
                    duration_seconds=duration,
                ),
            )

            request = GenerationRequest(
                prompt=composed.prompt,
                image_url=anchor.source_image_url,
                duration_seconds=duration,
                output_name=f"p{job.project_id}-{sanitize_queue_token(job.beat_id)}-job{job_id}",
                on_submitted=lambda external_id: job_store.update_in_flight(
                    db, JobType.scene_video, job_id, schemas.SceneVideoJobPatch(external_job_id=external_id)
                ),
                on_progress=lambda: job_store.update_in_flight(db, JobType.scene_video, job_id),
            )
            video_url = self.providers.generate(model, request)
        except ProviderError as e:
            logger.error("[worker] scene video job %s failed: %s", job_id, e.message)
            self._fail(db, job_id, e.message)
            return
        except PipelineError as e:
            logger.error("[worker] scene video job %s rejected: %s", job_id, e)
            self._fail(db, job_id, str(e))
            return
        except Exception as e:
            logger.exception("[worker] scene video job %s crashed", job_id)
            self._fail(db, job_id, f"scene video generation failed: {e}")
            return

        last_frame = self._extract(job, video_url, last=True)
        anchor_path = self.media.local_path(anchor.source_image_url)
        clip_frame = None
        if self.scorer.needs_frames and anchor.has_anchor and anchor_path and os.path.exists(anchor_path):
            clip_frame = self._extract(job, video_url, last=False)

        continuity = ContinuityInput(
            continuation_mode=layers.continuation_mode,
            has_anchor=anchor.has_anchor,
            director_layer=composed.director_layer,
            cinematographer_layer=composed.cinematographer_layer,
            anchor_frame_path=anchor_path if clip_frame else None,
            clip_frame_path=clip_frame,
        )
        try:
            result = self.scorer.score(continuity, job.continuity_threshold)
        except Exception:
            logger.exception("[worker] %s scorer failed for job %s, using heuristic", self.scorer.name, job_id)
            result = HeuristicContinuityScorer().score(continuity, job.continuity_threshold)

        job_store.transition(
            db, JobType.scene_video, job_id, JobStatus.processing, JobStatus.completed,
            schemas.SceneVideoJobPatch(
                video_url=video_url,
                last_frame_url=self.media.url_for(last_frame) if last_frame else None,
                continuity_score=result.score,
                recommend_regenerate=result.recommend_regenerate,
                continuity_reason=result.reason,
                error=None,
            ),
        )
        logger.info("[worker] scene video job %s completed (continuity %.2f)", job_id, result.score)
