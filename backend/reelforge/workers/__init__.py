from typing import Optional

from sqlalchemy.orm import sessionmaker

from reelforge.core.config import Settings
from reelforge.core.files import MediaStore
from reelforge.models import JobType
from reelforge.queue import QueueBackend, QueuePipeline, build_queue_backend
from reelforge.services.continuity import ContinuityScorer, build_scorer
from reelforge.services.ffmpeg import FfmpegToolkit
from reelforge.services.film_compiler import FilmCompiler
from reelforge.services.video import ProviderRegistry, build_provider_registry
from reelforge.workers.scene_video import SceneVideoWorker


def build_pipeline(
    settings: Settings,
    session_factory: sessionmaker,
    backend: Optional[QueueBackend] = None,
    providers: Optional[ProviderRegistry] = None,
    scorer: Optional[ContinuityScorer] = None,
    ffmpeg: Optional[FfmpegToolkit] = None,
    media: Optional[MediaStore] = None,
) -> QueuePipeline:
    """Wire the drain handlers for every job type into one pipeline."""
    media = media or MediaStore(settings.MEDIA_ROOT)
    ffmpeg = ffmpeg or FfmpegToolkit(settings.FFMPEG_BINARY)
    scene_video = SceneVideoWorker(
        providers or build_provider_registry(settings, media),
        scorer or build_scorer(settings.CONTINUITY_SCORER),
        media,
        ffmpeg,
    )
    return QueuePipeline(
        session_factory,
        backend or build_queue_backend(settings),
        {
            JobType.scene_video: scene_video,
            JobType.final_film: FilmCompiler(media, ffmpeg),
        },
        stale_timeout_seconds=settings.STALE_JOB_TIMEOUT_SECONDS,
        sweep_interval_seconds=settings.STALE_SWEEP_INTERVAL_SECONDS,
    )


__all__ = ["build_pipeline", "SceneVideoWorker"]
