import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from typing import List

import requests
from sqlalchemy.orm import Session

from reelforge import models, schemas
from reelforge.core.errors import CompilationError, PreconditionError
from reelforge.core.files import MediaStore
from reelforge.models import JobStatus, JobType
from reelforge.services import job_store, storyboard
from reelforge.services.ffmpeg import FfmpegToolkit, write_concat_list

logger = logging.getLogger(__name__)


@dataclass
class ClipSource:
    beat_id: str
    scene_number: int
    job_id: int
    video_url: str


class FilmCompiler:
    """Concatenates the latest completed clip of every storyboard scene, in scene order."""

    def __init__(self, media: MediaStore, ffmpeg: FfmpegToolkit):
        self.media = media
        self.ffmpeg = ffmpeg

    def collect_clips(self, db: Session, project_id: int) -> List[ClipSource]:
        package = storyboard.latest_package(db, project_id)
        if package is None:
            return []
        completed = job_store.latest_completed_by_beat(db, project_id)
        clips = []
        for scene in sorted(package.scenes, key=lambda s: s.scene_number):
            job = completed.get(scene.beat_id)
            # Scenes without a finished clip are left out of the film
            if job is None:
                continue
            clips.append(ClipSource(scene.beat_id, scene.scene_number, job.id, job.video_url))
        return clips

    def request_compile(self, db: Session, project_id: int) -> models.ProjectFinalFilm:
        storyboard.get_project(db, project_id)
        storyboard.require_latest_package(db, project_id)
        if not self.collect_clips(db, project_id):
            raise PreconditionError("No completed scene videos available to compile")
        return job_store.create_final_film(db, project_id)

    def output_path(self, film: models.ProjectFinalFilm) -> str:
        return self.media.path_for("films", str(film.project_id), f"final-film-{film.id}.mp4")

    def _build(self, clips: List[ClipSource], output_path: str):
        work_dir = tempfile.mkdtemp(prefix=".tmp-final-", dir=os.path.dirname(output_path))
        try:
            normalized = []
            for index, clip in enumerate(clips):
                name = f"clip-{index + 1:03d}"
                source = os.path.join(work_dir, f"{name}-source.mp4")
                try:
                    self.media.stage(clip.video_url, source)
                except (OSError, requests.RequestException) as e:
                    raise CompilationError(f"failed to stage clip {index + 1} ({clip.beat_id}): {e}")
                normalized.append(
                    self.ffmpeg.normalize_clip(source, os.path.join(work_dir, f"{name}.mp4"), index)
                )
            list_path = write_concat_list(normalized, os.path.join(work_dir, "concat.txt"))
            # work_dir shares the output directory, so the replace is a rename
            staged = self.ffmpeg.concat(list_path, os.path.join(work_dir, "film.mp4"))
            os.replace(staged, output_path)
        finally:
            shutil.rmtree(work_dir, ignore_errors=True)

    def compile(self, db: Session, film: models.ProjectFinalFilm):
        """Drain handler for a claimed film. The outcome is written to the film row."""
        clips = self.collect_clips(db, film.project_id)
        try:
            if not clips:
                raise CompilationError("no completed clips available to build final film")
            output_path = self.output_path(film)
            logger.info("[film] compiling film %s from %d clip(s)", film.id, len(clips))
            self._build(clips, output_path)
        except CompilationError as e:
            logger.error("[film] film %s failed: %s", film.id, e)
            job_store.transition(
                db, JobType.final_film, film.id, JobStatus.processing, JobStatus.failed,
                schemas.FinalFilmPatch(error=str(e), source_count=len(clips)),
            )
            return
        except Exception as e:
            logger.exception("[film] film %s crashed", film.id)
            job_store.transition(
                db, JobType.final_film, film.id, JobStatus.processing, JobStatus.failed,
                schemas.FinalFilmPatch(error=f"final film compile failed: {e}"),
            )
            return

        job_store.transition(
            db, JobType.final_film, film.id, JobStatus.processing, JobStatus.completed,
            schemas.FinalFilmPatch(
                video_url=self.media.url_for(output_path), source_count=len(clips), error=None
            ),
        )
        logger.info("[film] film %s completed", film.id)

    __call__ = compile
