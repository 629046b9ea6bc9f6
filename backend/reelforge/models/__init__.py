from reelforge.db.base import Base
from .project import Project
from .storyboard import StoryboardPackage, StoryboardScene
from .scene_video_job import SceneVideoJob, JobStatus, JobType
from .final_film import ProjectFinalFilm
from .prompt_layer import ScenePromptLayer, SceneVideoPromptTrace, ContinuationMode, LayerSource

__all__ = [
    "Base",
    "Project",
    "StoryboardPackage",
    "StoryboardScene",
    "SceneVideoJob",
    "JobStatus",
    "JobType",
    "ProjectFinalFilm",
    "ScenePromptLayer",
    "SceneVideoPromptTrace",
    "ContinuationMode",
    "LayerSource",
]


def model_for(job_type: JobType):
    """Table backing each job type."""
    return {
        JobType.scene_video: SceneVideoJob,
        JobType.final_film: ProjectFinalFilm,
    }[JobType(job_type)]
