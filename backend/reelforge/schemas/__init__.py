from .project import Project, ProjectCreate
from .storyboard import StoryboardPackage, StoryboardPublish, StoryboardScene, StoryboardSceneCreate
from .scene_video import SceneVideoJob, SceneVideoJobPatch, SceneVideoRequest
from .final_film import ProjectFinalFilm, FinalFilmPatch
from .prompt_layer import PromptLayerSave, ScenePromptLayer, PromptTrace, PromptTraceDiff, TraceFieldChange
from .queue import Health, QueueStats

__all__ = [
    "Project",
    "ProjectCreate",
    "StoryboardPackage",
    "StoryboardPublish",
    "StoryboardScene",
    "StoryboardSceneCreate",
    "SceneVideoJob",
    "SceneVideoJobPatch",
    "SceneVideoRequest",
    "ProjectFinalFilm",
    "FinalFilmPatch",
    "PromptLayerSave",
    "ScenePromptLayer",
    "PromptTrace",
    "PromptTraceDiff",
    "TraceFieldChange",
    "Health",
    "QueueStats",
]
