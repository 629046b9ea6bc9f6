from . import final_films, health, projects, prompt_layers, scene_videos

__all__ = ["final_films", "health", "projects", "prompt_layers", "scene_videos"]
