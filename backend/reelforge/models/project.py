from sqlalchemy import Column, Integer, String, DateTime, Text
from sqlalchemy.orm import relationship

from reelforge.db.base import Base, utcnow


class Project(Base):
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    storyboard_packages = relationship(
        "StoryboardPackage", back_populates="project", cascade="all, delete-orphan"
    )
    scene_videos = relationship("SceneVideoJob", back_populates="project", cascade="all, delete-orphan")
    prompt_layers = relationship("ScenePromptLayer", back_populates="project", cascade="all, delete-orphan")
    prompt_traces = relationship(
        "SceneVideoPromptTrace", back_populates="project", cascade="all, delete-orphan"
    )
    final_films = relationship("ProjectFinalFilm", back_populates="project", cascade="all, delete-orphan")
