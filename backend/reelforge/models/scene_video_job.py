import enum

from sqlalchemy import Column, Integer, String, DateTime, Text, Float, Boolean, ForeignKey, Enum, Index
from sqlalchemy.orm import relationship

from reelforge.db.base import Base, utcnow


class JobStatus(str, enum.Enum):
    queued = "queued"
    processing = "processing"
    completed = "completed"
    failed = "failed"


class JobType(str, enum.Enum):
    scene_video = "scene-video"
    final_film = "final-film"


class SceneVideoJob(Base):
    """One render attempt for one storyboard beat.

    Rows are never deleted individually; a newer row for the same
    (project_id, beat_id) supersedes the older ones.
    """

    __tablename__ = "scene_video_jobs"
    __table_args__ = (
        Index("ix_scene_video_jobs_claim", "status", "created_at", "id"),
        Index("ix_scene_video_jobs_beat", "project_id", "beat_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)

    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    package_id = Column(Integer, ForeignKey("storyboard_packages.id", ondelete="CASCADE"), nullable=False)
    beat_id = Column(String(128), nullable=False)
    prompt_layer_id = Column(Integer, ForeignKey("scene_prompt_layers.id", ondelete="SET NULL"), nullable=True)

    provider = Column(String(64), nullable=False)
    model_key = Column(String(64), nullable=False)
    prompt = Column(Text, nullable=False, default="")
    source_image_url = Column(String(1024), nullable=True)

    continuity_score = Column(Float, nullable=True)
    continuity_threshold = Column(Float, nullable=False, default=0.75)
    recommend_regenerate = Column(Boolean, nullable=False, default=False)
    continuity_reason = Column(Text, nullable=True)

    status = Column(Enum(JobStatus), nullable=False, default=JobStatus.queued)
    external_job_id = Column(String(255), nullable=True)
    video_url = Column(String(1024), nullable=True)
    last_frame_url = Column(String(1024), nullable=True)
    error = Column(Text, nullable=True)
    duration_seconds = Column(Float, nullable=False, default=5)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    project = relationship("Project", back_populates="scene_videos")
    prompt_layer = relationship("ScenePromptLayer")
