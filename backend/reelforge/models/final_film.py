from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey, Enum, Index
from sqlalchemy.orm import relationship

from reelforge.db.base import Base, utcnow
from reelforge.models.scene_video_job import JobStatus


class ProjectFinalFilm(Base):
    __tablename__ = "project_final_films"
    __table_args__ = (Index("ix_project_final_films_claim", "status", "created_at", "id"),)

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)

    status = Column(Enum(JobStatus), nullable=False, default=JobStatus.queued)
    source_count = Column(Integer, nullable=False, default=0)
    video_url = Column(String(1024), nullable=True)
    error = Column(Text, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    project = relationship("Project", back_populates="final_films")
