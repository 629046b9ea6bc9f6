from sqlalchemy import Column, Integer, String, DateTime, Text, Float, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.orm import relationship

from reelforge.db.base import Base, utcnow


class StoryboardPackage(Base):
    """One published version of a project's storyboard."""

    __tablename__ = "storyboard_packages"
    __table_args__ = (UniqueConstraint("project_id", "version", name="uq_storyboard_version"),)

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=utcnow)

    project = relationship("Project", back_populates="storyboard_packages")
    scenes = relationship(
        "StoryboardScene",
        back_populates="package",
        cascade="all, delete-orphan",
        order_by="StoryboardScene.scene_number",
    )


class StoryboardScene(Base):
    __tablename__ = "storyboard_scenes"
    __table_args__ = (UniqueConstraint("package_id", "beat_id", name="uq_storyboard_scene_beat"),)

    id = Column(Integer, primary_key=True, index=True)
    package_id = Column(Integer, ForeignKey("storyboard_packages.id", ondelete="CASCADE"), nullable=False)
    beat_id = Column(String(128), nullable=False)
    scene_number = Column(Integer, nullable=False)

    slugline = Column(String(512), nullable=True)
    visual_direction = Column(Text, nullable=True)
    camera = Column(Text, nullable=True)
    mood = Column(String(255), nullable=True)
    # e.g. ["dolly-in", "pan-left"]
    camera_moves = Column(JSON, nullable=True)
    image_url = Column(String(1024), nullable=True)
    duration_seconds = Column(Float, default=5)

    package = relationship("StoryboardPackage", back_populates="scenes")
