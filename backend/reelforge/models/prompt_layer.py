import enum

from sqlalchemy import Column, Integer, String, DateTime, Text, Float, ForeignKey, JSON, Enum, UniqueConstraint
from sqlalchemy.orm import relationship

from reelforge.db.base import Base, utcnow


class ContinuationMode(str, enum.Enum):
    off = "off"
    strict = "strict"
    balanced = "balanced"
    loose = "loose"


class LayerSource(str, enum.Enum):
    manual = "manual"
    restored = "restored"
    ai_seed = "ai-seed"


class ScenePromptLayer(Base):
    """Immutable prompt inputs for one beat. Every save inserts a new version."""

    __tablename__ = "scene_prompt_layers"
    __table_args__ = (
        UniqueConstraint("project_id", "beat_id", "version", name="uq_prompt_layer_version"),
    )

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    package_id = Column(Integer, ForeignKey("storyboard_packages.id", ondelete="CASCADE"), nullable=False)
    beat_id = Column(String(128), nullable=False)

    director_prompt = Column(Text, nullable=False, default="")
    cinematographer_prompt = Column(Text, nullable=False, default="")
    merged_prompt = Column(Text, nullable=False, default="")
    film_type = Column(String(128), nullable=True)
    generation_model = Column(String(64), nullable=True)
    continuation_mode = Column(
        Enum(ContinuationMode, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=ContinuationMode.strict,
    )
    anchor_beat_id = Column(String(128), nullable=True)
    auto_regenerate_threshold = Column(Float, nullable=False, default=0.75)
    source = Column(
        Enum(LayerSource, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=LayerSource.manual,
    )
    version = Column(Integer, nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    project = relationship("Project", back_populates="prompt_layers")


class SceneVideoPromptTrace(Base):
    """Write-once snapshot of the resolved inputs of one generation attempt."""

    __tablename__ = "scene_video_prompt_traces"

    id = Column(Integer, primary_key=True, index=True)
    trace_id = Column(String(64), unique=True, nullable=False)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    package_id = Column(Integer, ForeignKey("storyboard_packages.id", ondelete="CASCADE"), nullable=False)
    beat_id = Column(String(128), nullable=False)
    job_id = Column(Integer, nullable=True)
    payload = Column(JSON, nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    project = relationship("Project", back_populates="prompt_traces")
