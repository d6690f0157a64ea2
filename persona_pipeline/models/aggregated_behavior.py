"""
models/aggregated_behavior.py — SQLAlchemy ORM for per-session behavior aggregates.

Table: aggregated_behaviors
At most one row per session (unique session_id). Written two ways:
  - incrementally by ingestion (per-column merge expressions, one UPDATE per batch)
  - by the daily rollup (INSERT … ON CONFLICT merge of a full-history snapshot)
Deleted once updated_at is older than 30 days.
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from persona_pipeline.database import Base, JSONVariant


class AggregatedBehaviorORM(Base):
    """
    ORM model for a session's accumulated behavior metrics.

    Counters and seconds accumulators only grow between rollups; behavior_vector,
    booleans and scroll_depth are replaced by each rollup snapshot.
    behavior_vector is either empty (never rolled up) or exactly 12 floats in [0, 1].
    """
    __tablename__ = "aggregated_behaviors"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    session_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("visitor_sessions.id"),
        nullable=False,
        unique=True,     # One aggregate per session; upsert conflict target
        index=True,
    )

    # --- Accumulators ---
    time_on_homepage: Mapped[float] = mapped_column(Float, nullable=False, default=0.0,
                                                    comment="Seconds spent on the home path")
    scroll_depth: Mapped[float] = mapped_column(Float, nullable=False, default=0.0,
                                                comment="Max scroll depth as a 0–1 fraction")
    clicked_resume: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    opened_code_samples_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    visited_projects_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    opened_design_showcase: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    played_demos_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    opened_ai_intake_form: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    interacted_with_animations: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    idle_time: Mapped[float] = mapped_column(Float, nullable=False, default=0.0,
                                             comment="Idle seconds")
    navigation_speed: Mapped[float] = mapped_column(Float, nullable=False, default=0.0,
                                                    comment="Pacing score from the last rollup, 0–1")

    # --- Sequences ---
    hovered_keywords: Mapped[list] = mapped_column(JSONVariant, nullable=False, default=list)
    navigation_path: Mapped[list] = mapped_column(
        JSONVariant,
        nullable=False,
        default=list,
        comment="Last reported navigation sequence (replaced, never appended)",
    )
    behavior_vector: Mapped[list] = mapped_column(
        JSONVariant,
        nullable=False,
        default=list,
        comment="12-dimension feature vector from the last rollup",
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )
