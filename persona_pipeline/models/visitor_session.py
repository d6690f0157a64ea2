"""
models/visitor_session.py — SQLAlchemy ORM model for visitor identities.

Table: visitor_sessions
One row per distinct visitor fingerprint. Long-lived: never hard-deleted,
only its telemetry children (behavior_logs, aggregated_behaviors) expire.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, DateTime, Float, String
from sqlalchemy.orm import Mapped, mapped_column

from persona_pipeline.database import Base


class VisitorSessionORM(Base):
    """
    ORM model for a visitor session.

    fingerprint_hash: salted SHA-256 of the client-supplied session identifier.
                      UNIQUE; the constraint is the only guard against two
                      concurrent first-contact requests creating two rows.
    persona/confidence/mood: cached classification, NULL until first accepted result.
    """
    __tablename__ = "visitor_sessions"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
        comment="Opaque session handle — referenced by behavior_logs and aggregated_behaviors",
    )
    fingerprint_hash: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
        comment="Salted SHA-256 hex of the client session id. Never the raw identifier.",
    )
    device_type: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        default="desktop",
        comment="'desktop' | 'mobile' | 'tablet'",
    )
    consent_given: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="True once telemetry arrives — consent is collected upstream before tracking starts",
    )
    persona: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
        comment="Cached persona label — mirrors PersonaType enum",
    )
    confidence: Mapped[Optional[float]] = mapped_column(
        Float,
        nullable=True,
        comment="Confidence of the cached persona, 0.0–1.0",
    )
    mood: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
        comment="Cached mood label — mirrors Mood enum",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    last_seen: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
