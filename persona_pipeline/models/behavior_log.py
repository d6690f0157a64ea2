"""
models/behavior_log.py — SQLAlchemy ORM for raw behavior events.

Table: behavior_logs
One row per captured interaction. Deleted in bulk by the rollup job once
older than 7 days, whether or not it was ever rolled up.
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from persona_pipeline.database import Base, JSONVariant


class BehaviorLogORM(Base):
    """
    ORM model for a single raw behavior event.

    event_type: pageview | scroll | click | hover | time | navigation | interaction | idle
    payload:    decoded event data for that type (paths, element ids, durations).
                Must NOT contain raw device identifiers.
    timestamp:  client event time; the retention and eligibility scans run on it.
    """
    __tablename__ = "behavior_logs"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
        comment="UUID row identifier",
    )
    session_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("visitor_sessions.id"),
        nullable=False,
        index=True,
        comment="Owning visitor session",
    )
    event_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="Event category — mirrors EventType enum",
    )
    payload: Mapped[dict] = mapped_column(
        JSONVariant,
        nullable=False,
        default=dict,
        comment="Typed event data for event_type. No raw device identifiers.",
    )
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
        comment="Client event time — drives rollup eligibility and 7-day retention",
    )
