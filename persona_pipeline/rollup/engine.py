"""
Batch rollup engine — daily recomputation of aggregates from raw history.

Algorithm (safe to re-run, safe alongside live ingestion):
  1. Candidates: distinct sessions with at least one raw event older than 24h.
  2. Per candidate, in its own transaction: load the full raw history, fold it
     from zero with the ingestion rules, derive the 12-d vector, and upsert-merge
     into aggregated_behaviors (counters summed, snapshots overwritten).
     A failing session is recorded as PartialRollupFailure and skipped.
  3. Delete raw events older than 7 days (rolled up or not).
  4. Delete aggregates whose updated_at is older than 30 days.

Re-running with unchanged raw history reproduces the same vector, flags and
scroll depth; summed counters grow by the snapshot again on every run.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from persona_pipeline import store
from persona_pipeline.config import settings
from persona_pipeline.errors import PartialRollupFailure, StorageUnavailable
from persona_pipeline.rollup.vector import DIMENSION_NAMES, derive_vector
from persona_pipeline.tracking.codec import decode_stored
from persona_pipeline.tracking.snapshot import BehaviorSnapshot

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Retention / eligibility windows
# ---------------------------------------------------------------------------
ELIGIBILITY_AGE = timedelta(hours=24)
RAW_EVENT_RETENTION = timedelta(days=7)
AGGREGATE_RETENTION = timedelta(days=30)

_PACING_INDEX = DIMENSION_NAMES.index("navigation_speed")


class RollupReport(BaseModel):
    """Outcome of one rollup pass."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    aggregated_sessions: int = 0
    failed_sessions: int = 0
    deleted_events: int = 0
    deleted_aggregates: int = 0
    timestamp: datetime
    failed_session_ids: List[str] = Field(default_factory=list, exclude=True)

    @property
    def message(self) -> str:
        text = f"Aggregated {self.aggregated_sessions} sessions, cleaned up old logs"
        if self.failed_sessions:
            text += f" ({self.failed_sessions} sessions failed)"
        return text


async def rollup_session(
    db: AsyncSession,
    session_id: str,
    now: datetime,
    home_path: Optional[str] = None,
) -> Optional[BehaviorSnapshot]:
    """
    Recompute and merge one session's aggregate from its full raw history.
    Returns the snapshot, or None when the session has no events left.
    """
    rows = await store.load_event_history(db, session_id)
    if not rows:
        return None

    home_path = home_path or settings.home_path
    snapshot = BehaviorSnapshot()
    for row in rows:
        event = decode_stored(session_id, row.event_type, row.payload, row.timestamp)
        if event is None:
            snapshot.total_events += 1
            continue
        snapshot.apply(event, home_path)

    vector = derive_vector(snapshot)
    await store.merge_rollup(db, session_id, snapshot, vector, vector[_PACING_INDEX], now)
    return snapshot


async def run_rollup(
    session_factory: async_sessionmaker[AsyncSession],
    now: Optional[datetime] = None,
    home_path: Optional[str] = None,
) -> RollupReport:
    """
    Run one full rollup + retention pass.

    Raises:
        StorageUnavailable: the candidate scan or the retention deletes failed.
            Per-session failures never raise; they are counted in the report.
    """
    now = now or datetime.now(timezone.utc)
    report = RollupReport(timestamp=now)

    try:
        async with session_factory() as db:
            candidates = await store.list_rollup_candidates(db, now - ELIGIBILITY_AGE)
    except (SQLAlchemyError, OSError) as exc:
        raise StorageUnavailable(f"rollup candidate scan failed: {exc}") from exc
    logger.info("Rollup started candidates=%d", len(candidates))

    for session_id in candidates:
        try:
            async with session_factory() as db:
                snapshot = await rollup_session(db, session_id, now, home_path)
                await db.commit()
        except Exception as exc:
            failure = PartialRollupFailure(session_id, exc)
            logger.error("%s", failure, exc_info=True)
            report.failed_sessions += 1
            report.failed_session_ids.append(session_id)
            continue
        if snapshot is not None:
            report.aggregated_sessions += 1

    try:
        async with session_factory() as db:
            report.deleted_events = await store.delete_events_before(db, now - RAW_EVENT_RETENTION)
            report.deleted_aggregates = await store.delete_aggregates_before(db, now - AGGREGATE_RETENTION)
            await db.commit()
    except (SQLAlchemyError, OSError) as exc:
        raise StorageUnavailable(f"retention delete failed: {exc}") from exc

    logger.info(
        "Rollup finished aggregated=%d failed=%d deleted_events=%d deleted_aggregates=%d",
        report.aggregated_sessions,
        report.failed_sessions,
        report.deleted_events,
        report.deleted_aggregates,
    )
    return report
