"""
Incremental aggregator — the ingestion unit of work.

  decoded batch
    → resolve visitor session (identity.py)
    → persist raw events, COMMIT          ← raw storage never waits on aggregation
    → fold batch into a snapshot, apply as one conditional UPDATE, COMMIT

An aggregation failure is rolled back and logged; the already-committed raw
events stay, and the next rollup recomputes the aggregate from them.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from persona_pipeline import store
from persona_pipeline.config import settings
from persona_pipeline.errors import StorageUnavailable
from persona_pipeline.tracking.identity import fingerprint_hash, resolve_session
from persona_pipeline.tracking.schemas import BehaviorEvent, DecodedBatch
from persona_pipeline.tracking.snapshot import BehaviorSnapshot

logger = logging.getLogger(__name__)


async def apply_batch(
    db: AsyncSession,
    session_id: str,
    events: Sequence[BehaviorEvent],
    home_path: Optional[str] = None,
    now: Optional[datetime] = None,
) -> bool:
    """
    Merge one batch into the live aggregate row.
    Returns True if a write was issued, False if no rule fired.
    """
    snapshot = BehaviorSnapshot.from_events(events, home_path or settings.home_path)
    return await store.increment_aggregate(db, session_id, snapshot, now)


async def ingest_batch(
    session_factory: async_sessionmaker[AsyncSession],
    batch: DecodedBatch,
    now: Optional[datetime] = None,
) -> int:
    """
    Persist a decoded batch and update the live aggregate.

    Returns the number of raw events stored.

    Raises:
        StorageUnavailable: the raw events could not be committed.
    """
    async with session_factory() as db:
        try:
            resolved = await resolve_session(
                db, fingerprint_hash(batch.session_id), batch.device_type, now
            )
            stored = await store.save_events(db, resolved.session_id, batch.events)
            await db.commit()
        except (SQLAlchemyError, OSError) as exc:
            raise StorageUnavailable(f"raw event write failed: {exc}") from exc

        try:
            await apply_batch(db, resolved.session_id, batch.events, now=now)
            await db.commit()
        except Exception:
            await db.rollback()
            logger.error(
                "Aggregate update failed session_id=%s, raw events kept for rollup",
                resolved.session_id,
                exc_info=True,
            )
        return stored
