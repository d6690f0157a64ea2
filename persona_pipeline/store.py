"""
store.py — Data access facade for persona-pipeline.

Provides a consistent, high-level API over the three tracking tables.
Tracking, rollup and persona code use these functions — none of them builds
SQL on its own.

Design principles:
  - All functions are async and accept an AsyncSession parameter
  - flush() only — the caller owns commit/rollback boundaries
  - Logs only opaque session ids and counts — never payload values or fingerprints
  - Concurrency safety comes from per-row conditional UPDATEs and native
    INSERT … ON CONFLICT upserts, never from application locks
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Iterable, Optional

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from persona_pipeline.models.aggregated_behavior import AggregatedBehaviorORM
from persona_pipeline.models.behavior_log import BehaviorLogORM
from persona_pipeline.models.visitor_session import VisitorSessionORM
from persona_pipeline.tracking.schemas import BehaviorEvent
from persona_pipeline.tracking.snapshot import ADDITIVE_FIELDS, FLAG_FIELDS, BehaviorSnapshot

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _insert_for(db: AsyncSession):
    """Dialect-specific insert() so ON CONFLICT clauses are available."""
    if db.get_bind().dialect.name == "postgresql":
        return pg_insert
    return sqlite_insert


# ---------------------------------------------------------------------------
# Visitor sessions
# ---------------------------------------------------------------------------

async def get_session_by_fingerprint(
    db: AsyncSession,
    fingerprint_hash: str,
) -> Optional[VisitorSessionORM]:
    """Point lookup on the unique fingerprint. Returns None for unknown visitors."""
    result = await db.execute(
        select(VisitorSessionORM).where(VisitorSessionORM.fingerprint_hash == fingerprint_hash)
    )
    return result.scalar_one_or_none()


async def get_session(db: AsyncSession, session_id: str) -> Optional[VisitorSessionORM]:
    result = await db.execute(
        select(VisitorSessionORM).where(VisitorSessionORM.id == session_id)
    )
    return result.scalar_one_or_none()


async def create_session(
    db: AsyncSession,
    fingerprint_hash: str,
    device_type: str,
) -> VisitorSessionORM:
    """
    Insert a new visitor session plus its zero-valued aggregate row.

    Raises IntegrityError (on flush) if another request already created the
    fingerprint — the caller runs this inside a savepoint and re-reads.
    """
    now = _utcnow()
    orm = VisitorSessionORM(
        id=str(uuid.uuid4()),
        fingerprint_hash=fingerprint_hash,
        device_type=device_type,
        consent_given=True,
        created_at=now,
        last_seen=now,
    )
    db.add(orm)
    await db.flush()
    db.add(AggregatedBehaviorORM(id=str(uuid.uuid4()), session_id=orm.id, updated_at=now))
    await db.flush()
    logger.info("Created visitor session session_id=%s device_type=%s", orm.id, device_type)
    return orm


async def touch_session(db: AsyncSession, session_id: str, now: Optional[datetime] = None) -> None:
    """Set last_seen to now for a returning visitor."""
    await db.execute(
        update(VisitorSessionORM)
        .where(VisitorSessionORM.id == session_id)
        .values(last_seen=now or _utcnow())
    )


async def save_classification(
    db: AsyncSession,
    session_id: str,
    persona: str,
    confidence: float,
    mood: str,
) -> None:
    """Replace the cached persona/confidence/mood on a session."""
    await db.execute(
        update(VisitorSessionORM)
        .where(VisitorSessionORM.id == session_id)
        .values(persona=persona, confidence=confidence, mood=mood)
    )
    logger.info("Saved classification session_id=%s persona=%s", session_id, persona)


# ---------------------------------------------------------------------------
# Raw events
# ---------------------------------------------------------------------------

async def save_events(
    db: AsyncSession,
    session_id: str,
    events: Iterable[BehaviorEvent],
) -> int:
    """
    Persist decoded events as raw behavior_logs rows, one per event.
    Payloads are stored in wire (camelCase) form so rollup can re-decode them.
    """
    rows = [
        BehaviorLogORM(
            id=str(uuid.uuid4()),
            session_id=session_id,
            event_type=event.type,
            payload=event.data.model_dump(mode="json", by_alias=True, exclude_none=True),
            timestamp=event.timestamp,
        )
        for event in events
    ]
    db.add_all(rows)
    await db.flush()
    logger.info("Saved raw events session_id=%s count=%d", session_id, len(rows))
    return len(rows)


async def count_events(db: AsyncSession, session_id: str) -> int:
    result = await db.execute(
        select(func.count()).select_from(BehaviorLogORM).where(BehaviorLogORM.session_id == session_id)
    )
    return int(result.scalar_one())


async def list_rollup_candidates(db: AsyncSession, older_than: datetime) -> list[str]:
    """Distinct session ids owning at least one raw event timestamped before `older_than`."""
    result = await db.execute(
        select(BehaviorLogORM.session_id)
        .where(BehaviorLogORM.timestamp < older_than)
        .group_by(BehaviorLogORM.session_id)
    )
    return [row[0] for row in result.all()]


async def load_event_history(db: AsyncSession, session_id: str) -> list[BehaviorLogORM]:
    """Full raw history for one session, oldest first."""
    result = await db.execute(
        select(BehaviorLogORM)
        .where(BehaviorLogORM.session_id == session_id)
        .order_by(BehaviorLogORM.timestamp.asc())
    )
    return list(result.scalars().all())


async def delete_events_before(db: AsyncSession, cutoff: datetime) -> int:
    result = await db.execute(delete(BehaviorLogORM).where(BehaviorLogORM.timestamp < cutoff))
    return result.rowcount or 0


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------

async def get_aggregate(db: AsyncSession, session_id: str) -> Optional[AggregatedBehaviorORM]:
    result = await db.execute(
        select(AggregatedBehaviorORM).where(AggregatedBehaviorORM.session_id == session_id)
    )
    return result.scalar_one_or_none()


async def ensure_aggregate(db: AsyncSession, session_id: str) -> None:
    """Create the zero-valued aggregate row if missing; no-op when it exists."""
    insert = _insert_for(db)
    stmt = (
        insert(AggregatedBehaviorORM)
        .values(id=str(uuid.uuid4()), session_id=session_id, updated_at=_utcnow())
        .on_conflict_do_nothing(index_elements=["session_id"])
    )
    await db.execute(stmt)


def _increment_values(snapshot: BehaviorSnapshot, now: datetime) -> dict:
    """Translate a batch snapshot's touched fields into per-column merge expressions."""
    table = AggregatedBehaviorORM
    values: dict = {}
    for name in sorted(snapshot.touched):
        column = getattr(table, name)
        if name in ADDITIVE_FIELDS:
            values[name] = column + getattr(snapshot, name)
        elif name in FLAG_FIELDS:
            values[name] = True
        elif name == "scroll_depth":
            values[name] = case((column < snapshot.scroll_depth, snapshot.scroll_depth), else_=column)
        elif name == "navigation_path":
            values[name] = list(snapshot.navigation_path)
    if values:
        values["updated_at"] = now
    return values


async def increment_aggregate(
    db: AsyncSession,
    session_id: str,
    snapshot: BehaviorSnapshot,
    now: Optional[datetime] = None,
) -> bool:
    """
    Apply one batch snapshot to the live aggregate as a single conditional UPDATE.

    Expressions are evaluated against the row's current values inside the
    database (col + n, max via CASE), so concurrent batches for the same session
    never lose each other's increments. Creates the row lazily if missing.

    Returns False when the batch touched nothing (no write issued).
    """
    values = _increment_values(snapshot, now or _utcnow())
    if not values:
        return False

    stmt = (
        update(AggregatedBehaviorORM)
        .where(AggregatedBehaviorORM.session_id == session_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    if result.rowcount == 0:
        await ensure_aggregate(db, session_id)
        await db.execute(stmt)
    logger.info("Incremented aggregate session_id=%s fields=%d", session_id, len(values) - 1)
    return True


async def merge_rollup(
    db: AsyncSession,
    session_id: str,
    snapshot: BehaviorSnapshot,
    vector: list[float],
    navigation_speed: float,
    now: Optional[datetime] = None,
) -> None:
    """
    Upsert a full-history rollup snapshot.

    New row: snapshot values written directly.
    Existing row: counters and time_on_homepage are SUMMED with the stored
    values; flags, scroll depth, idle time, path, keywords and the vector are
    OVERWRITTEN with the snapshot.
    """
    now = now or _utcnow()
    insert = _insert_for(db)
    stmt = insert(AggregatedBehaviorORM).values(
        id=str(uuid.uuid4()),
        session_id=session_id,
        time_on_homepage=snapshot.time_on_homepage,
        scroll_depth=snapshot.scroll_depth,
        clicked_resume=snapshot.clicked_resume,
        opened_code_samples_count=snapshot.opened_code_samples_count,
        visited_projects_count=snapshot.visited_projects_count,
        opened_design_showcase=snapshot.opened_design_showcase,
        played_demos_count=snapshot.played_demos_count,
        opened_ai_intake_form=snapshot.opened_ai_intake_form,
        interacted_with_animations=snapshot.interacted_with_animations,
        idle_time=snapshot.idle_time,
        navigation_speed=navigation_speed,
        hovered_keywords=list(snapshot.hovered_keywords),
        navigation_path=list(snapshot.navigation_path),
        behavior_vector=list(vector),
        updated_at=now,
    )
    table = AggregatedBehaviorORM.__table__
    excluded = stmt.excluded
    summed = ("opened_code_samples_count", "visited_projects_count", "played_demos_count", "time_on_homepage")
    overwritten = (
        "scroll_depth",
        "clicked_resume",
        "opened_design_showcase",
        "opened_ai_intake_form",
        "interacted_with_animations",
        "idle_time",
        "navigation_speed",
        "hovered_keywords",
        "navigation_path",
        "behavior_vector",
        "updated_at",
    )
    set_ = {name: table.c[name] + excluded[name] for name in summed}
    set_.update({name: excluded[name] for name in overwritten})
    await db.execute(stmt.on_conflict_do_update(index_elements=["session_id"], set_=set_))


async def store_vector(db: AsyncSession, session_id: str, vector: list[float]) -> None:
    """Write back the vector a classification was computed from."""
    await db.execute(
        update(AggregatedBehaviorORM)
        .where(AggregatedBehaviorORM.session_id == session_id)
        .values(behavior_vector=list(vector))
    )


async def delete_aggregates_before(db: AsyncSession, cutoff: datetime) -> int:
    result = await db.execute(
        delete(AggregatedBehaviorORM).where(AggregatedBehaviorORM.updated_at < cutoff)
    )
    return result.rowcount or 0
