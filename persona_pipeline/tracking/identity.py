"""
Identity resolver — maps a client session identifier to a durable visitor session.

The client id is never stored: it is reduced to a salted SHA-256 fingerprint
first. Resolution is race-safe without locks: the UNIQUE constraint on
visitor_sessions.fingerprint_hash decides which concurrent insert wins, and
the loser re-reads the winning row instead of failing the request.
"""
from __future__ import annotations

import hashlib
import logging
from datetime import datetime
from typing import NamedTuple, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from persona_pipeline import store
from persona_pipeline.config import settings
from persona_pipeline.tracking.schemas import DeviceType

logger = logging.getLogger(__name__)


class ResolvedSession(NamedTuple):
    session_id: str
    created: bool


def fingerprint_hash(client_session_id: str, salt: Optional[str] = None) -> str:
    """Salted SHA-256 hex digest of the client-supplied identifier."""
    salt = settings.fingerprint_salt if salt is None else salt
    return hashlib.sha256(f"{salt}:{client_session_id}".encode("utf-8")).hexdigest()


async def resolve_session(
    db: AsyncSession,
    fingerprint: str,
    device_type: Optional[DeviceType] = None,
    now: Optional[datetime] = None,
) -> ResolvedSession:
    """
    Look up the session for `fingerprint`, creating it (and its empty aggregate)
    on first contact. Returning visitors get last_seen bumped.

    The insert runs in a SAVEPOINT so a lost race rolls back only the attempted
    insert, leaving the caller's transaction usable for the re-read.
    """
    existing = await store.get_session_by_fingerprint(db, fingerprint)
    if existing is not None:
        await store.touch_session(db, existing.id, now)
        return ResolvedSession(existing.id, False)

    device = (device_type or DeviceType.desktop).value
    try:
        async with db.begin_nested():
            created = await store.create_session(db, fingerprint, device)
        return ResolvedSession(created.id, True)
    except IntegrityError:
        winner = await store.get_session_by_fingerprint(db, fingerprint)
        if winner is None:
            raise
        logger.info("Lost session-create race, reusing session_id=%s", winner.id)
        await store.touch_session(db, winner.id, now)
        return ResolvedSession(winner.id, False)
