"""
Classification gate — decides whether a classifier is called and whether its
answer replaces the visitor's cached persona.

  client session id
    → fingerprint lookup           unknown visitor → default, no classifier call
    → cooldown (Redis SET NX EX)   active → cached classification, no call
    → features from the live aggregate + freshly derived vector
    → classifier, bounded by a timeout
         failure / timeout         → cached classification kept
    → acceptance policy            accepted → session label + vector written back

The classifier runs outside any database transaction; the read and the
write-back are two short units of work.
"""
from __future__ import annotations

import asyncio
import logging
from typing import NamedTuple, Optional

import redis.asyncio as aioredis
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from persona_pipeline import store
from persona_pipeline.cache import CLASSIFY_COOLDOWN_TTL, acquire_classify_slot
from persona_pipeline.config import settings
from persona_pipeline.errors import ClassifierFailure
from persona_pipeline.persona.schemas import (
    DEFAULT_CLASSIFICATION,
    BehaviorFeatures,
    Classification,
    Classifier,
    Mood,
    PersonaType,
)
from persona_pipeline.rollup.vector import DIMENSION_NAMES, derive_vector
from persona_pipeline.tracking.identity import fingerprint_hash
from persona_pipeline.tracking.snapshot import BehaviorSnapshot

logger = logging.getLogger(__name__)

_PACING_INDEX = DIMENSION_NAMES.index("navigation_speed")

# Outcome labels reported alongside the classification
SOURCE_NEW_VISITOR = "new-visitor"
SOURCE_INSUFFICIENT_DATA = "insufficient-data"
SOURCE_COOLDOWN = "cooldown"
SOURCE_CLASSIFIED = "classified"
SOURCE_RETAINED = "retained"
SOURCE_CLASSIFIER_FAILED = "classifier-failed"
SOURCE_UNAVAILABLE = "unavailable"


class GateResult(NamedTuple):
    classification: Optional[Classification]
    source: str
    accepted: bool = False


def should_accept(cached: Optional[Classification], candidate: Classification) -> bool:
    """Replace the cached label on first result, persona change, or strictly higher confidence."""
    if cached is None:
        return True
    if candidate.persona != cached.persona:
        return True
    return candidate.confidence > cached.confidence


def cached_classification(session) -> Optional[Classification]:
    """The label stored on a visitor_sessions row, or None if never classified."""
    if session.persona is None:
        return None
    return Classification(
        persona=PersonaType(session.persona),
        confidence=session.confidence or 0.0,
        mood=Mood(session.mood) if session.mood else Mood.exploratory,
    )


async def build_features(db: AsyncSession, session_id: str) -> Optional[BehaviorFeatures]:
    """Current aggregate → classifier input. None when the aggregate row is gone."""
    row = await store.get_aggregate(db, session_id)
    if row is None:
        return None
    total_events = await store.count_events(db, session_id)
    snapshot = BehaviorSnapshot.from_row(row, total_events)
    vector = derive_vector(snapshot)
    return BehaviorFeatures(
        vector=vector,
        navigation_path=snapshot.navigation_path,
        hovered_keywords=snapshot.hovered_keywords,
        time_on_homepage=snapshot.time_on_homepage,
        scroll_depth=snapshot.scroll_depth,
        idle_time=snapshot.idle_time,
        navigation_speed=vector[_PACING_INDEX],
        clicked_resume=snapshot.clicked_resume,
        opened_design_showcase=snapshot.opened_design_showcase,
        opened_ai_intake_form=snapshot.opened_ai_intake_form,
        played_demos_count=snapshot.played_demos_count,
    )


async def request_classification(
    session_factory: async_sessionmaker[AsyncSession],
    redis: aioredis.Redis,
    client_session_id: str,
    classifier: Classifier,
    timeout: Optional[float] = None,
    cooldown: int = CLASSIFY_COOLDOWN_TTL,
) -> GateResult:
    """
    Run the gate for one classification request.

    Never raises for classifier or storage problems: the returned source says
    what happened, and the classification is whatever the visitor should see.
    """
    timeout = settings.classifier_timeout_seconds if timeout is None else timeout
    fingerprint = fingerprint_hash(client_session_id)

    # --- 1. Read: session, cached label, features ---
    try:
        async with session_factory() as db:
            session = await store.get_session_by_fingerprint(db, fingerprint)
            if session is None:
                return GateResult(DEFAULT_CLASSIFICATION, SOURCE_NEW_VISITOR)
            session_id = session.id
            cached = cached_classification(session)

            if not await acquire_classify_slot(redis, session_id, cooldown):
                return GateResult(cached, SOURCE_COOLDOWN)

            features = await build_features(db, session_id)
    except (SQLAlchemyError, OSError) as exc:
        logger.error("Classification skipped, storage unavailable: %s", exc)
        return GateResult(None, SOURCE_UNAVAILABLE)

    if features is None:
        return GateResult(cached or DEFAULT_CLASSIFICATION, SOURCE_INSUFFICIENT_DATA)

    # --- 2. Classifier, bounded ---
    try:
        candidate = await asyncio.wait_for(classifier(features), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("Classifier timed out after %.1fs session_id=%s", timeout, session_id)
        return GateResult(cached, SOURCE_CLASSIFIER_FAILED)
    except ClassifierFailure as exc:
        logger.warning("Classifier failed session_id=%s: %s", session_id, exc)
        return GateResult(cached, SOURCE_CLASSIFIER_FAILED)
    except Exception:
        # CancelledError is a BaseException and still propagates
        logger.error("Classifier raised unexpectedly session_id=%s", session_id, exc_info=True)
        return GateResult(cached, SOURCE_CLASSIFIER_FAILED)

    # --- 3. Acceptance + write-back ---
    if not should_accept(cached, candidate):
        logger.info(
            "Classification retained session_id=%s persona=%s confidence=%.2f",
            session_id,
            cached.persona.value,
            cached.confidence,
        )
        return GateResult(cached, SOURCE_RETAINED)

    try:
        async with session_factory() as db:
            await store.save_classification(
                db,
                session_id,
                candidate.persona.value,
                candidate.confidence,
                candidate.mood.value,
            )
            await store.store_vector(db, session_id, features.vector)
            await db.commit()
    except (SQLAlchemyError, OSError) as exc:
        logger.error("Classification write-back failed session_id=%s: %s", session_id, exc)
        return GateResult(candidate, SOURCE_UNAVAILABLE)

    return GateResult(candidate, SOURCE_CLASSIFIED, accepted=True)
