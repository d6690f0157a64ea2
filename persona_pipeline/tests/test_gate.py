"""
Tests for persona/gate.py — cooldown, acceptance policy, failure containment.

Classifiers are AsyncMocks; the database is SQLite, Redis is fakeredis.
"""
import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from conftest import NOW, SESSION_ID, make_event
from persona_pipeline import store
from persona_pipeline.cache import acquire_classify_slot, make_classify_key
from persona_pipeline.errors import ClassifierFailure
from persona_pipeline.persona import gate
from persona_pipeline.persona.gate import request_classification, should_accept
from persona_pipeline.persona.schemas import DEFAULT_CLASSIFICATION, Classification, Mood, PersonaType
from persona_pipeline.tracking.aggregator import ingest_batch
from persona_pipeline.tracking.codec import decode_batch
from persona_pipeline.tracking.identity import fingerprint_hash


def _label(persona: str, confidence: float, mood: str = "focused") -> Classification:
    return Classification(persona=PersonaType(persona), confidence=confidence, mood=Mood(mood))


def _classifier(result: Classification) -> AsyncMock:
    return AsyncMock(return_value=result)


async def _known_visitor(session_factory, cached: Classification | None = None) -> str:
    await ingest_batch(session_factory, decode_batch({"events": [
        make_event("click", {"element": "code-sample"}),
        make_event("scroll", {"maxDepth": 85}),
    ]}), now=NOW)
    async with session_factory() as db:
        session = await store.get_session_by_fingerprint(db, fingerprint_hash(SESSION_ID))
        if cached is not None:
            await store.save_classification(
                db, session.id, cached.persona.value, cached.confidence, cached.mood.value
            )
        await db.commit()
        return session.id


async def _stored_label(session_factory, session_id):
    async with session_factory() as db:
        session = await store.get_session(db, session_id)
        return session.persona, session.confidence, session.mood


# ---------------------------------------------------------------------------
# Acceptance policy (pure)
# ---------------------------------------------------------------------------

class TestShouldAccept:

    def test_first_classification_always_accepted(self):
        assert should_accept(None, _label("curious", 0.1)) is True

    def test_same_persona_lower_confidence_rejected(self):
        assert should_accept(_label("engineer", 0.7), _label("engineer", 0.65)) is False

    def test_same_persona_equal_confidence_rejected(self):
        assert should_accept(_label("engineer", 0.7), _label("engineer", 0.7)) is False

    def test_same_persona_higher_confidence_accepted(self):
        assert should_accept(_label("engineer", 0.7), _label("engineer", 0.71)) is True

    def test_persona_change_accepted_at_any_confidence(self):
        assert should_accept(_label("engineer", 0.7), _label("recruiter", 0.5)) is True


# ---------------------------------------------------------------------------
# request_classification
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_unknown_visitor_gets_default_without_classifier(session_factory, redis):
    classifier = _classifier(_label("engineer", 0.9))

    result = await request_classification(session_factory, redis, "never-seen", classifier)

    assert result.classification == DEFAULT_CLASSIFICATION
    assert result.source == gate.SOURCE_NEW_VISITOR
    classifier.assert_not_called()


@pytest.mark.asyncio
async def test_first_result_is_stored_with_vector(session_factory, redis):
    sid = await _known_visitor(session_factory)
    classifier = _classifier(_label("engineer", 0.8))

    result = await request_classification(session_factory, redis, SESSION_ID, classifier)

    assert result.accepted is True
    assert result.source == gate.SOURCE_CLASSIFIED
    assert await _stored_label(session_factory, sid) == ("engineer", pytest.approx(0.8), "focused")
    features = classifier.call_args.args[0]
    assert features.opened_design_showcase is False
    assert features.scroll_depth == pytest.approx(0.85)
    async with session_factory() as db:
        agg = await store.get_aggregate(db, sid)
    assert agg.behavior_vector == features.vector
    assert features.vector[1] == pytest.approx(0.1)


@pytest.mark.asyncio
async def test_lower_confidence_same_persona_is_discarded(session_factory, redis):
    sid = await _known_visitor(session_factory, cached=_label("engineer", 0.7))

    result = await request_classification(
        session_factory, redis, SESSION_ID, _classifier(_label("engineer", 0.65))
    )

    assert result.accepted is False
    assert result.source == gate.SOURCE_RETAINED
    assert result.classification.confidence == pytest.approx(0.7)
    assert await _stored_label(session_factory, sid) == ("engineer", pytest.approx(0.7), "focused")


@pytest.mark.asyncio
async def test_persona_change_replaces_cached_label(session_factory, redis):
    sid = await _known_visitor(session_factory, cached=_label("engineer", 0.7))

    result = await request_classification(
        session_factory, redis, SESSION_ID, _classifier(_label("recruiter", 0.5, "professional"))
    )

    assert result.accepted is True
    assert await _stored_label(session_factory, sid) == ("recruiter", pytest.approx(0.5), "professional")


@pytest.mark.asyncio
async def test_cooldown_allows_one_classifier_call(session_factory, redis):
    await _known_visitor(session_factory)
    classifier = _classifier(_label("designer", 0.6))

    first = await request_classification(session_factory, redis, SESSION_ID, classifier)
    second = await request_classification(session_factory, redis, SESSION_ID, classifier)

    assert classifier.await_count == 1
    assert first.source == gate.SOURCE_CLASSIFIED
    assert second.source == gate.SOURCE_COOLDOWN
    assert second.classification.persona == PersonaType.designer


@pytest.mark.asyncio
async def test_cooldown_key_expires_after_ttl(session_factory, redis):
    sid = await _known_visitor(session_factory)
    await request_classification(session_factory, redis, SESSION_ID, _classifier(_label("gamer", 0.5)))

    ttl = await redis.ttl(make_classify_key(sid))
    assert 0 < ttl <= 30


@pytest.mark.asyncio
async def test_classifier_failure_keeps_cached_label(session_factory, redis):
    sid = await _known_visitor(session_factory, cached=_label("cto", 0.6))
    classifier = AsyncMock(side_effect=ClassifierFailure("provider down"))

    result = await request_classification(session_factory, redis, SESSION_ID, classifier)

    assert result.source == gate.SOURCE_CLASSIFIER_FAILED
    assert result.classification.persona == PersonaType.cto
    assert await _stored_label(session_factory, sid) == ("cto", pytest.approx(0.6), "focused")


@pytest.mark.asyncio
async def test_classifier_timeout_is_a_failure(session_factory, redis):
    await _known_visitor(session_factory)

    async def slow(features):
        await asyncio.sleep(5)
        return _label("engineer", 0.9)

    result = await request_classification(session_factory, redis, SESSION_ID, slow, timeout=0.05)

    assert result.source == gate.SOURCE_CLASSIFIER_FAILED
    assert result.classification is None


@pytest.mark.asyncio
async def test_missing_aggregate_returns_default(session_factory, redis):
    sid = await _known_visitor(session_factory)
    async with session_factory() as db:
        await store.delete_aggregates_before(db, NOW + timedelta(days=365))
        await db.commit()
    classifier = _classifier(_label("engineer", 0.9))

    result = await request_classification(session_factory, redis, SESSION_ID, classifier)

    assert result.source == gate.SOURCE_INSUFFICIENT_DATA
    assert result.classification == DEFAULT_CLASSIFICATION
    classifier.assert_not_called()


@pytest.mark.asyncio
async def test_redis_outage_fails_open():
    broken = MagicMock()
    broken.set = AsyncMock(side_effect=RedisConnectionError("connection refused"))

    assert await acquire_classify_slot(broken, "session-1") is True


@pytest.mark.asyncio
async def test_unexpected_classifier_error_keeps_cached_label(session_factory, redis):
    sid = await _known_visitor(session_factory, cached=_label("engineer", 0.7))
    classifier = AsyncMock(side_effect=RuntimeError("provider blew up"))

    result = await request_classification(session_factory, redis, SESSION_ID, classifier)

    assert result.source == gate.SOURCE_CLASSIFIER_FAILED
    assert result.accepted is False
    assert result.classification.persona == PersonaType.engineer
    assert await _stored_label(session_factory, sid) == ("engineer", pytest.approx(0.7), "focused")
