"""
Tests for tracking/identity.py — fingerprinting and race-safe session resolution.
"""
import pytest

from conftest import NOW, SESSION_ID
from persona_pipeline import store
from persona_pipeline.tracking import identity
from persona_pipeline.tracking.identity import fingerprint_hash, resolve_session
from persona_pipeline.tracking.schemas import DeviceType


class TestFingerprint:

    def test_stable_and_hex(self):
        first = fingerprint_hash(SESSION_ID, salt="pepper")
        assert first == fingerprint_hash(SESSION_ID, salt="pepper")
        assert len(first) == 64
        int(first, 16)

    def test_never_contains_raw_identifier(self):
        assert SESSION_ID not in fingerprint_hash(SESSION_ID, salt="")

    def test_salt_changes_digest(self):
        assert fingerprint_hash(SESSION_ID, salt="a") != fingerprint_hash(SESSION_ID, salt="b")


@pytest.mark.asyncio
async def test_first_contact_creates_session_and_empty_aggregate(db):
    fp = fingerprint_hash(SESSION_ID)
    resolved = await resolve_session(db, fp, DeviceType.mobile, NOW)
    await db.commit()

    assert resolved.created is True
    session = await store.get_session(db, resolved.session_id)
    assert session.fingerprint_hash == fp
    assert session.device_type == "mobile"
    assert session.persona is None
    agg = await store.get_aggregate(db, resolved.session_id)
    assert agg.opened_code_samples_count == 0
    assert agg.behavior_vector == []


@pytest.mark.asyncio
async def test_default_device_type(db):
    resolved = await resolve_session(db, fingerprint_hash("other"), None, NOW)
    session = await store.get_session(db, resolved.session_id)
    assert session.device_type == "desktop"


@pytest.mark.asyncio
async def test_returning_visitor_reuses_session(session_factory):
    fp = fingerprint_hash(SESSION_ID)
    async with session_factory() as db:
        first = await resolve_session(db, fp, None, NOW)
        await db.commit()
    async with session_factory() as db:
        second = await resolve_session(db, fp, None, NOW)
        await db.commit()

    assert second.created is False
    assert second.session_id == first.session_id


@pytest.mark.asyncio
async def test_lost_create_race_rereads_winner(session_factory, monkeypatch):
    fp = fingerprint_hash(SESSION_ID)
    async with session_factory() as db:
        winner = await store.create_session(db, fp, "desktop")
        await db.commit()

    # The loser's initial lookup ran before the winner committed
    real_lookup = store.get_session_by_fingerprint
    calls = []

    async def stale_first_lookup(db, fingerprint):
        calls.append(fingerprint)
        if len(calls) == 1:
            return None
        return await real_lookup(db, fingerprint)

    monkeypatch.setattr(identity.store, "get_session_by_fingerprint", stale_first_lookup)

    async with session_factory() as db:
        resolved = await resolve_session(db, fp, None, NOW)
        await db.commit()

    assert resolved.session_id == winner.id
    assert resolved.created is False
    assert len(calls) == 2
