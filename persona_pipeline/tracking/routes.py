"""
routes.py — tracking HTTP endpoint.

POST /api/track — decode a batch of behavior events, persist and aggregate.

Tracking is non-blocking for the visitor's browser: a malformed batch is a 400,
but an unreachable database still answers 200 with eventsProcessed=0.
"""
import json
import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from persona_pipeline.database import get_session_factory
from persona_pipeline.errors import StorageUnavailable, ValidationError
from persona_pipeline.tracking.aggregator import ingest_batch
from persona_pipeline.tracking.codec import decode_batch
from persona_pipeline.tracking.schemas import TrackResponse

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["Tracking"])


@router.post("/track")
async def track_events(
    request: Request,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> dict:
    """
    Ingest a batch of behavior events: {events: Event[], deviceType?}.

    Returns:
        200: {success: true, eventsProcessed: n}
        400: standard error envelope when the batch is malformed (ValidationError handler)
    """
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("Request body is not valid JSON") from None

    batch = decode_batch(body)

    try:
        processed = await ingest_batch(session_factory, batch)
    except StorageUnavailable as exc:
        logger.error("Tracking storage unavailable, dropping batch events=%d: %s", len(batch.events), exc)
        processed = 0

    return TrackResponse(success=True, events_processed=processed).model_dump(by_alias=True)
