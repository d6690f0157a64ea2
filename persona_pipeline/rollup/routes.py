"""
routes.py — rollup trigger endpoint.

GET|POST /api/cron/aggregate — run one rollup + retention pass.

Invoked by an external daily scheduler (e.g. "0 3 * * *") with
"Authorization: Bearer <CRON_SECRET>". Without a configured secret the
endpoint stays closed.
"""
import logging
import secrets
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from persona_pipeline.config import settings
from persona_pipeline.database import get_session_factory
from persona_pipeline.errors import StorageUnavailable
from persona_pipeline.rollup.engine import run_rollup

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/cron", tags=["Rollup"])


def verify_cron_secret(authorization: Optional[str] = Header(default=None)) -> None:
    """Reject the call unless it carries the shared cron secret."""
    if not settings.cron_secret:
        logger.error("Rollup trigger called but CRON_SECRET is not configured")
        raise HTTPException(status_code=401, detail="Unauthorized")

    expected = f"Bearer {settings.cron_secret}"
    if authorization is None or not secrets.compare_digest(authorization, expected):
        raise HTTPException(status_code=401, detail="Unauthorized")


@router.api_route("/aggregate", methods=["GET", "POST"], dependencies=[Depends(verify_cron_secret)])
async def aggregate_endpoint(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> dict:
    """
    Returns:
        200: {success, aggregatedSessions, failedSessions, deletedEvents,
              deletedAggregates, message, timestamp}
        401: missing or wrong shared secret
        503: row store unreachable for the candidate scan / retention deletes
    """
    try:
        report = await run_rollup(session_factory)
    except StorageUnavailable as exc:
        logger.error("Rollup aborted: %s", exc)
        raise HTTPException(status_code=503, detail="Aggregation failed: storage unavailable") from exc

    return {
        "success": True,
        **report.model_dump(mode="json", by_alias=True),
        "message": report.message,
    }
