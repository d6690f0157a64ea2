"""
run.py — one-shot rollup pass for system cron.

Usage (from the project root, same environment as the API):
    python -m persona_pipeline.rollup.run

Crontab example (daily at 03:00 UTC):
    0 3 * * * cd /srv/persona-pipeline && .venv/bin/python -m persona_pipeline.rollup.run
"""
from __future__ import annotations

import asyncio
import logging
import sys

from persona_pipeline.database import AsyncSessionLocal, async_engine
from persona_pipeline.errors import StorageUnavailable
from persona_pipeline.rollup.engine import run_rollup

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(message)s",
    datefmt="%H:%M:%S",
)
log = logging.getLogger(__name__)


async def _run() -> int:
    try:
        report = await run_rollup(AsyncSessionLocal)
    except StorageUnavailable as exc:
        log.error("Rollup aborted: %s", exc)
        return 1
    finally:
        await async_engine.dispose()

    log.info(report.message)
    log.info(
        "deleted_events=%d deleted_aggregates=%d",
        report.deleted_events,
        report.deleted_aggregates,
    )
    # Per-session failures are reported but don't fail the job
    return 0


def main() -> None:
    sys.exit(asyncio.run(_run()))


if __name__ == "__main__":
    main()
