"""Rounds arq worker: materializes closed-round results and settles pending plays.

Results are also created lazily on first request, so the worker only keeps
settlement prompt; nothing depends on it for correctness.
"""

from __future__ import annotations

import logging
from typing import Any

from arq import cron
from arq.connections import RedisSettings

from pointsbook.config import get_settings
from pointsbook.database import close_db, get_session_factory, init_db
from pointsbook.rounds.clock import get_clock
from pointsbook.rounds.plays import SettlementReport, materialize_closed_rounds

logger = logging.getLogger(__name__)


async def rounds_startup(ctx: dict[str, Any]) -> None:
    """Initialize the database engine on worker startup."""
    settings = get_settings()
    await init_db(settings.database_url)
    ctx["clock"] = get_clock()
    logger.info("Rounds worker started (window=%ds)", settings.round_window_seconds)


async def rounds_shutdown(_ctx: dict[str, Any]) -> None:
    await close_db()
    logger.info("Rounds worker stopped")


async def materialize_rounds(ctx: dict[str, Any]) -> SettlementReport | None:
    """Scheduled arq task: settle the recently closed rounds.

    Idempotent. A failed run is logged and picked up by the next tick.
    """
    settings = get_settings()
    try:
        report = await materialize_closed_rounds(
            get_session_factory(),
            lookback=settings.round_settle_lookback,
            clock=ctx.get("clock") or get_clock(),
            redis=ctx.get("redis"),
        )
    except Exception:
        logger.exception("Round materialization failed")
        return None

    if report.settled_plays:
        logger.info("Materialized %d rounds, settled %d plays", len(report.rounds), report.settled_plays)
    return report


class WorkerSettings:
    """arq worker settings for the rounds scheduler."""

    functions = [materialize_rounds]
    cron_jobs = [
        cron(materialize_rounds, second={0, 30}, run_at_startup=True, unique=True),
    ]
    on_startup = rounds_startup
    on_shutdown = rounds_shutdown
    redis_settings = RedisSettings.from_dsn(get_settings().redis_url or "redis://localhost:6379/0")
    max_jobs = 4
    job_timeout = 60
    allow_abort_jobs = True
