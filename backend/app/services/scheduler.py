"""Background scheduler: runs the recurring invoice pass once a day.

Uses FastAPI's lifespan context to start/stop an asyncio background loop
that sleeps until the configured wall-clock time (UTC) and then runs one
pass.  The loop keeps firing whatever the previous pass did.

Usage:
    In main.py:

        from app.services.scheduler import lifespan
        app = FastAPI(lifespan=lifespan, ...)

Configuration (via .env):
    RECURRING_ENABLED=true
    RECURRING_HOUR=0              (00:00 UTC)
    RECURRING_MINUTE=0
    RECURRING_DISTRIBUTED_LOCK=true
    RECURRING_LOCK_TTL_SECONDS=3600
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

from fastapi import FastAPI

from app.config import settings
from app.database import async_session
from app.services.dispatcher import InvoiceDispatcher
from app.services.email import EmailSender
from app.services.recurring import RecurringRunSummary, process_recurring_invoices
from app.services.storage import InvoiceStore
from app.utils.locks import PassLock
from app.utils.redis_client import close_redis

logger = logging.getLogger("billflow.scheduler")

pass_lock = PassLock(
    ttl_seconds=settings.recurring_lock_ttl_seconds,
    distributed=settings.recurring_distributed_lock,
)


def next_run_after(now: datetime, hour: int, minute: int = 0) -> datetime:
    """First HH:MM strictly after ``now`` (today or tomorrow)."""
    next_run = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if next_run <= now:
        next_run += timedelta(days=1)
    return next_run


async def run_recurring_tick(lock: PassLock = pass_lock) -> RecurringRunSummary | None:
    """One scheduler tick.  Never raises; returns None if the pass didn't run."""
    try:
        async with lock.hold() as acquired:
            if not acquired:
                logger.warning("Recurring pass already running, skipping this tick")
                return None

            store = InvoiceStore(async_session)
            dispatcher = InvoiceDispatcher(store, EmailSender())
            # Invoice dates are naive UTC
            now = datetime.now(timezone.utc).replace(tzinfo=None)
            return await process_recurring_invoices(store, dispatcher, now=now)
    except Exception:
        logger.exception("Unhandled error in recurring invoice pass")
        return None


async def _scheduler_loop() -> None:
    """Sleep until the next run time, run a tick, repeat."""
    while True:
        now = datetime.now(timezone.utc)
        next_run = next_run_after(
            now, settings.recurring_hour, settings.recurring_minute
        )
        wait_seconds = (next_run - now).total_seconds()
        logger.info(
            "Next recurring invoice run at %s (in %.0f seconds)",
            next_run.isoformat(),
            wait_seconds,
        )

        await asyncio.sleep(wait_seconds)
        await run_recurring_tick()

        # Small buffer to avoid running twice in the same minute
        await asyncio.sleep(60)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan: start the scheduler on startup, cancel on shutdown."""
    task = None
    if settings.recurring_enabled:
        task = asyncio.create_task(_scheduler_loop())
        logger.info("Recurring invoice scheduler started")
    else:
        logger.info("Recurring invoice scheduler disabled")
    try:
        yield
    finally:
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            logger.info("Recurring invoice scheduler stopped")
        await close_redis()
