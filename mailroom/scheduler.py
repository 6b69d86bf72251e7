"""
APScheduler job runner for periodic pipeline maintenance.

Jobs run on the application's event loop (AsyncIOScheduler) so they share the
classification cache and live channels with request handlers.
"""

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from mailroom.config import settings
from mailroom.core.logging import get_logger
from mailroom.pipeline import Pipeline

log = get_logger(__name__)

# Global scheduler instance
_scheduler: AsyncIOScheduler | None = None


async def reclassify_job(pipeline: Pipeline):
    """Scheduled job to retry classification of uncategorized items."""
    log.info("scheduled_job_starting", job="reclassify")
    try:
        stats = await pipeline.reclassifier.process()
        log.info("scheduled_job_complete", job="reclassify", **stats)
    except Exception as e:
        log.error("scheduled_job_error", job="reclassify", error=str(e))


async def sweep_channels_job(pipeline: Pipeline):
    """Scheduled job to discard channels abandoned by their sessions.

    Buffered notifications of a discarded channel are dropped; the items
    themselves stay in the database.
    """
    try:
        discarded = pipeline.connections.sweep_idle()
        if discarded:
            log.info("scheduled_job_complete", job="sweep_channels", discarded=discarded)
    except Exception as e:
        log.error("scheduled_job_error", job="sweep_channels", error=str(e))


async def purge_cache_job(pipeline: Pipeline):
    """Scheduled job to drop expired classification cache entries."""
    try:
        pipeline.cache.purge_expired()
    except Exception as e:
        log.error("scheduled_job_error", job="purge_cache", error=str(e))


def start_scheduler(pipeline: Pipeline) -> AsyncIOScheduler:
    """
    Start the maintenance scheduler on the running event loop.

    Args:
        pipeline: Pipeline whose components the jobs maintain

    Returns:
        The scheduler instance
    """
    global _scheduler

    if _scheduler is not None:
        log.warning("scheduler_already_running")
        return _scheduler

    _scheduler = AsyncIOScheduler()

    if pipeline.db is not None:
        _scheduler.add_job(
            reclassify_job,
            trigger=IntervalTrigger(minutes=settings.scheduler_reclassify_interval_minutes),
            args=[pipeline],
            id="reclassify",
            name="Retry classification of uncategorized mail",
            replace_existing=True,
            max_instances=1,
        )

    _scheduler.add_job(
        sweep_channels_job,
        trigger=IntervalTrigger(minutes=settings.scheduler_sweep_interval_minutes),
        args=[pipeline],
        id="sweep_channels",
        name="Discard idle live channels",
        replace_existing=True,
    )

    # Cache entries live for a day; hourly purging is plenty
    _scheduler.add_job(
        purge_cache_job,
        trigger=IntervalTrigger(hours=1),
        args=[pipeline],
        id="purge_cache",
        name="Purge expired classifications",
        replace_existing=True,
    )

    _scheduler.start()
    log.info(
        "scheduler_started",
        reclassify_interval_minutes=settings.scheduler_reclassify_interval_minutes,
        sweep_interval_minutes=settings.scheduler_sweep_interval_minutes,
    )

    return _scheduler


def stop_scheduler():
    """Stop the scheduler."""
    global _scheduler

    if _scheduler is not None:
        _scheduler.shutdown(wait=False)
        _scheduler = None
        log.info("scheduler_stopped")


def get_scheduler() -> AsyncIOScheduler | None:
    """Get the current scheduler instance."""
    return _scheduler
