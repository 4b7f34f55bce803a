# =============================================================================
# apphost/workers/scheduler.py - Scheduled Task Runtime
# =============================================================================
# Runtime for applications started in cron mode. Every module's scheduler
# artifact registers jobs on the shared APScheduler instance (app.cron):
#
#   def scheduler(app):
#       app.cron.add_job(refresh_prices, "interval", minutes=10, args=[app],
#                        id="catalog.refresh_prices")
#       # next_run_time=None marks a job for manual start: it stays paused
#       app.cron.add_job(rebuild_index, "cron", hour=3, args=[app],
#                        id="catalog.rebuild_index", next_run_time=None)
#
# After all modules registered their jobs the scheduler is started, which
# schedules every job except the ones marked for manual start.
# =============================================================================

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

logger = logging.getLogger(__name__)


def create_scheduler() -> AsyncIOScheduler:
    """
    Create the scheduler shared by all modules of an application.

    Missed runs are coalesced into one and may start up to a minute late.
    """
    return AsyncIOScheduler(
        job_defaults={
            "coalesce": True,
            "misfire_grace_time": 60,
        },
    )


def start_scheduler(scheduler: AsyncIOScheduler) -> list[str]:
    """
    Start the scheduler on the running event loop.

    Returns:
        Ids of the jobs that were scheduled (manual-start jobs excluded)
    """
    scheduler.start()
    scheduled = [job.id for job in scheduler.get_jobs() if job.next_run_time is not None]
    paused = [job.id for job in scheduler.get_jobs() if job.next_run_time is None]
    logger.info(f"Scheduler started with {len(scheduled)} jobs ({len(paused)} waiting for manual start)")
    return scheduled


def stop_scheduler(scheduler: AsyncIOScheduler) -> None:
    """Stop all jobs. Running jobs are not waited for."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
