"""APScheduler wiring for the background sweeps.

Started from the FastAPI lifespan when SCHEDULER_ENABLED is true. Both jobs
are safe to run on several replicas at once: the expiry UPDATE and the
settlement claim use FOR UPDATE SKIP LOCKED and guarded writes.
"""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from config.settings import settings
from src.cm_jobs.sweeps import run_expiry_sweep, run_release_sweep

logger = logging.getLogger(__name__)

EXPIRY_JOB_ID = "trade_offer_expiry_sweep"
RELEASE_JOB_ID = "settlement_release_sweep"


def build_scheduler() -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler(
        job_defaults={
            "coalesce": True,       # collapse missed runs into one
            "max_instances": 1,
            "misfire_grace_time": 60,
        },
        timezone="UTC",
    )
    scheduler.add_job(
        run_expiry_sweep,
        trigger=IntervalTrigger(seconds=settings.EXPIRY_SWEEP_INTERVAL_SECONDS),
        id=EXPIRY_JOB_ID,
        name="Expire overdue trade offers",
        replace_existing=True,
    )
    scheduler.add_job(
        run_release_sweep,
        trigger=IntervalTrigger(seconds=settings.RELEASE_SWEEP_INTERVAL_SECONDS),
        id=RELEASE_JOB_ID,
        name="Release matured settlement holds",
        replace_existing=True,
    )
    logger.info(
        "Scheduled sweeps: expiry every %ds, release every %ds",
        settings.EXPIRY_SWEEP_INTERVAL_SECONDS,
        settings.RELEASE_SWEEP_INTERVAL_SECONDS,
    )
    return scheduler
