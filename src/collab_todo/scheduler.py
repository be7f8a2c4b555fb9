from __future__ import annotations

import logging
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler

from .services import Services

logger = logging.getLogger(__name__)

PURGE_JOB_ID = "purge-expired-tasks"


def run_purge(services: Services) -> int:
    """One sweep of the expired-tombstone purge. Failures are logged, never raised into the scheduler."""
    try:
        return services.tasks.purge_expired()
    except Exception:
        logger.exception("Expired task purge failed")
        return 0


# PUBLIC_INTERFACE
def start_purge_scheduler(services: Services, interval_seconds: int) -> Optional[BackgroundScheduler]:
    """
    Start a background job that permanently removes tasks whose undo window
    has elapsed. Returns None when interval_seconds is 0 (sweep disabled).
    """
    if interval_seconds <= 0:
        logger.info("Expired task purge disabled")
        return None
    scheduler = BackgroundScheduler()
    scheduler.add_job(
        run_purge,
        "interval",
        seconds=interval_seconds,
        args=[services],
        id=PURGE_JOB_ID,
        coalesce=True,
        max_instances=1,
    )
    scheduler.start()
    logger.info("Scheduler started - purging expired tasks every %s seconds", interval_seconds)
    return scheduler
