"""
scheduler.py — Background jobs
Runs the overdue-loan sweep once a day on the app's event loop.
"""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from library_backend.config import OVERDUE_CHECK_HOUR, OVERDUE_CHECK_MINUTE, SCHEDULER_TIMEZONE
from library_backend.services.overdue_service import OverdueService

logger = logging.getLogger(__name__)

OVERDUE_JOB_ID = "check_overdue_loans"


def build_scheduler(overdue_service: OverdueService,
                    hour: int = OVERDUE_CHECK_HOUR,
                    minute: int = OVERDUE_CHECK_MINUTE,
                    timezone: str = SCHEDULER_TIMEZONE) -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler(timezone=timezone)
    scheduler.add_job(
        overdue_service.check_overdue_loans,
        CronTrigger(hour=hour, minute=minute, timezone=timezone),
        id=OVERDUE_JOB_ID,
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    logger.info(f"Overdue check scheduled daily at {hour:02d}:{minute:02d} ({timezone})")
    return scheduler
