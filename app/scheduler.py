"""
Scheduled tasks for the marketplace.

Runs the escrow release sweep and the offer expiry sweep inside the FastAPI
process. Disabled unless SCHEDULER_ENABLED=true; the /cron/release-funds
endpoint and the CLI drive the same sweeps when an external cron is used
instead.
"""

import logging
from datetime import datetime
from typing import Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.events import EVENT_JOB_EXECUTED, EVENT_JOB_ERROR

from app.core.config import get_settings
from app.database import async_session
from app.services.escrow_service import EscrowService
from app.services.offer_service import OfferService
from app.services.stripe.client import StripeClient

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler: Optional[AsyncIOScheduler] = None


async def release_funds_task():
    """Auto-release held funds past their hold and pay sellers"""
    try:
        logger.info("=== SCHEDULED FUNDS RELEASE STARTING ===")
        async with async_session() as db:
            result = await EscrowService(db, StripeClient()).release_due_funds(source="scheduler")
        logger.info(
            f"Funds release finished: released={result['released']} "
            f"paid_out={result['paid_out']} failed={result['failed']}"
        )
    except Exception as e:
        logger.exception(f"Error in funds release task: {str(e)}")


async def expire_offers_task():
    """Expire pending/countered offers past their window"""
    try:
        async with async_session() as db:
            expired = await OfferService(db).expire_stale_offers()
        logger.info(f"Offer expiry finished: {expired} expired")
    except Exception as e:
        logger.exception(f"Error in offer expiry task: {str(e)}")


def job_listener(event):
    """Listen to job events for logging"""
    if event.exception:
        logger.error(f"Job {event.job_id} crashed: {event.exception}")
    else:
        logger.info(f"Job {event.job_id} executed successfully at {datetime.now()}")


def create_scheduler() -> AsyncIOScheduler:
    """Create and configure the scheduler"""
    global scheduler

    if scheduler is not None:
        return scheduler

    settings = get_settings()
    scheduler = AsyncIOScheduler()
    scheduler.add_listener(job_listener, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)

    if settings.SCHEDULER_ENABLED:
        scheduler.add_job(
            release_funds_task,
            CronTrigger.from_crontab(settings.RELEASE_FUNDS_SCHEDULE),
            id="release_funds",
            name="Release Escrow Funds",
            replace_existing=True,
            max_instances=1,  # payouts must not overlap
            misfire_grace_time=3600
        )
        logger.info(f"Funds release job added with schedule: {settings.RELEASE_FUNDS_SCHEDULE}")

        scheduler.add_job(
            expire_offers_task,
            CronTrigger.from_crontab(settings.OFFER_EXPIRY_SCHEDULE),
            id="expire_offers",
            name="Expire Stale Offers",
            replace_existing=True,
            max_instances=1
        )
        logger.info(f"Offer expiry job added with schedule: {settings.OFFER_EXPIRY_SCHEDULE}")
    else:
        logger.info("Scheduler jobs are disabled. Set SCHEDULER_ENABLED=true to enable")

    return scheduler


async def start_scheduler():
    """Start the scheduler"""
    global scheduler

    if scheduler is None:
        scheduler = create_scheduler()

    if not scheduler.running:
        scheduler.start()
        logger.info("Scheduler started successfully")

        jobs = scheduler.get_jobs()
        if jobs:
            logger.info(f"Active scheduled jobs: {len(jobs)}")
            for job in jobs:
                logger.info(f"  - {job.name}: {job.trigger}")
        else:
            logger.info("No scheduled jobs configured")


async def stop_scheduler():
    """Stop the scheduler gracefully"""
    global scheduler

    if scheduler and scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("Scheduler stopped successfully")


async def get_scheduler_status():
    """Get current scheduler status and job information"""
    global scheduler

    if scheduler is None:
        return {"status": "not_initialized", "jobs": []}

    jobs_info = []
    for job in scheduler.get_jobs():
        jobs_info.append({
            "id": job.id,
            "name": job.name,
            "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
            "trigger": str(job.trigger)
        })

    return {
        "status": "running" if scheduler.running else "stopped",
        "jobs": jobs_info
    }
