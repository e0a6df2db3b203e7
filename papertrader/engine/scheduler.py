"""APScheduler integration for FastAPI.

One interval job per running bot; each job runs a bot cycle.
"""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from papertrader.config import settings
from papertrader.services import bots
from papertrader.utils.constants import INTERVAL_MINUTES

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()

JOB_PREFIX = "bot_"


def _job_id(bot_id: int) -> str:
    return f"{JOB_PREFIX}{bot_id}"


def _interval_minutes(interval: str | None) -> int:
    # Arbitrary "<N>m" intervals are allowed; unknown ones use the default
    if interval and interval.endswith("m") and interval[:-1].isdigit():
        return max(1, int(interval[:-1]))
    minutes = INTERVAL_MINUTES.get(interval or "")
    if minutes is None:
        minutes = INTERVAL_MINUTES[settings.default_schedule_interval]
    return minutes


def add_bot_job(bot_id: int, schedule_interval: str | None = None):
    """Add or replace the scheduler job for a bot."""
    from papertrader.engine.bot_job import run_bot_cycle

    minutes = _interval_minutes(schedule_interval)
    scheduler.add_job(
        run_bot_cycle,
        trigger=IntervalTrigger(minutes=minutes),
        args=[bot_id],
        id=_job_id(bot_id),
        name=f"Bot {bot_id}",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=60,
    )
    logger.info(f"Scheduled bot {bot_id} every {minutes}m")


def remove_bot_job(bot_id: int):
    job_id = _job_id(bot_id)
    if scheduler.get_job(job_id):
        scheduler.remove_job(job_id)
        logger.info(f"Removed job for bot {bot_id}")


def sync_bot_job(bot) -> None:
    """Match the job to the bot's status: scheduled while running, absent otherwise."""
    if bot.status == "running":
        add_bot_job(bot.id, bot.schedule_interval)
    else:
        remove_bot_job(bot.id)


def start_scheduler():
    """Start the scheduler and load all running bots."""
    running = bots.list_bots(status="running")
    for bot in running:
        add_bot_job(bot.id, bot.schedule_interval)
    scheduler.start()
    logger.info(f"Scheduler started with {len(running)} bot job(s)")


def stop_scheduler():
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")


def get_scheduler_status() -> dict:
    """Scheduler state plus the bot each job drives."""
    jobs = []
    for job in scheduler.get_jobs():
        bot_id = int(job.id[len(JOB_PREFIX):]) if job.id.startswith(JOB_PREFIX) else None
        jobs.append({
            "id": job.id,
            "bot_id": bot_id,
            "next_run": job.next_run_time.isoformat() if getattr(job, "next_run_time", None) else None,
            "interval_minutes": int(job.trigger.interval.total_seconds() // 60),
        })
    return {"running": scheduler.running, "job_count": len(jobs), "jobs": jobs}
