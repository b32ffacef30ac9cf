# seminar_registration/scheduler.py
"""
Background task scheduler for the registration workflow.

Uses APScheduler to run periodic background jobs for:
- Expiring stale approval tokens and waiting list offers
- Offering free seats to the waiting list
- Draining the email queue and recovering stuck emails
- Supervisor reminders and expiration warnings

Every trigger is jittered so several instances do not hit the same rows at
the same moment; the Redis job lock (background_tasks/common.py) keeps a
job to one instance at a time.
"""

import logging
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MISSED

from seminar_registration.background_tasks.registration_tasks import (
    expire_stale_registrations,
    send_expiration_warnings,
    send_supervisor_reminders,
)
from seminar_registration.background_tasks.waiting_list_tasks import expire_stale_offers, fill_open_seats
from seminar_registration.background_tasks.email_queue_tasks import process_email_queue, recover_stuck_emails
from seminar_registration.core.config import settings

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler = None

# (job function, interval in seconds, human readable name)
JOBS = [
    (expire_stale_registrations, 60, "Expire Stale Registrations"),
    (expire_stale_offers, 60, "Expire Stale Waiting List Offers"),
    (fill_open_seats, 300, "Offer Free Seats to Waiting List"),
    (process_email_queue, 60, "Send Pending Emails"),
    (recover_stuck_emails, 300, "Recover Stuck Emails"),
    (send_expiration_warnings, 900, "Send Expiration Warnings"),
    (send_supervisor_reminders, 3600, "Send Supervisor Reminders"),
]


def _on_job_error(event):
    """Log scheduler job errors with full context."""
    exc = event.exception
    logger.error(
        "Scheduled job FAILED: job_id=%s error=%s",
        event.job_id, exc,
        exc_info=(type(exc), exc, exc.__traceback__) if exc else None,
    )


def _on_job_missed(event):
    """Log when a scheduled job misses its execution window."""
    logger.warning(
        "Scheduled job MISSED: job_id=%s scheduled_run_time=%s",
        event.job_id,
        event.scheduled_run_time,
    )


def init_scheduler(start: bool = True):
    """
    Initialize the background scheduler with all periodic tasks.

    This is called once when the application starts up.
    """
    global scheduler

    if scheduler is not None:
        logger.warning("Scheduler already initialized")
        return scheduler

    scheduler = BackgroundScheduler(
        timezone="UTC",
        job_defaults={
            'coalesce': True,  # Combine missed executions
            'max_instances': 1,  # Only one instance of each job at a time
            'misfire_grace_time': 60  # Allow 60 seconds grace period
        }
    )

    for func, seconds, name in JOBS:
        scheduler.add_job(
            func=func,
            trigger=IntervalTrigger(seconds=seconds, jitter=settings.SCHEDULER_JITTER_SECONDS),
            id=func.__name__,
            name=name,
            replace_existing=True
        )
        logger.info(f"Scheduled job: {func.__name__} (every {seconds}s)")

    # Listen for job errors and misfires so they don't fail silently
    scheduler.add_listener(_on_job_error, EVENT_JOB_ERROR)
    scheduler.add_listener(_on_job_missed, EVENT_JOB_MISSED)

    if start:
        scheduler.start()
        logger.info("Background scheduler started successfully")

    return scheduler


def shutdown_scheduler():
    """
    Gracefully shutdown the scheduler.

    This is called when the application shuts down.
    """
    global scheduler

    if scheduler is not None:
        if scheduler.running:
            scheduler.shutdown(wait=True)
        logger.info("Background scheduler shutdown complete")
        scheduler = None


def get_scheduler_status():
    """
    Get the current status of all scheduled jobs.

    Returns:
        Dict with the scheduler state and next run time of each job
    """
    if scheduler is None:
        return {"status": "not_initialized", "jobs": []}

    jobs = []
    for job in scheduler.get_jobs():
        next_run_time = getattr(job, "next_run_time", None)
        jobs.append({
            "id": job.id,
            "name": job.name,
            "next_run_time": next_run_time.isoformat() if next_run_time else None,
            "trigger": str(job.trigger)
        })

    return {
        "status": "running" if scheduler.running else "stopped",
        "jobs": jobs
    }
