# seminar_registration/background_tasks/email_queue_tasks.py
"""
Background tasks for the outbound email queue.

- process_email_queue(): every minute
- recover_stuck_emails(): every 5 minutes
"""

from seminar_registration.background_tasks.common import run_job
from seminar_registration.services.container import get_services


def process_email_queue(services=None, **job_options):
    """Background task: send due emails, scheduling retries for failures."""
    email_queue = (services or get_services()).email_queue
    job_options.setdefault("lock_ttl_seconds", email_queue.settings.EMAIL_QUEUE_JOB_LOCK_TTL_SECONDS)
    return run_job("process_email_queue", email_queue.process_batch, **job_options)


def recover_stuck_emails(services=None, **job_options):
    """Background task: hand emails left in PROCESSING by a crashed worker back to PENDING."""
    email_queue = (services or get_services()).email_queue
    return run_job("recover_stuck_emails", email_queue.recover_stuck, **job_options)
