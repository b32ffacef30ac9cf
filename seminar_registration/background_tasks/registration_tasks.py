# seminar_registration/background_tasks/registration_tasks.py
"""
Background tasks for the registration approval workflow.

- expire_stale_registrations(): every minute
- send_expiration_warnings(): every 15 minutes
- send_supervisor_reminders(): hourly
"""

from seminar_registration.background_tasks.common import run_job
from seminar_registration.services.container import get_services


def expire_stale_registrations(services=None, **job_options):
    """Background task: PENDING registrations past their token expiry become EXPIRED."""
    ledger = (services or get_services()).ledger
    return run_job("expire_stale_registrations", ledger.expire_stale_registrations, **job_options)


def send_expiration_warnings(services=None, **job_options):
    """Background task: warn presenters whose approval request is about to lapse."""
    ledger = (services or get_services()).ledger
    return run_job("send_expiration_warnings", ledger.send_expiration_warnings, **job_options)


def send_supervisor_reminders(services=None, **job_options):
    """Background task: remind supervisors about approval requests they have not answered."""
    ledger = (services or get_services()).ledger
    return run_job("send_supervisor_reminders", ledger.send_supervisor_reminders, **job_options)
