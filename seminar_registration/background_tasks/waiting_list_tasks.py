# seminar_registration/background_tasks/waiting_list_tasks.py
"""
Background tasks for waiting list management.

- expire_stale_offers(): every minute
- fill_open_seats(): every 5 minutes
"""

from seminar_registration.background_tasks.common import run_job
from seminar_registration.services.container import get_services


def expire_stale_offers(services=None, **job_options):
    """
    Background task: drop entries whose promotion offer ran out.

    Each dropped entry frees its reserved seat, which is offered to the next
    presenter in line.
    """
    waiting_list = (services or get_services()).waiting_list
    return run_job("expire_stale_offers", waiting_list.expire_stale_offers, **job_options)


def fill_open_seats(services=None, **job_options):
    """Background task: offer any seat that is free and not already promised."""
    waiting_list = (services or get_services()).waiting_list
    return run_job("fill_open_seats", waiting_list.fill_open_seats, **job_options)
