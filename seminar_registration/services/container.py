# seminar_registration/services/container.py
"""
Wires the services together.

The API and the scheduler share one process-wide set built from settings.
Tests build their own with a fake transport and a controllable clock.
"""
from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from typing import Callable, Optional

from seminar_registration.core.config import Settings, settings as default_settings
from seminar_registration.core.email import MailTransport, ResendTransport
from seminar_registration.services.capacity import CapacityAccountant
from seminar_registration.services.email_queue import EmailQueueService
from seminar_registration.services.notifications import RegistrationNotifier
from seminar_registration.services.registration_ledger import RegistrationLedger
from seminar_registration.services.waiting_list import WaitingListManager
from seminar_registration.utils.time import utcnow


@dataclass
class Services:
    email_queue: EmailQueueService
    notifier: RegistrationNotifier
    capacity: CapacityAccountant
    waiting_list: WaitingListManager
    ledger: RegistrationLedger


def build_services(
    settings: Settings = default_settings,
    transport: Optional[MailTransport] = None,
    clock: Callable[[], datetime] = utcnow,
) -> Services:
    email_queue = EmailQueueService(transport or ResendTransport(), settings=settings, clock=clock)
    notifier = RegistrationNotifier(email_queue, settings=settings)
    capacity = CapacityAccountant(settings=settings, clock=clock)
    waiting_list = WaitingListManager(capacity, notifier, settings=settings, clock=clock)
    ledger = RegistrationLedger(
        capacity,
        waiting_list,
        notifier,
        email_queue,
        settings=settings,
        clock=clock,
    )
    return Services(
        email_queue=email_queue,
        notifier=notifier,
        capacity=capacity,
        waiting_list=waiting_list,
        ledger=ledger,
    )


@lru_cache()
def get_services() -> Services:
    return build_services()
