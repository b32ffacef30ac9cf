# seminar_registration/services/notifications.py
"""
Email composition for the registration workflow.

Each method renders one template and puts the result on the email queue in
the caller's transaction; nothing here talks to the mail transport.
"""
import logging
from datetime import datetime
from typing import Optional

from jinja2 import Environment, PackageLoader, select_autoescape
from sqlalchemy.orm import Session

from seminar_registration.constants.statuses import Degree, EmailType
from seminar_registration.core.config import Settings, settings as default_settings
from seminar_registration.models.email_queue import EmailQueue
from seminar_registration.models.registration import Registration
from seminar_registration.models.slot import SeminarSlot
from seminar_registration.models.waiting_list import WaitingListEntry
from seminar_registration.schemas.email_queue import EmailCreate
from seminar_registration.services.email_queue import EmailQueueService
from seminar_registration.utils.time import as_utc

logger = logging.getLogger(__name__)

DEGREE_LABELS = {Degree.PHD.value: "PhD", Degree.MSC.value: "MSc"}

_env = Environment(
    loader=PackageLoader("seminar_registration", "templates"),
    autoescape=select_autoescape(["html"]),
)


def render(template_name: str, **context) -> str:
    return _env.get_template(template_name).render(**context)


def _display_name(person) -> str:
    return person.presenter_name or person.presenter_username


class RegistrationNotifier:
    def __init__(self, email_queue: EmailQueueService, settings: Settings = default_settings):
        self.email_queue = email_queue
        self.settings = settings

    # --- Links ---

    def approval_url(self, token: str, decision: str) -> str:
        return f"{self.settings.PUBLIC_BASE_URL}/api/v1/approvals/{token}/{decision}"

    def offer_url(self, token: str, action: str) -> str:
        return f"{self.settings.PUBLIC_BASE_URL}/api/v1/offers/{token}/{action}"

    # --- Registration emails ---

    def supervisor_approval(
        self,
        db: Session,
        registration: Registration,
        slot: SeminarSlot,
        token: str,
        expires_at: datetime,
    ) -> Optional[EmailQueue]:
        """Approve/decline request to the supervisor. Skipped when no supervisor email is known."""
        if not registration.supervisor_email:
            logger.warning(
                f"Registration {registration.id} has no supervisor email; approval request not sent"
            )
            return None
        body = render(
            "supervisor_approval.html",
            slot=slot,
            supervisor_name=registration.supervisor_name,
            presenter_name=_display_name(registration),
            degree=DEGREE_LABELS.get(registration.degree, registration.degree),
            topic=registration.topic,
            expires_at=as_utc(expires_at),
            approve_url=self.approval_url(token, "approve"),
            decline_url=self.approval_url(token, "decline"),
        )
        return self._enqueue(
            db,
            to_email=registration.supervisor_email,
            subject=f"Approval needed: seminar registration of {_display_name(registration)}",
            body=body,
            email_type=EmailType.SUPERVISOR_APPROVAL,
            registration=registration,
        )

    def registration_received(
        self,
        db: Session,
        registration: Registration,
        slot: SeminarSlot,
        expires_at: datetime,
    ) -> EmailQueue:
        """Tell the presenter their supervisor has been asked."""
        body = render(
            "supervisor_notification.html",
            slot=slot,
            presenter_name=_display_name(registration),
            supervisor_email=registration.supervisor_email,
            expires_at=as_utc(expires_at),
        )
        return self._enqueue(
            db,
            to_email=registration.presenter_email,
            subject="Your seminar registration is awaiting supervisor approval",
            body=body,
            email_type=EmailType.SUPERVISOR_NOTIFICATION,
            registration=registration,
        )

    def approval_outcome(
        self,
        db: Session,
        registration: Registration,
        slot: SeminarSlot,
        approved: bool,
    ) -> EmailQueue:
        body = render(
            "approval_notification.html",
            slot=slot,
            presenter_name=_display_name(registration),
            approved=approved,
        )
        subject = "Seminar registration approved" if approved else "Seminar registration declined"
        return self._enqueue(
            db,
            to_email=registration.presenter_email,
            subject=subject,
            body=body,
            email_type=EmailType.APPROVAL_NOTIFICATION,
            registration=registration,
        )

    def expiration_warning(self, db: Session, registration: Registration, slot: SeminarSlot) -> EmailQueue:
        body = render(
            "expiration_warning.html",
            slot=slot,
            presenter_name=_display_name(registration),
            supervisor_email=registration.supervisor_email,
            expires_at=as_utc(registration.approval_token_expires_at),
        )
        return self._enqueue(
            db,
            to_email=registration.presenter_email,
            subject="Your seminar registration expires soon",
            body=body,
            email_type=EmailType.EXPIRATION_WARNING,
            registration=registration,
        )

    def supervisor_reminder(self, db: Session, registration: Registration, slot: SeminarSlot) -> EmailQueue:
        token = registration.approval_token
        body = render(
            "supervisor_reminder.html",
            slot=slot,
            supervisor_name=registration.supervisor_name,
            presenter_name=_display_name(registration),
            topic=registration.topic,
            expires_at=as_utc(registration.approval_token_expires_at),
            approve_url=self.approval_url(token, "approve"),
            decline_url=self.approval_url(token, "decline"),
        )
        return self._enqueue(
            db,
            to_email=registration.supervisor_email,
            subject=f"Reminder: approval pending for {_display_name(registration)}",
            body=body,
            email_type=EmailType.SUPERVISOR_REMINDER,
            registration=registration,
        )

    # --- Waiting list emails ---

    def promotion_offer(
        self,
        db: Session,
        entry: WaitingListEntry,
        slot: SeminarSlot,
        token: str,
        expires_at: datetime,
    ) -> EmailQueue:
        body = render(
            "promotion_offer.html",
            slot=slot,
            presenter_name=_display_name(entry),
            expires_at=as_utc(expires_at),
            accept_url=self.offer_url(token, "accept"),
            decline_url=self.offer_url(token, "decline"),
        )
        return self.email_queue.enqueue(
            db,
            EmailCreate(
                to_email=entry.presenter_email,
                subject="A seminar seat is available for you",
                body=body,
                email_type=EmailType.STUDENT_CONFIRMATION,
                slot_id=entry.slot_id,
                username=entry.presenter_username,
            ),
        )

    def _enqueue(
        self,
        db: Session,
        *,
        to_email: str,
        subject: str,
        body: str,
        email_type: EmailType,
        registration: Registration,
    ) -> EmailQueue:
        return self.email_queue.enqueue(
            db,
            EmailCreate(
                to_email=to_email,
                subject=subject,
                body=body,
                email_type=email_type,
                registration_id=registration.id,
                slot_id=registration.slot_id,
                username=registration.presenter_username,
            ),
        )
