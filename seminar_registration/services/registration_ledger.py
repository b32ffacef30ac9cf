# seminar_registration/services/registration_ledger.py
"""
Registration ledger: the per (slot, presenter) approval state machine.

    PENDING --approve--> APPROVED
    PENDING --decline--> DECLINED
    PENDING --token runs out--> EXPIRED

A PENDING registration carries a single-use approval token that is emailed to
the supervisor. Resolving the token consumes it; the consumed value is kept in
`resolved_token` so a second click gets AlreadyResolved instead of
TokenNotFound. Cancelling deletes the row.

Every transition that frees a seat asks the waiting list for the next offer.
"""
import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Union

from sqlalchemy.orm import Session

from seminar_registration import crud
from seminar_registration.constants.statuses import ApprovalStatus, Decision, Degree
from seminar_registration.core.config import Settings, settings as default_settings
from seminar_registration.models.registration import Registration
from seminar_registration.schemas.registration import RegistrationOutcome, RegistrationOutcomeStatus
from seminar_registration.services.capacity import CapacityAccountant
from seminar_registration.services.email_queue import EmailQueueService
from seminar_registration.services.exceptions import (
    AlreadyResolved,
    AlreadyWaiting,
    NotRegistered,
    SlotFull,
    TokenExpired,
    TokenNotFound,
)
from seminar_registration.services.notifications import RegistrationNotifier
from seminar_registration.services.policy import check_presenter_may_register
from seminar_registration.services.waiting_list import WaitingListManager
from seminar_registration.utils.slot_lock import slot_section
from seminar_registration.utils.time import as_utc, utcnow
from seminar_registration.utils.tokens import generate_token

logger = logging.getLogger(__name__)


class RegistrationLedger:
    def __init__(
        self,
        capacity: CapacityAccountant,
        waiting_list: WaitingListManager,
        notifier: RegistrationNotifier,
        email_queue: EmailQueueService,
        settings: Settings = default_settings,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.capacity = capacity
        self.waiting_list = waiting_list
        self.notifier = notifier
        self.email_queue = email_queue
        self.settings = settings
        self.clock = clock

    def register(
        self,
        db: Session,
        *,
        slot_id: str,
        presenter_username: str,
        degree: Union[Degree, str],
        presenter_email: str,
        presenter_name: Optional[str] = None,
        topic: Optional[str] = None,
        supervisor_name: Optional[str] = None,
        supervisor_email: Optional[str] = None,
        allow_waiting_list: bool = True,
    ) -> RegistrationOutcome:
        """
        Take a seat if one fits, otherwise join the waiting list.

        Raises:
            SlotNotFound: unknown slot
            DuplicateRegistration: already PENDING/APPROVED on this slot
            RegistrationLimitReached: presenter-level limits
            AlreadyWaiting: already on this slot's waiting list
            SlotFull: no seat and `allow_waiting_list` is False
        """
        if not isinstance(degree, Degree):
            degree = Degree.parse(degree)
        weight = self.capacity.weight(degree)

        with slot_section(db, slot_id) as slot:
            now = self.clock()
            check_presenter_may_register(
                db,
                self.settings,
                slot_id=slot_id,
                presenter_username=presenter_username,
                degree=degree,
            )

            waiting = crud.waiting_list.get_by_slot_and_presenter(
                db, slot_id=slot_id, presenter_username=presenter_username
            )
            if waiting:
                raise AlreadyWaiting(
                    f"{presenter_username} is already waiting for slot {slot_id} at position {waiting.position}"
                )

            if self.capacity.can_accommodate(db, slot, weight, now=now):
                token, expires_at = generate_token(now, self.settings.APPROVAL_TOKEN_TTL_HOURS)
                registration = crud.registration.create_registration(
                    db,
                    slot_id=slot_id,
                    presenter_username=presenter_username,
                    degree=degree.value,
                    presenter_email=presenter_email,
                    presenter_name=presenter_name,
                    topic=topic,
                    supervisor_name=supervisor_name,
                    supervisor_email=supervisor_email,
                    approval_status=ApprovalStatus.PENDING,
                    approval_token=token,
                    approval_token_expires_at=expires_at,
                    created_at=now,
                )
                self.notifier.supervisor_approval(db, registration, slot, token, expires_at)
                self.notifier.registration_received(db, registration, slot, expires_at)

                logger.info(
                    f"Registered {presenter_username} ({degree.value}) for slot {slot_id}: "
                    f"registration {registration.id} PENDING until {expires_at.isoformat()}"
                )
                return RegistrationOutcome(
                    status=RegistrationOutcomeStatus.REGISTERED,
                    slot_id=slot_id,
                    presenter_username=presenter_username,
                    registration_id=registration.id,
                    approval_token=token,
                    approval_token_expires_at=expires_at,
                    has_supervisor_email=bool(supervisor_email),
                )

            if not allow_waiting_list:
                raise SlotFull(f"Slot {slot_id} is full")

            entry = self.waiting_list.enqueue(
                db,
                slot_id=slot_id,
                presenter_username=presenter_username,
                degree=degree,
                presenter_email=presenter_email,
                presenter_name=presenter_name,
                topic=topic,
                supervisor_name=supervisor_name,
                supervisor_email=supervisor_email,
            )
            return RegistrationOutcome(
                status=RegistrationOutcomeStatus.QUEUED,
                slot_id=slot_id,
                presenter_username=presenter_username,
                has_supervisor_email=bool(supervisor_email),
                waiting_position=entry.position,
            )

    def resolve_by_token(self, db: Session, token: str, decision: Union[Decision, str]) -> Registration:
        """
        Apply a supervisor's decision.

        Raises:
            TokenNotFound: the token was never issued
            TokenExpired: the token ran out (the registration is EXPIRED as a side effect)
            AlreadyResolved: the token was already used
        """
        decision = Decision(decision)
        registration = crud.registration.get_by_token(db, token=token) or crud.registration.get_by_resolved_token(
            db, token=token
        )
        if registration is None:
            raise TokenNotFound("Unknown approval token")
        slot_id = registration.slot_id
        expired = False

        with slot_section(db, slot_id) as slot:
            now = self.clock()
            registration = crud.registration.get_by_token(db, token=token)
            if registration is None:
                resolved = crud.registration.get_by_resolved_token(db, token=token)
                if resolved is not None and resolved.approval_status == ApprovalStatus.EXPIRED.value:
                    raise TokenExpired("This approval link has expired")
                raise AlreadyResolved("This registration has already been resolved")

            if registration.approval_status != ApprovalStatus.PENDING.value:
                raise AlreadyResolved("This registration has already been resolved")

            if as_utc(registration.approval_token_expires_at) < now:
                if crud.registration.transition(
                    db,
                    registration_id=registration.id,
                    from_status=ApprovalStatus.PENDING,
                    to_status=ApprovalStatus.EXPIRED,
                ):
                    self.email_queue.cancel_pending_for_registration(db, registration.id)
                    self.waiting_list.offer_next_seat(db, slot_id)
                    logger.info(f"Registration {registration.id} expired when its token was used")
                expired = True
            else:
                approved = decision == Decision.APPROVE
                to_status = ApprovalStatus.APPROVED if approved else ApprovalStatus.DECLINED
                if not crud.registration.transition(
                    db,
                    registration_id=registration.id,
                    from_status=ApprovalStatus.PENDING,
                    to_status=to_status,
                ):
                    raise AlreadyResolved("This registration has already been resolved")

                self.notifier.approval_outcome(db, registration, slot, approved=approved)
                if not approved:
                    self.waiting_list.offer_next_seat(db, slot_id)
                logger.info(f"Registration {registration.id} {to_status.value} by supervisor")

        if expired:
            raise TokenExpired("This approval link has expired")
        return registration

    def cancel(self, db: Session, slot_id: str, presenter_username: str) -> None:
        """Withdraw a PENDING or APPROVED registration and release its seat."""
        with slot_section(db, slot_id):
            registration = crud.registration.get_active(
                db, slot_id=slot_id, presenter_username=presenter_username
            )
            if registration is None:
                raise NotRegistered(f"{presenter_username} has no active registration for slot {slot_id}")

            registration_id = registration.id
            self.email_queue.cancel_pending_for_registration(db, registration_id)
            db.delete(registration)
            db.flush()
            logger.info(f"Registration {registration_id} for {presenter_username} on slot {slot_id} cancelled")

            self.waiting_list.offer_next_seat(db, slot_id)

    # ==================== Sweeps ====================

    def expire_stale_registrations(self, db: Session) -> int:
        """PENDING registrations past their token expiry become EXPIRED. Safe to re-run."""
        now = self.clock()
        slot_ids = sorted({r.slot_id for r in crud.registration.get_expired_pending(db, now=now)})

        expired = 0
        for slot_id in slot_ids:
            with slot_section(db, slot_id):
                for registration in crud.registration.get_expired_pending(db, now=self.clock(), slot_id=slot_id):
                    if crud.registration.transition(
                        db,
                        registration_id=registration.id,
                        from_status=ApprovalStatus.PENDING,
                        to_status=ApprovalStatus.EXPIRED,
                    ):
                        self.email_queue.cancel_pending_for_registration(db, registration.id)
                        self.waiting_list.offer_next_seat(db, slot_id)
                        expired += 1

        if expired:
            logger.info(f"Expired {expired} stale registration(s)")
        return expired

    def send_expiration_warnings(self, db: Session) -> int:
        """Warn presenters whose registration expires within EXPIRATION_WARNING_HOURS. Once per registration."""
        now = self.clock()
        horizon = now + timedelta(hours=self.settings.EXPIRATION_WARNING_HOURS)
        slot_ids = sorted(
            {r.slot_id for r in crud.registration.get_pending_expiring_between(db, start=now, end=horizon)}
        )

        warned = 0
        for slot_id in slot_ids:
            with slot_section(db, slot_id) as slot:
                for registration in crud.registration.get_pending_expiring_between(
                    db, start=now, end=horizon, slot_id=slot_id
                ):
                    if crud.registration.mark_warning_sent(db, registration_id=registration.id, now=now):
                        self.notifier.expiration_warning(db, registration, slot)
                        warned += 1

        if warned:
            logger.info(f"Queued {warned} expiration warning(s)")
        return warned

    def send_supervisor_reminders(self, db: Session) -> int:
        """Nudge supervisors sitting on a live approval request."""
        now = self.clock()
        reminded_before = now - timedelta(hours=self.settings.SUPERVISOR_REMINDER_INTERVAL_HOURS)
        slot_ids = sorted(
            {
                r.slot_id
                for r in crud.registration.get_pending_for_reminder(db, now=now, reminded_before=reminded_before)
            }
        )

        reminded = 0
        for slot_id in slot_ids:
            with slot_section(db, slot_id) as slot:
                for registration in crud.registration.get_pending_for_reminder(
                    db, now=now, reminded_before=reminded_before, slot_id=slot_id
                ):
                    if crud.registration.mark_reminded(
                        db, registration_id=registration.id, now=now, reminded_before=reminded_before
                    ):
                        self.notifier.supervisor_reminder(db, registration, slot)
                        reminded += 1

        if reminded:
            logger.info(f"Queued {reminded} supervisor reminder(s)")
        return reminded

    # ==================== Queries ====================

    def exists_active_registration(self, db: Session, slot_id: str, presenter_username: str) -> bool:
        return crud.registration.exists_active_registration(
            db, slot_id=slot_id, presenter_username=presenter_username
        )

    def has_any_active_registration(self, db: Session, presenter_username: str) -> bool:
        return crud.registration.has_any_active_registration(db, presenter_username=presenter_username)

    def get_registration(self, db: Session, registration_id: str) -> Registration:
        registration = crud.registration.get(db, registration_id)
        if registration is None:
            raise NotRegistered(f"Registration {registration_id} not found")
        return registration

    def list_slot_registrations(
        self,
        db: Session,
        slot_id: str,
        status: Optional[ApprovalStatus] = None,
    ) -> List[Registration]:
        return crud.registration.get_by_slot(db, slot_id=slot_id, status=status.value if status else None)
