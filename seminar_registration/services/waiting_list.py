# seminar_registration/services/waiting_list.py
"""
Waiting list management for full seminar slots.

Presenters queue in arrival order. When capacity frees up the first entry
without a live offer gets a time-boxed promotion offer (token + email). An
offer reserves the entry's weight until it is accepted, declined or expires.
An offer that runs out removes the entry from the list, so the head of the
queue can never hold a seat hostage by ignoring emails.

Entry points that change a slot (`accept_offer`, `decline_offer`,
`withdraw`, the sweeps) open the slot's single-writer section themselves.
`enqueue`, `offer_next_seat` and `offer_open_seats` expect the caller to
already hold it.
"""
import logging
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from seminar_registration import crud
from seminar_registration.constants.statuses import ApprovalStatus, Degree, PromotionStatus
from seminar_registration.core.config import Settings, settings as default_settings
from seminar_registration.models.registration import Registration
from seminar_registration.models.waiting_list import WaitingListEntry
from seminar_registration.schemas.waiting_list import WaitingListPosition
from seminar_registration.services.capacity import CapacityAccountant
from seminar_registration.services.exceptions import (
    AlreadyWaiting,
    NotWaiting,
    OfferExpired,
    OfferNotFound,
    SlotFull,
)
from seminar_registration.services.notifications import RegistrationNotifier
from seminar_registration.services.policy import check_presenter_may_register
from seminar_registration.utils.slot_lock import slot_section
from seminar_registration.utils.time import as_utc, utcnow
from seminar_registration.utils.tokens import generate_token

logger = logging.getLogger(__name__)


class WaitingListManager:
    def __init__(
        self,
        capacity: CapacityAccountant,
        notifier: RegistrationNotifier,
        settings: Settings = default_settings,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.capacity = capacity
        self.notifier = notifier
        self.settings = settings
        self.clock = clock

    # ==================== Inside a slot section ====================

    def enqueue(
        self,
        db: Session,
        *,
        slot_id: str,
        presenter_username: str,
        degree: Degree,
        presenter_email: str,
        presenter_name: Optional[str] = None,
        topic: Optional[str] = None,
        supervisor_name: Optional[str] = None,
        supervisor_email: Optional[str] = None,
    ) -> WaitingListEntry:
        """Append the presenter at the tail of the slot's list."""
        existing = crud.waiting_list.get_by_slot_and_presenter(
            db, slot_id=slot_id, presenter_username=presenter_username
        )
        if existing:
            raise AlreadyWaiting(
                f"{presenter_username} is already waiting for slot {slot_id} at position {existing.position}"
            )

        entry = crud.waiting_list.create_entry(
            db,
            slot_id=slot_id,
            presenter_username=presenter_username,
            degree=degree.value,
            presenter_email=presenter_email,
            presenter_name=presenter_name,
            topic=topic,
            supervisor_name=supervisor_name,
            supervisor_email=supervisor_email,
            created_at=self.clock(),
        )
        logger.info(f"{presenter_username} joined waiting list for slot {slot_id} at position {entry.position}")
        return entry

    def offer_next_seat(self, db: Session, slot_id: str) -> Optional[WaitingListEntry]:
        """
        Offer a seat to the first entry without a live offer, if its weight fits.

        At most one offer per call. Returns the offered entry or None.
        """
        now = self.clock()
        slot = crud.slot.get(db, slot_id)
        if slot is None:
            return None

        # Lapsed offers leave the list before anyone new is considered.
        self._drop_expired_offers(db, slot_id, now)

        candidate = crud.waiting_list.get_first_available_for_promotion(db, slot_id=slot_id, now=now)
        if candidate is None:
            logger.debug(f"No waiting entries to promote for slot {slot_id}")
            return None

        weight = self.capacity.weight(candidate.degree)
        if not self.capacity.can_accommodate(db, slot, weight, now=now):
            logger.debug(
                f"Slot {slot_id} has no room for {candidate.presenter_username} (weight {weight}); no offer made"
            )
            return None

        token, expires_at = generate_token(now, self.settings.PROMOTION_TOKEN_TTL_HOURS)

        # One active promotion per entry.
        crud.waiting_list_promotion.resolve_pending(
            db,
            slot_id=slot_id,
            presenter_username=candidate.presenter_username,
            status=PromotionStatus.EXPIRED,
            resolved_at=now,
        )
        crud.waiting_list.set_offer(db, entry=candidate, token=token, expires_at=expires_at)
        crud.waiting_list_promotion.create_promotion(
            db,
            slot_id=slot_id,
            presenter_username=candidate.presenter_username,
            token=token,
            expires_at=expires_at,
            created_at=now,
        )
        self.notifier.promotion_offer(db, candidate, slot, token, expires_at)

        logger.info(
            f"Offered seat in slot {slot_id} to {candidate.presenter_username} "
            f"(position {candidate.position}), expires at {expires_at.isoformat()}"
        )
        return candidate

    def offer_open_seats(self, db: Session, slot_id: str) -> int:
        """Keep offering while unreserved capacity fits the next candidate."""
        offered = 0
        while self.offer_next_seat(db, slot_id) is not None:
            offered += 1
        return offered

    # ==================== Offer responses ====================

    def accept_offer(self, db: Session, token: str) -> Registration:
        """
        Turn a live offer into a registration.

        Raises:
            OfferNotFound: unknown token
            OfferExpired: offer ran out, was already answered, or was withdrawn
            SlotFull: the reserved seat is no longer there
        """
        slot_id = self._slot_for_token(db, token)
        expired = False

        with slot_section(db, slot_id) as slot:
            now = self.clock()
            entry = self._live_entry_for_token(db, token)

            if as_utc(entry.promotion_token_expires_at) < now:
                self._expire_offer(db, entry, now)
                self.offer_next_seat(db, slot_id)
                expired = True
            else:
                degree = Degree.parse(entry.degree)
                check_presenter_may_register(
                    db,
                    self.settings,
                    slot_id=slot_id,
                    presenter_username=entry.presenter_username,
                    degree=degree,
                    pending=not self.settings.PROMOTION_AUTO_APPROVE,
                )
                weight = self.capacity.weight(degree)
                if not self.capacity.can_accommodate(
                    db, slot, weight, now=now, exclude_presenter=entry.presenter_username
                ):
                    raise SlotFull(f"Slot {slot_id} no longer has room for this offer")

                registration = self._promote(db, entry, slot, now)

        if expired:
            raise OfferExpired("This offer has expired")
        return registration

    def decline_offer(self, db: Session, token: str) -> None:
        """The presenter turns the seat down and leaves the list."""
        slot_id = self._slot_for_token(db, token)
        expired = False

        with slot_section(db, slot_id):
            now = self.clock()
            entry = self._live_entry_for_token(db, token)

            if as_utc(entry.promotion_token_expires_at) < now:
                self._expire_offer(db, entry, now)
                expired = True
            else:
                crud.waiting_list_promotion.resolve_pending(
                    db,
                    slot_id=slot_id,
                    presenter_username=entry.presenter_username,
                    status=PromotionStatus.DECLINED,
                    resolved_at=now,
                )
                crud.waiting_list.remove_entry(db, entry=entry)
                logger.info(f"{entry.presenter_username} declined the offer for slot {slot_id}")
            self.offer_next_seat(db, slot_id)

        if expired:
            raise OfferExpired("This offer has expired")

    # ==================== Withdrawal ====================

    def withdraw(self, db: Session, slot_id: str, presenter_username: str) -> None:
        """Leave the waiting list. A live offer is declined and the seat re-offered."""
        with slot_section(db, slot_id):
            now = self.clock()
            entry = crud.waiting_list.get_by_slot_and_presenter(
                db, slot_id=slot_id, presenter_username=presenter_username
            )
            if entry is None:
                raise NotWaiting(f"{presenter_username} is not on the waiting list for slot {slot_id}")

            held_offer = entry.promotion_token is not None
            if held_offer:
                live = as_utc(entry.promotion_token_expires_at) >= now
                crud.waiting_list_promotion.resolve_pending(
                    db,
                    slot_id=slot_id,
                    presenter_username=presenter_username,
                    status=PromotionStatus.DECLINED if live else PromotionStatus.EXPIRED,
                    resolved_at=now,
                )
            crud.waiting_list.remove_entry(db, entry=entry)
            logger.info(f"{presenter_username} withdrew from waiting list for slot {slot_id}")

            if held_offer:
                self.offer_next_seat(db, slot_id)

    # ==================== Sweeps ====================

    def expire_stale_offers(self, db: Session) -> int:
        """Remove entries whose offer ran out and re-offer their seats."""
        now = self.clock()
        slot_ids = sorted({entry.slot_id for entry in crud.waiting_list.get_expired_offers(db, now=now)})

        expired = 0
        for slot_id in slot_ids:
            with slot_section(db, slot_id):
                count = self._drop_expired_offers(db, slot_id, self.clock())
                for _ in range(count):
                    self.offer_next_seat(db, slot_id)
            expired += count

        if expired:
            logger.info(f"Expired {expired} waiting list offer(s) across {len(slot_ids)} slot(s)")
        return expired

    def fill_open_seats(self, db: Session) -> int:
        """Offer seats on every slot whose unreserved capacity fits the next waiting presenter."""
        slot_ids = crud.slot.list_ids_with_waiting_entries(db)

        offered = 0
        for slot_id in slot_ids:
            with slot_section(db, slot_id):
                offered += self.offer_open_seats(db, slot_id)

        if offered:
            logger.info(f"Made {offered} promotion offer(s) to fill open seats")
        return offered

    # ==================== Queries ====================

    def get_position(self, db: Session, slot_id: str, presenter_username: str) -> WaitingListPosition:
        entry = crud.waiting_list.get_by_slot_and_presenter(
            db, slot_id=slot_id, presenter_username=presenter_username
        )
        if entry is None:
            raise NotWaiting(f"{presenter_username} is not on the waiting list for slot {slot_id}")
        now = self.clock()
        return WaitingListPosition(
            slot_id=slot_id,
            presenter_username=presenter_username,
            position=entry.position,
            total=crud.waiting_list.count_for_slot(db, slot_id=slot_id),
            has_offer=entry.promotion_token is not None and as_utc(entry.promotion_token_expires_at) >= now,
        )

    def list_entries(self, db: Session, slot_id: str) -> List[WaitingListEntry]:
        return crud.waiting_list.get_slot_entries(db, slot_id=slot_id)

    # ==================== Helpers ====================

    def _slot_for_token(self, db: Session, token: str) -> str:
        promotion = crud.waiting_list_promotion.get_by_token(db, token=token)
        if promotion is None:
            raise OfferNotFound("Unknown offer token")
        return promotion.slot_id

    def _live_entry_for_token(self, db: Session, token: str) -> WaitingListEntry:
        """The entry still holding `token`, or OfferExpired if the offer is no longer open."""
        promotion = crud.waiting_list_promotion.get_by_token(db, token=token)
        entry = crud.waiting_list.get_by_promotion_token(db, token=token)
        if promotion is None or entry is None or promotion.status != PromotionStatus.PENDING.value:
            raise OfferExpired("This offer is no longer available")
        return entry

    def _expire_offer(self, db: Session, entry: WaitingListEntry, now: datetime) -> None:
        crud.waiting_list_promotion.resolve_pending(
            db,
            slot_id=entry.slot_id,
            presenter_username=entry.presenter_username,
            status=PromotionStatus.EXPIRED,
            resolved_at=now,
        )
        crud.waiting_list.remove_entry(db, entry=entry)
        logger.info(f"Offer to {entry.presenter_username} for slot {entry.slot_id} expired; entry removed")

    def _drop_expired_offers(self, db: Session, slot_id: str, now: datetime) -> int:
        entries = crud.waiting_list.get_expired_offers(db, now=now, slot_id=slot_id)
        for entry in entries:
            self._expire_offer(db, entry, now)
        return len(entries)

    def _promote(self, db: Session, entry: WaitingListEntry, slot, now: datetime) -> Registration:
        presenter_username = entry.presenter_username
        details = dict(
            slot_id=entry.slot_id,
            presenter_username=presenter_username,
            degree=entry.degree,
            presenter_email=entry.presenter_email,
            presenter_name=entry.presenter_name,
            topic=entry.topic,
            supervisor_name=entry.supervisor_name,
            supervisor_email=entry.supervisor_email,
        )

        crud.waiting_list_promotion.resolve_pending(
            db,
            slot_id=entry.slot_id,
            presenter_username=presenter_username,
            status=PromotionStatus.ACCEPTED,
            resolved_at=now,
        )
        crud.waiting_list.remove_entry(db, entry=entry)

        if self.settings.PROMOTION_AUTO_APPROVE:
            registration = crud.registration.create_registration(
                db, approval_status=ApprovalStatus.APPROVED, created_at=now, **details
            )
            self.notifier.approval_outcome(db, registration, slot, approved=True)
        else:
            token, expires_at = generate_token(now, self.settings.APPROVAL_TOKEN_TTL_HOURS)
            registration = crud.registration.create_registration(
                db,
                approval_status=ApprovalStatus.PENDING,
                approval_token=token,
                approval_token_expires_at=expires_at,
                created_at=now,
                **details,
            )
            self.notifier.supervisor_approval(db, registration, slot, token, expires_at)
            self.notifier.registration_received(db, registration, slot, expires_at)

        logger.info(
            f"{presenter_username} accepted the offer for slot {entry.slot_id}: "
            f"registration {registration.id} is {registration.approval_status}"
        )
        return registration
