# seminar_registration/services/capacity.py
"""
Weighted seat accounting for seminar slots.

A PhD presenter takes two units of capacity, an MSc presenter one (see
DEGREE_WEIGHTS). Usage counts PENDING and APPROVED registrations; live
promotion offers additionally reserve their weight until they are answered
or expire.

None of these reads lock anything. Callers that act on the answer hold the
slot's single-writer section (utils/slot_lock.py).
"""
from datetime import datetime
from typing import Callable, Optional, Union

from sqlalchemy.orm import Session

from seminar_registration import crud
from seminar_registration.constants.statuses import Degree
from seminar_registration.core.config import Settings, settings as default_settings
from seminar_registration.models.slot import SeminarSlot
from seminar_registration.schemas.registration import SlotUsage
from seminar_registration.services.exceptions import SlotNotFound
from seminar_registration.utils.time import utcnow


class CapacityAccountant:
    def __init__(self, settings: Settings = default_settings, clock: Callable[[], datetime] = utcnow):
        self.settings = settings
        self.clock = clock

    def weight(self, degree: Union[Degree, str]) -> int:
        if not isinstance(degree, Degree):
            degree = Degree.parse(degree)
        try:
            return self.settings.DEGREE_WEIGHTS[degree.value]
        except KeyError:
            raise ValueError(f"No weight configured for degree {degree.value}")

    def effective_usage(self, db: Session, slot_id: str) -> int:
        """Sum of weights over the slot's PENDING and APPROVED registrations."""
        counts = crud.registration.count_active_by_degree(db, slot_id=slot_id)
        return sum(self.weight(degree) * count for degree, count in counts.items())

    def reserved_by_offers(
        self,
        db: Session,
        slot_id: str,
        now: Optional[datetime] = None,
        exclude_presenter: Optional[str] = None,
    ) -> int:
        """Sum of weights held by unexpired promotion offers."""
        now = now or self.clock()
        entries = crud.waiting_list.get_live_offers(db, slot_id=slot_id, now=now)
        return sum(
            self.weight(entry.degree)
            for entry in entries
            if entry.presenter_username != exclude_presenter
        )

    def available(self, db: Session, slot_id: str) -> int:
        slot = self._get_slot(db, slot_id)
        return max(slot.capacity - self.effective_usage(db, slot_id), 0)

    def is_full(self, db: Session, slot_id: str) -> bool:
        slot = self._get_slot(db, slot_id)
        return self.effective_usage(db, slot_id) >= slot.capacity

    def free_units(
        self,
        db: Session,
        slot: SeminarSlot,
        now: Optional[datetime] = None,
        include_reservations: bool = True,
        exclude_presenter: Optional[str] = None,
    ) -> int:
        """Capacity not taken by registrations (and, by default, not promised to an offer)."""
        used = self.effective_usage(db, slot.id)
        if include_reservations:
            used += self.reserved_by_offers(db, slot.id, now=now, exclude_presenter=exclude_presenter)
        return slot.capacity - used

    def can_accommodate(
        self,
        db: Session,
        slot: SeminarSlot,
        weight: int,
        now: Optional[datetime] = None,
        include_reservations: bool = True,
        exclude_presenter: Optional[str] = None,
    ) -> bool:
        return weight <= self.free_units(
            db,
            slot,
            now=now,
            include_reservations=include_reservations,
            exclude_presenter=exclude_presenter,
        )

    def usage(self, db: Session, slot_id: str) -> SlotUsage:
        slot = self._get_slot(db, slot_id)
        used = self.effective_usage(db, slot_id)
        return SlotUsage(
            slot_id=slot.id,
            capacity=slot.capacity,
            effective_usage=used,
            available=max(slot.capacity - used, 0),
            is_full=used >= slot.capacity,
        )

    def _get_slot(self, db: Session, slot_id: str) -> SeminarSlot:
        slot = crud.slot.get(db, slot_id)
        if slot is None:
            raise SlotNotFound(f"Slot {slot_id} not found")
        return slot
