# seminar_registration/crud/crud_slot.py
from typing import List, Optional

from sqlalchemy.orm import Session

from seminar_registration.crud.base import CRUDBase
from seminar_registration.models.slot import SeminarSlot
from seminar_registration.models.waiting_list import WaitingListEntry
from seminar_registration.schemas.slot import SlotCreate


class CRUDSeminarSlot(CRUDBase[SeminarSlot, SlotCreate]):
    """CRUD operations for seminar slots."""

    def get_for_update(self, db: Session, slot_id: str) -> Optional[SeminarSlot]:
        """
        Load the slot row with SELECT ... FOR UPDATE.

        Concurrent writers on the same slot block here until the holder
        commits or rolls back.
        """
        return (
            db.query(SeminarSlot)
            .filter(SeminarSlot.id == slot_id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    def list_ids_with_waiting_entries(self, db: Session) -> List[str]:
        """Slots that have at least one presenter waiting."""
        rows = db.query(WaitingListEntry.slot_id).distinct().all()
        return [slot_id for (slot_id,) in rows]


slot = CRUDSeminarSlot(SeminarSlot)
