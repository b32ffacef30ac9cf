# seminar_registration/utils/slot_lock.py
"""
Single-writer section per seminar slot.

Every operation that changes a slot's seat usage or waiting list runs inside
`slot_section`. Two layers apply:

1. A process-local lock picked from a fixed stripe by slot id. SQLite ignores
   FOR UPDATE, so this is what serializes writers in tests and single-process
   deployments. Two slots may share a stripe, which only costs parallelism.
2. SELECT ... FOR UPDATE on the slot row, which serializes writers across
   processes on PostgreSQL.

The section commits on normal exit and rolls back on any exception. Sections
do not nest: callers enter with no unflushed changes.
"""

import threading
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.orm import Session

from seminar_registration import crud
from seminar_registration.models.slot import SeminarSlot
from seminar_registration.services.exceptions import SlotNotFound

LOCK_STRIPES = 64
_slot_locks = tuple(threading.Lock() for _ in range(LOCK_STRIPES))


def _lock_for(slot_id: str) -> threading.Lock:
    return _slot_locks[hash(slot_id) % LOCK_STRIPES]


@contextmanager
def slot_section(db: Session, slot_id: str) -> Iterator[SeminarSlot]:
    """
    Run the body as the only writer of `slot_id`.

    Raises:
        SlotNotFound: the slot does not exist
    """
    lock = _lock_for(slot_id)
    with lock:
        # Rows read before we held the lock may be stale.
        db.expire_all()
        try:
            slot = crud.slot.get_for_update(db, slot_id)
            if slot is None:
                raise SlotNotFound(f"Slot {slot_id} not found")
            yield slot
            db.commit()
        except Exception:
            db.rollback()
            raise
