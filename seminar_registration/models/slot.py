# seminar_registration/models/slot.py
import uuid
from sqlalchemy import Column, String, DateTime, Integer, func, CheckConstraint
from seminar_registration.db.base_class import Base


class SeminarSlot(Base):
    """
    A scheduled seminar time/location with a fixed seat capacity.

    The slot row doubles as the lock target for every capacity-changing
    operation on the slot (SELECT ... FOR UPDATE).
    """
    __tablename__ = "seminar_slots"

    id = Column(String, primary_key=True, default=lambda: f"slot_{uuid.uuid4().hex[:12]}")
    title = Column(String(255), nullable=True)
    starts_at = Column(DateTime(timezone=True), nullable=True)
    location = Column(String(255), nullable=True)
    capacity = Column(Integer, nullable=False, server_default="3")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint("capacity >= 0", name="check_slot_capacity_positive"),
    )

    def __repr__(self) -> str:
        return f"<SeminarSlot {self.id} capacity={self.capacity}>"
