# seminar_registration/models/waiting_list.py
import uuid
from sqlalchemy import Column, String, ForeignKey, DateTime, Integer, Index, func, UniqueConstraint
from seminar_registration.db.base_class import Base


class WaitingListEntry(Base):
    """
    Ordered backlog of presenters for a full slot.

    Positions within a slot are dense and 1-based. An entry carries a
    promotion token while a seat offer is outstanding.
    """
    __tablename__ = "waiting_list_entries"

    id = Column(String, primary_key=True, default=lambda: f"wle_{uuid.uuid4().hex[:12]}")
    slot_id = Column(String, ForeignKey("seminar_slots.id", ondelete="CASCADE"), nullable=False, index=True)
    presenter_username = Column(String(100), nullable=False, index=True)
    position = Column(Integer, nullable=False)

    # Registration details carried over when the entry is promoted
    degree = Column(String(10), nullable=False)
    presenter_email = Column(String(255), nullable=False)
    presenter_name = Column(String(255), nullable=True)
    topic = Column(String(500), nullable=True)
    supervisor_name = Column(String(255), nullable=True)
    supervisor_email = Column(String(255), nullable=True)

    # Offer details
    promotion_token = Column(String(128), nullable=True, unique=True)
    promotion_token_expires_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("slot_id", "presenter_username", name="uq_waiting_slot_presenter"),
        Index("idx_waiting_slot_position", "slot_id", "position"),
    )

    def __repr__(self) -> str:
        return f"<WaitingListEntry {self.id} slot={self.slot_id} presenter={self.presenter_username} position={self.position}>"


class WaitingListPromotion(Base):
    """
    Audit record of one offer cycle.

    Status: PENDING, ACCEPTED, EXPIRED, DECLINED. The promotion token is kept
    after the entry is gone so repeated clicks get a stable answer.
    """
    __tablename__ = "waiting_list_promotions"

    id = Column(String, primary_key=True, default=lambda: f"wlp_{uuid.uuid4().hex[:12]}")
    slot_id = Column(String, ForeignKey("seminar_slots.id", ondelete="CASCADE"), nullable=False, index=True)
    presenter_username = Column(String(100), nullable=False, index=True)
    promotion_token = Column(String(128), nullable=False, index=True)
    status = Column(String(20), nullable=False, server_default="PENDING")
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    resolved_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_promotions_expiry", "status", "expires_at"),
    )
