# seminar_registration/models/registration.py
import uuid
from sqlalchemy import (
    Column,
    String,
    DateTime,
    ForeignKey,
    Index,
    func,
    text,
)
from seminar_registration.db.base_class import Base

_ACTIVE_ONLY = text("approval_status IN ('PENDING', 'APPROVED')")


class Registration(Base):
    """
    A presenter's claim on a seminar slot.

    Lifecycle: PENDING -> APPROVED | DECLINED | EXPIRED. DECLINED and EXPIRED
    are terminal and free the seat; a later registration creates a new row.
    """
    __tablename__ = "slot_registrations"

    id = Column(String, primary_key=True, default=lambda: f"reg_{uuid.uuid4().hex[:12]}")
    slot_id = Column(String, ForeignKey("seminar_slots.id", ondelete="CASCADE"), nullable=False, index=True)
    presenter_username = Column(String(100), nullable=False, index=True)

    # Presenter details (users live in another service)
    degree = Column(String(10), nullable=False)
    presenter_email = Column(String(255), nullable=False)
    presenter_name = Column(String(255), nullable=True)
    topic = Column(String(500), nullable=True)
    supervisor_name = Column(String(255), nullable=True)
    supervisor_email = Column(String(255), nullable=True)

    # Approval workflow
    approval_status = Column(String(20), nullable=False, server_default="PENDING")
    approval_token = Column(String(128), nullable=True, unique=True)
    approval_token_expires_at = Column(DateTime(timezone=True), nullable=True)
    resolved_token = Column(String(128), nullable=True, index=True)

    # Reminder bookkeeping
    expiration_warning_sent_at = Column(DateTime(timezone=True), nullable=True)
    last_reminder_sent_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        # At most one PENDING/APPROVED registration per (slot, presenter)
        Index(
            "uq_active_slot_registration",
            "slot_id",
            "presenter_username",
            unique=True,
            postgresql_where=_ACTIVE_ONLY,
            sqlite_where=_ACTIVE_ONLY,
        ),
        Index("idx_registrations_expiry", "approval_status", "approval_token_expires_at"),
    )

    def __repr__(self) -> str:
        return f"<Registration {self.id} slot={self.slot_id} presenter={self.presenter_username} status={self.approval_status}>"
