# seminar_registration/models/email_queue.py
"""Email queue model: outbound emails with retry bookkeeping."""

import uuid
from sqlalchemy import (
    Column,
    String,
    DateTime,
    Integer,
    Text,
    Index,
    func,
    text,
)
from seminar_registration.db.base_class import Base


class EmailQueue(Base):
    """
    Durable queue of outbound emails, drained by the email worker job.

    Status: PENDING -> PROCESSING -> SENT | PENDING (retry) | FAILED.
    PENDING rows may also be CANCELLED externally.
    """

    __tablename__ = "email_queue"

    id = Column(
        String,
        primary_key=True,
        default=lambda: f"eml_{uuid.uuid4().hex[:12]}",
    )
    to_email = Column(String(255), nullable=False)
    cc_email = Column(String(255), nullable=True)
    bcc_email = Column(String(255), nullable=True)
    subject = Column(String(500), nullable=False)
    body = Column(Text, nullable=False)
    email_type = Column(String(50), nullable=False)

    # Correlation with the registration workflow
    registration_id = Column(String, nullable=True, index=True)
    slot_id = Column(String, nullable=True)
    username = Column(String(100), nullable=True)

    status = Column(
        String(20),
        nullable=False,
        server_default=text("'PENDING'"),
    )
    retry_count = Column(Integer, nullable=False, server_default="0")
    max_retries = Column(Integer, nullable=False, server_default="3")
    last_error = Column(Text, nullable=True)
    last_error_code = Column(String(50), nullable=True)
    # Set per claimed batch; renewals and outcomes only apply while it still matches.
    claim_token = Column(String(32), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    scheduled_at = Column(DateTime(timezone=True), nullable=False)
    last_attempt_at = Column(DateTime(timezone=True), nullable=True)
    sent_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_email_queue_pending", "status", "scheduled_at"),
        Index("idx_email_queue_processing", "status", "last_attempt_at"),
    )

    def __repr__(self) -> str:
        return f"<EmailQueue {self.id} type={self.email_type} status={self.status} retries={self.retry_count}>"
