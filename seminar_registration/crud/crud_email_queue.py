# seminar_registration/crud/crud_email_queue.py
"""CRUD operations for the email queue."""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import and_, func
from sqlalchemy.orm import Session

from seminar_registration.constants.statuses import EmailStatus
from seminar_registration.crud.base import CRUDBase
from seminar_registration.models.email_queue import EmailQueue
from seminar_registration.schemas.email_queue import EmailCreate

logger = logging.getLogger(__name__)


class CRUDEmailQueue(CRUDBase[EmailQueue, EmailCreate]):
    """
    CRUD operations for queued emails.

    Every status change is a conditional UPDATE on the expected source status,
    so two workers (or a worker and a sweep) never both win the same row.
    """

    def enqueue(
        self,
        db: Session,
        *,
        obj_in: EmailCreate,
        now: datetime,
        default_max_retries: int = 3,
    ) -> EmailQueue:
        """Insert a PENDING row; scheduled_at defaults to now."""
        obj_data = obj_in.model_dump(exclude={"scheduled_at", "max_retries"})
        # Convert enum to string value
        if hasattr(obj_data.get("email_type"), "value"):
            obj_data["email_type"] = obj_data["email_type"].value

        db_obj = self.model(
            **obj_data,
            status=EmailStatus.PENDING.value,
            retry_count=0,
            max_retries=obj_in.max_retries if obj_in.max_retries is not None else default_max_retries,
            created_at=now,
            scheduled_at=obj_in.scheduled_at or now,
        )
        db.add(db_obj)
        db.flush()
        return db_obj

    def get_claimable_ids(
        self,
        db: Session,
        *,
        now: datetime,
        limit: int,
    ) -> List[str]:
        """
        IDs of PENDING rows due for sending, oldest schedule first.

        SKIP LOCKED lets concurrent workers pick disjoint batches on databases
        that support it; elsewhere the per-row claim below still arbitrates.
        """
        rows = (
            db.query(self.model.id)
            .filter(
                and_(
                    self.model.status == EmailStatus.PENDING.value,
                    self.model.scheduled_at <= now,
                )
            )
            .order_by(self.model.scheduled_at.asc(), self.model.created_at.asc())
            .limit(limit)
            .with_for_update(skip_locked=True)
            .all()
        )
        return [row_id for (row_id,) in rows]

    def claim(self, db: Session, *, email_id: str, now: datetime, claim_token: str) -> bool:
        """PENDING -> PROCESSING. Returns False if another worker got there first."""
        return self._transition(
            db,
            email_id=email_id,
            from_status=EmailStatus.PENDING,
            values={
                self.model.status: EmailStatus.PROCESSING.value,
                self.model.last_attempt_at: now,
                self.model.claim_token: claim_token,
            },
        )

    def renew_claim(self, db: Session, *, email_id: str, now: datetime, claim_token: str) -> bool:
        """
        Refresh last_attempt_at on a row this claim still holds, just before a send.

        Returns False if the stuck-row sweep handed the row back in the
        meantime, whether or not another worker has claimed it since.
        """
        return self._transition(
            db,
            email_id=email_id,
            from_status=EmailStatus.PROCESSING,
            claim_token=claim_token,
            values={self.model.last_attempt_at: now},
        )

    def mark_as_sent(
        self,
        db: Session,
        *,
        email_id: str,
        now: datetime,
        claim_token: Optional[str] = None,
    ) -> bool:
        return self._transition(
            db,
            email_id=email_id,
            from_status=EmailStatus.PROCESSING,
            claim_token=claim_token,
            values={
                self.model.status: EmailStatus.SENT.value,
                self.model.sent_at: now,
                self.model.last_error: None,
                self.model.last_error_code: None,
                self.model.claim_token: None,
            },
        )

    def mark_for_retry(
        self,
        db: Session,
        *,
        email_id: str,
        retry_count: int,
        scheduled_at: datetime,
        error_message: str,
        error_code: Optional[str],
        claim_token: Optional[str] = None,
    ) -> bool:
        return self._transition(
            db,
            email_id=email_id,
            from_status=EmailStatus.PROCESSING,
            claim_token=claim_token,
            values={
                self.model.status: EmailStatus.PENDING.value,
                self.model.retry_count: retry_count,
                self.model.scheduled_at: scheduled_at,
                self.model.last_error: error_message,
                self.model.last_error_code: error_code,
                self.model.claim_token: None,
            },
        )

    def mark_as_failed(
        self,
        db: Session,
        *,
        email_id: str,
        retry_count: int,
        error_message: str,
        error_code: Optional[str],
        claim_token: Optional[str] = None,
    ) -> bool:
        return self._transition(
            db,
            email_id=email_id,
            from_status=EmailStatus.PROCESSING,
            claim_token=claim_token,
            values={
                self.model.status: EmailStatus.FAILED.value,
                self.model.retry_count: retry_count,
                self.model.last_error: error_message,
                self.model.last_error_code: error_code,
                self.model.claim_token: None,
            },
        )

    def reset_stuck_processing(self, db: Session, *, cutoff: datetime) -> int:
        """PROCESSING rows whose last attempt started before `cutoff` go back to PENDING."""
        return db.query(self.model).filter(
            and_(
                self.model.status == EmailStatus.PROCESSING.value,
                self.model.last_attempt_at < cutoff,
            )
        ).update(
            {
                self.model.status: EmailStatus.PENDING.value,
                self.model.claim_token: None,
            },
            synchronize_session="fetch",
        )

    def cancel_pending_for_registration(self, db: Session, *, registration_id: str) -> int:
        return db.query(self.model).filter(
            and_(
                self.model.registration_id == registration_id,
                self.model.status == EmailStatus.PENDING.value,
            )
        ).update(
            {self.model.status: EmailStatus.CANCELLED.value},
            synchronize_session="fetch",
        )

    def get_by_registration(self, db: Session, *, registration_id: str) -> List[EmailQueue]:
        return (
            db.query(self.model)
            .filter(self.model.registration_id == registration_id)
            .order_by(self.model.created_at.desc())
            .all()
        )

    def count_by_status(self, db: Session) -> Dict[str, int]:
        results = (
            db.query(self.model.status, func.count(self.model.id))
            .group_by(self.model.status)
            .all()
        )
        stats = {status.value: 0 for status in EmailStatus}
        for status, count in results:
            stats[status] = count
        return stats

    def _transition(
        self,
        db: Session,
        *,
        email_id: str,
        from_status: EmailStatus,
        values: dict,
        claim_token: Optional[str] = None,
    ) -> bool:
        conditions = [
            self.model.id == email_id,
            self.model.status == from_status.value,
        ]
        if claim_token is not None:
            conditions.append(self.model.claim_token == claim_token)
        updated = db.query(self.model).filter(and_(*conditions)).update(values, synchronize_session="fetch")
        if not updated:
            logger.debug(f"Email {email_id} was not {from_status.value}, transition skipped")
        return updated == 1


# Singleton instance
email_queue = CRUDEmailQueue(EmailQueue)
