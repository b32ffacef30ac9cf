# seminar_registration/crud/crud_registration.py
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import and_, func
from sqlalchemy.orm import Session

from seminar_registration.constants.statuses import ApprovalStatus
from seminar_registration.crud.base import CRUDBase
from seminar_registration.models.registration import Registration
from seminar_registration.schemas.registration import RegistrationRequest


class CRUDRegistration(CRUDBase[Registration, RegistrationRequest]):
    """
    CRUD operations for slot registrations.

    Status transitions are compare-and-set: they only touch rows still in the
    expected source state and report whether they did.
    """

    def get_active(
        self,
        db: Session,
        *,
        slot_id: str,
        presenter_username: str,
    ) -> Optional[Registration]:
        """Get the PENDING or APPROVED registration for a slot and presenter"""
        return db.query(self.model).filter(
            and_(
                self.model.slot_id == slot_id,
                self.model.presenter_username == presenter_username,
                self.model.approval_status.in_(ApprovalStatus.active_values()),
            )
        ).first()

    def exists_active_registration(self, db: Session, *, slot_id: str, presenter_username: str) -> bool:
        return self.get_active(db, slot_id=slot_id, presenter_username=presenter_username) is not None

    def has_any_active_registration(
        self,
        db: Session,
        *,
        presenter_username: str,
        exclude_slot_id: Optional[str] = None,
    ) -> bool:
        """Check if the presenter holds a PENDING or APPROVED registration on any slot."""
        query = db.query(self.model.id).filter(
            self.model.presenter_username == presenter_username,
            self.model.approval_status.in_(ApprovalStatus.active_values()),
        )
        if exclude_slot_id:
            query = query.filter(self.model.slot_id != exclude_slot_id)
        return query.first() is not None

    def count_pending_for_presenter(self, db: Session, *, presenter_username: str) -> int:
        return db.query(func.count(self.model.id)).filter(
            self.model.presenter_username == presenter_username,
            self.model.approval_status == ApprovalStatus.PENDING.value,
        ).scalar()

    def get_by_token(self, db: Session, *, token: str) -> Optional[Registration]:
        return db.query(self.model).filter(self.model.approval_token == token).first()

    def get_by_resolved_token(self, db: Session, *, token: str) -> Optional[Registration]:
        return db.query(self.model).filter(self.model.resolved_token == token).first()

    def create_registration(
        self,
        db: Session,
        *,
        slot_id: str,
        presenter_username: str,
        degree: str,
        presenter_email: str,
        approval_status: ApprovalStatus,
        approval_token: Optional[str] = None,
        approval_token_expires_at: Optional[datetime] = None,
        presenter_name: Optional[str] = None,
        topic: Optional[str] = None,
        supervisor_name: Optional[str] = None,
        supervisor_email: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> Registration:
        registration = Registration(
            slot_id=slot_id,
            presenter_username=presenter_username,
            degree=degree,
            presenter_email=presenter_email,
            presenter_name=presenter_name,
            topic=topic,
            supervisor_name=supervisor_name,
            supervisor_email=supervisor_email,
            approval_status=approval_status.value,
            approval_token=approval_token,
            approval_token_expires_at=approval_token_expires_at,
        )
        if created_at is not None:
            registration.created_at = created_at
        db.add(registration)
        db.flush()
        return registration

    def transition(
        self,
        db: Session,
        *,
        registration_id: str,
        from_status: ApprovalStatus,
        to_status: ApprovalStatus,
    ) -> bool:
        """
        Move a registration between statuses and consume its approval token.

        Returns False if the row was no longer in `from_status`.
        """
        current = db.query(self.model).filter(self.model.id == registration_id).first()
        token = current.approval_token if current else None
        updated = db.query(self.model).filter(
            and_(
                self.model.id == registration_id,
                self.model.approval_status == from_status.value,
            )
        ).update(
            {
                self.model.approval_status: to_status.value,
                self.model.approval_token: None,
                self.model.resolved_token: token,
            },
            synchronize_session="fetch",
        )
        return updated == 1

    def get_expired_pending(
        self,
        db: Session,
        *,
        now: datetime,
        slot_id: Optional[str] = None,
    ) -> List[Registration]:
        """PENDING registrations whose approval token has expired"""
        query = db.query(self.model).filter(
            and_(
                self.model.approval_status == ApprovalStatus.PENDING.value,
                self.model.approval_token_expires_at < now,
            )
        )
        if slot_id:
            query = query.filter(self.model.slot_id == slot_id)
        return query.order_by(self.model.approval_token_expires_at.asc()).all()

    def get_pending_expiring_between(
        self,
        db: Session,
        *,
        start: datetime,
        end: datetime,
        slot_id: Optional[str] = None,
    ) -> List[Registration]:
        """PENDING registrations with a live token expiring in [start, end] and no warning sent yet"""
        query = db.query(self.model).filter(
            and_(
                self.model.approval_status == ApprovalStatus.PENDING.value,
                self.model.approval_token.isnot(None),
                self.model.approval_token_expires_at >= start,
                self.model.approval_token_expires_at <= end,
                self.model.expiration_warning_sent_at.is_(None),
            )
        )
        if slot_id:
            query = query.filter(self.model.slot_id == slot_id)
        return query.all()

    def get_pending_for_reminder(
        self,
        db: Session,
        *,
        now: datetime,
        reminded_before: datetime,
        slot_id: Optional[str] = None,
    ) -> List[Registration]:
        """PENDING registrations with a live token not reminded since `reminded_before`"""
        query = db.query(self.model).filter(
            and_(
                self.model.approval_status == ApprovalStatus.PENDING.value,
                self.model.approval_token.isnot(None),
                self.model.approval_token_expires_at > now,
                self.model.supervisor_email.isnot(None),
                self.model.created_at <= reminded_before,
            ),
            (self.model.last_reminder_sent_at.is_(None))
            | (self.model.last_reminder_sent_at <= reminded_before),
        )
        if slot_id:
            query = query.filter(self.model.slot_id == slot_id)
        return query.all()

    def mark_warning_sent(self, db: Session, *, registration_id: str, now: datetime) -> bool:
        """Stamp the expiration warning. False if the registration left PENDING or was already warned."""
        updated = db.query(self.model).filter(
            and_(
                self.model.id == registration_id,
                self.model.approval_status == ApprovalStatus.PENDING.value,
                self.model.approval_token.isnot(None),
                self.model.expiration_warning_sent_at.is_(None),
            )
        ).update(
            {self.model.expiration_warning_sent_at: now},
            synchronize_session="fetch",
        )
        return updated == 1

    def mark_reminded(
        self,
        db: Session,
        *,
        registration_id: str,
        now: datetime,
        reminded_before: datetime,
    ) -> bool:
        """Stamp a supervisor reminder. False if the registration left PENDING or was reminded since."""
        updated = db.query(self.model).filter(
            and_(
                self.model.id == registration_id,
                self.model.approval_status == ApprovalStatus.PENDING.value,
                self.model.approval_token.isnot(None),
            ),
            (self.model.last_reminder_sent_at.is_(None))
            | (self.model.last_reminder_sent_at <= reminded_before),
        ).update(
            {self.model.last_reminder_sent_at: now},
            synchronize_session="fetch",
        )
        return updated == 1

    def get_by_slot(
        self,
        db: Session,
        *,
        slot_id: str,
        status: Optional[str] = None,
    ) -> List[Registration]:
        query = db.query(self.model).filter(self.model.slot_id == slot_id)
        if status:
            query = query.filter(self.model.approval_status == status)
        return query.order_by(self.model.created_at.asc()).all()

    def count_active_by_degree(self, db: Session, *, slot_id: str) -> Dict[str, int]:
        """Number of PENDING/APPROVED registrations per degree for a slot."""
        rows = (
            db.query(self.model.degree, func.count(self.model.id))
            .filter(
                self.model.slot_id == slot_id,
                self.model.approval_status.in_(ApprovalStatus.active_values()),
            )
            .group_by(self.model.degree)
            .all()
        )
        return {degree: count for degree, count in rows}


registration = CRUDRegistration(Registration)
