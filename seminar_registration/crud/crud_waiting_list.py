# seminar_registration/crud/crud_waiting_list.py
from typing import Optional, List
from sqlalchemy.orm import Session
from sqlalchemy import and_, or_, func
from datetime import datetime

from seminar_registration.constants.statuses import PromotionStatus
from seminar_registration.crud.base import CRUDBase
from seminar_registration.models.waiting_list import WaitingListEntry, WaitingListPromotion
from seminar_registration.schemas.waiting_list import (
    WaitingListEntry as WaitingListEntrySchema,
    WaitingListPromotion as WaitingListPromotionSchema,
)


class CRUDWaitingList(CRUDBase[WaitingListEntry, WaitingListEntrySchema]):
    """
    CRUD operations for waiting list entries.

    Positions stay dense: an entry is always added at max + 1 and removing one
    shifts every later entry of the slot down by one.
    """

    def get_by_slot_and_presenter(
        self,
        db: Session,
        *,
        slot_id: str,
        presenter_username: str
    ) -> Optional[WaitingListEntry]:
        """Get waiting list entry for specific slot and presenter"""
        return db.query(self.model).filter(
            and_(
                self.model.slot_id == slot_id,
                self.model.presenter_username == presenter_username
            )
        ).first()

    def get_by_promotion_token(self, db: Session, *, token: str) -> Optional[WaitingListEntry]:
        return db.query(self.model).filter(self.model.promotion_token == token).first()

    def get_slot_entries(self, db: Session, *, slot_id: str) -> List[WaitingListEntry]:
        """All entries of a slot in queue order"""
        return db.query(self.model).filter(
            self.model.slot_id == slot_id
        ).order_by(self.model.position.asc()).all()

    def count_for_slot(self, db: Session, *, slot_id: str) -> int:
        return db.query(func.count(self.model.id)).filter(self.model.slot_id == slot_id).scalar()

    def max_position(self, db: Session, *, slot_id: str) -> int:
        return db.query(func.max(self.model.position)).filter(self.model.slot_id == slot_id).scalar() or 0

    def create_entry(
        self,
        db: Session,
        *,
        slot_id: str,
        presenter_username: str,
        degree: str,
        presenter_email: str,
        presenter_name: Optional[str] = None,
        topic: Optional[str] = None,
        supervisor_name: Optional[str] = None,
        supervisor_email: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> WaitingListEntry:
        """Append a new entry at the tail of the slot's list"""
        entry = WaitingListEntry(
            slot_id=slot_id,
            presenter_username=presenter_username,
            degree=degree,
            presenter_email=presenter_email,
            presenter_name=presenter_name,
            topic=topic,
            supervisor_name=supervisor_name,
            supervisor_email=supervisor_email,
            position=self.max_position(db, slot_id=slot_id) + 1,
        )
        if created_at is not None:
            entry.created_at = created_at
        db.add(entry)
        db.flush()
        return entry

    def remove_entry(self, db: Session, *, entry: WaitingListEntry) -> None:
        """Delete an entry and close the gap it leaves"""
        slot_id, position = entry.slot_id, entry.position
        db.delete(entry)
        db.flush()
        self.decrement_positions_after(db, slot_id=slot_id, position=position)

    def decrement_positions_after(self, db: Session, *, slot_id: str, position: int) -> int:
        return db.query(self.model).filter(
            and_(
                self.model.slot_id == slot_id,
                self.model.position > position
            )
        ).update(
            {self.model.position: self.model.position - 1},
            synchronize_session="fetch",
        )

    def get_first_available_for_promotion(
        self,
        db: Session,
        *,
        slot_id: str,
        now: datetime
    ) -> Optional[WaitingListEntry]:
        """First entry in queue order with no live offer"""
        return db.query(self.model).filter(
            self.model.slot_id == slot_id,
            or_(
                self.model.promotion_token.is_(None),
                self.model.promotion_token_expires_at < now
            )
        ).order_by(self.model.position.asc()).first()

    def get_live_offers(self, db: Session, *, slot_id: str, now: datetime) -> List[WaitingListEntry]:
        """Entries of a slot currently holding an unexpired offer"""
        return db.query(self.model).filter(
            and_(
                self.model.slot_id == slot_id,
                self.model.promotion_token.isnot(None),
                self.model.promotion_token_expires_at >= now
            )
        ).all()

    def get_expired_offers(
        self,
        db: Session,
        *,
        now: datetime,
        slot_id: Optional[str] = None
    ) -> List[WaitingListEntry]:
        """Entries whose offer expired without an answer"""
        query = db.query(self.model).filter(
            and_(
                self.model.promotion_token.isnot(None),
                self.model.promotion_token_expires_at < now
            )
        )
        if slot_id:
            query = query.filter(self.model.slot_id == slot_id)
        return query.order_by(self.model.slot_id, self.model.position).all()

    def set_offer(
        self,
        db: Session,
        *,
        entry: WaitingListEntry,
        token: str,
        expires_at: datetime
    ) -> WaitingListEntry:
        entry.promotion_token = token
        entry.promotion_token_expires_at = expires_at
        db.flush()
        return entry


class CRUDWaitingListPromotion(CRUDBase[WaitingListPromotion, WaitingListPromotionSchema]):
    """
    CRUD operations for promotion offer audit records.
    """

    def create_promotion(
        self,
        db: Session,
        *,
        slot_id: str,
        presenter_username: str,
        token: str,
        expires_at: datetime,
        created_at: Optional[datetime] = None,
    ) -> WaitingListPromotion:
        promotion = WaitingListPromotion(
            slot_id=slot_id,
            presenter_username=presenter_username,
            promotion_token=token,
            status=PromotionStatus.PENDING.value,
            expires_at=expires_at,
        )
        if created_at is not None:
            promotion.created_at = created_at
        db.add(promotion)
        db.flush()
        return promotion

    def get_by_token(self, db: Session, *, token: str) -> Optional[WaitingListPromotion]:
        return db.query(self.model).filter(
            self.model.promotion_token == token
        ).order_by(self.model.created_at.desc()).first()

    def get_for_presenter(
        self,
        db: Session,
        *,
        slot_id: str,
        presenter_username: str
    ) -> List[WaitingListPromotion]:
        """Offer history for a presenter on a slot, newest first"""
        return db.query(self.model).filter(
            and_(
                self.model.slot_id == slot_id,
                self.model.presenter_username == presenter_username
            )
        ).order_by(self.model.created_at.desc()).all()

    def resolve_pending(
        self,
        db: Session,
        *,
        slot_id: str,
        presenter_username: str,
        status: PromotionStatus,
        resolved_at: datetime
    ) -> int:
        """Close every PENDING promotion of a presenter on a slot. Returns rows updated."""
        return db.query(self.model).filter(
            and_(
                self.model.slot_id == slot_id,
                self.model.presenter_username == presenter_username,
                self.model.status == PromotionStatus.PENDING.value
            )
        ).update(
            {self.model.status: status.value, self.model.resolved_at: resolved_at},
            synchronize_session="fetch",
        )


# Instantiate CRUD objects
waiting_list = CRUDWaitingList(WaitingListEntry)
waiting_list_promotion = CRUDWaitingListPromotion(WaitingListPromotion)
