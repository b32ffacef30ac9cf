from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class WaitingListEntry(BaseModel):
    id: str
    slot_id: str
    presenter_username: str
    position: int
    degree: str
    promotion_token_expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class WaitingListPosition(BaseModel):
    slot_id: str
    presenter_username: str
    position: int
    total: int
    has_offer: bool


class WaitingListPromotion(BaseModel):
    id: str
    slot_id: str
    presenter_username: str
    status: str
    expires_at: datetime
    resolved_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
