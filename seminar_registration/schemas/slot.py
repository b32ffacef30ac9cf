from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class SlotCreate(BaseModel):
    title: Optional[str] = None
    starts_at: Optional[datetime] = None
    location: Optional[str] = None
    capacity: int = Field(ge=0)


class Slot(BaseModel):
    id: str
    title: Optional[str] = None
    starts_at: Optional[datetime] = None
    location: Optional[str] = None
    capacity: int

    model_config = {"from_attributes": True}
