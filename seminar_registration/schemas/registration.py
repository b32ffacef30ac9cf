from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, EmailStr, field_validator

from seminar_registration.constants.statuses import Degree, Decision


class RegistrationOutcomeStatus(str, Enum):
    REGISTERED = "REGISTERED"
    QUEUED = "QUEUED"


class RegistrationRequest(BaseModel):
    presenter_username: str
    degree: Degree
    presenter_email: EmailStr
    presenter_name: Optional[str] = None
    topic: Optional[str] = None
    supervisor_name: Optional[str] = None
    supervisor_email: Optional[EmailStr] = None
    allow_waiting_list: bool = True

    @field_validator("degree", mode="before")
    @classmethod
    def normalize_degree(cls, value):
        if isinstance(value, str):
            return Degree.parse(value)
        return value


class Registration(BaseModel):
    id: str
    slot_id: str
    presenter_username: str
    degree: str
    approval_status: str
    approval_token_expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class RegistrationOutcome(BaseModel):
    """Result of a registration attempt: a seat (REGISTERED) or a place in line (QUEUED)."""
    status: RegistrationOutcomeStatus
    slot_id: str
    presenter_username: str
    registration_id: Optional[str] = None
    approval_token: Optional[str] = None
    approval_token_expires_at: Optional[datetime] = None
    has_supervisor_email: Optional[bool] = None
    waiting_position: Optional[int] = None


class DecisionRequest(BaseModel):
    decision: Decision


class SlotUsage(BaseModel):
    slot_id: str
    capacity: int
    effective_usage: int
    available: int
    is_full: bool
