from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel

from seminar_registration.constants.statuses import EmailType


class EmailCreate(BaseModel):
    to_email: str
    cc_email: Optional[str] = None
    bcc_email: Optional[str] = None
    subject: str
    body: str
    email_type: EmailType
    registration_id: Optional[str] = None
    slot_id: Optional[str] = None
    username: Optional[str] = None
    # None means "send as soon as the worker runs"
    scheduled_at: Optional[datetime] = None
    max_retries: Optional[int] = None


class EmailQueueRead(BaseModel):
    id: str
    to_email: str
    subject: str
    email_type: str
    status: str
    retry_count: int
    max_retries: int
    last_error: Optional[str] = None
    last_error_code: Optional[str] = None
    registration_id: Optional[str] = None
    scheduled_at: datetime
    last_attempt_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class EmailQueueStats(BaseModel):
    by_status: Dict[str, int]
    total: int
