# seminar_registration/api/v1/endpoints/email_queue.py
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from seminar_registration.api import deps
from seminar_registration.schemas.email_queue import EmailQueueRead, EmailQueueStats
from seminar_registration.services.container import Services

router = APIRouter(tags=["Email Queue"])


@router.get("/email-queue/stats", response_model=EmailQueueStats)
def email_queue_stats(
    db: Session = Depends(deps.get_db),
    services: Services = Depends(deps.get_services),
):
    """Row counts per status, for operators watching FAILED deliveries."""
    return services.email_queue.stats(db)


@router.get("/registrations/{registration_id}/emails", response_model=List[EmailQueueRead])
def registration_emails(
    registration_id: str,
    db: Session = Depends(deps.get_db),
    services: Services = Depends(deps.get_services),
):
    return services.email_queue.list_for_registration(db, registration_id)
