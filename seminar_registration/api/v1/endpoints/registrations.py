# seminar_registration/api/v1/endpoints/registrations.py
"""
Slot, registration and supervisor approval endpoints.

Presenter identity arrives in the request body; authentication happens in
front of this service.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session

from seminar_registration import crud
from seminar_registration.api import deps
from seminar_registration.constants.statuses import ApprovalStatus, Decision
from seminar_registration.schemas.registration import (
    DecisionRequest,
    Registration,
    RegistrationOutcome,
    RegistrationRequest,
    SlotUsage,
)
from seminar_registration.schemas.slot import Slot, SlotCreate
from seminar_registration.services.container import Services

router = APIRouter(tags=["Registrations"])
logger = logging.getLogger(__name__)


# ==================== Slots ====================

@router.post("/slots", response_model=Slot, status_code=status.HTTP_201_CREATED)
def create_slot(slot_in: SlotCreate, db: Session = Depends(deps.get_db)):
    """Create a seminar slot with a fixed seat capacity."""
    slot = crud.slot.create(db, obj_in=slot_in)
    db.commit()
    db.refresh(slot)
    logger.info(f"Created slot {slot.id} with capacity {slot.capacity}")
    return slot


@router.get("/slots/{slot_id}/usage", response_model=SlotUsage)
def get_slot_usage(
    slot_id: str,
    db: Session = Depends(deps.get_db),
    services: Services = Depends(deps.get_services),
):
    """Weighted seat usage of a slot (PhD = 2, MSc = 1)."""
    return services.capacity.usage(db, slot_id)


# ==================== Registrations ====================

@router.post(
    "/slots/{slot_id}/registrations",
    response_model=RegistrationOutcome,
    response_model_exclude={"approval_token"},
    status_code=status.HTTP_201_CREATED,
)
def register_for_slot(
    slot_id: str,
    request: RegistrationRequest,
    db: Session = Depends(deps.get_db),
    services: Services = Depends(deps.get_services),
):
    """
    Register a presenter for a slot.

    Returns REGISTERED (PENDING supervisor approval) when a seat fits, or
    QUEUED with the waiting list position when the slot is full.

    **Errors**:
    - 404: Slot not found
    - 409: Already registered, already waiting, limit reached, or full with
      `allow_waiting_list` false
    """
    return services.ledger.register(
        db,
        slot_id=slot_id,
        presenter_username=request.presenter_username,
        degree=request.degree,
        presenter_email=request.presenter_email,
        presenter_name=request.presenter_name,
        topic=request.topic,
        supervisor_name=request.supervisor_name,
        supervisor_email=request.supervisor_email,
        allow_waiting_list=request.allow_waiting_list,
    )


@router.get("/slots/{slot_id}/registrations", response_model=List[Registration])
def list_slot_registrations(
    slot_id: str,
    approval_status: Optional[ApprovalStatus] = None,
    db: Session = Depends(deps.get_db),
    services: Services = Depends(deps.get_services),
):
    return services.ledger.list_slot_registrations(db, slot_id, status=approval_status)


@router.delete("/slots/{slot_id}/registrations/{presenter_username}", status_code=status.HTTP_204_NO_CONTENT)
def cancel_registration(
    slot_id: str,
    presenter_username: str,
    db: Session = Depends(deps.get_db),
    services: Services = Depends(deps.get_services),
):
    """Cancel a PENDING or APPROVED registration; the seat is offered to the waiting list."""
    services.ledger.cancel(db, slot_id, presenter_username)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/registrations/{registration_id}", response_model=Registration)
def get_registration(
    registration_id: str,
    db: Session = Depends(deps.get_db),
    services: Services = Depends(deps.get_services),
):
    return services.ledger.get_registration(db, registration_id)


# ==================== Supervisor approval ====================

@router.post("/approvals/{token}", response_model=Registration)
def resolve_approval(
    token: str,
    request: DecisionRequest,
    db: Session = Depends(deps.get_db),
    services: Services = Depends(deps.get_services),
):
    """
    Apply a supervisor decision.

    **Errors**:
    - 404: Unknown token
    - 409: Token already used
    - 410: Token expired
    """
    return services.ledger.resolve_by_token(db, token, request.decision)


@router.get("/approvals/{token}/{decision}", response_model=Registration)
def resolve_approval_link(
    token: str,
    decision: str,
    db: Session = Depends(deps.get_db),
    services: Services = Depends(deps.get_services),
):
    """Target of the approve/decline links in the supervisor email."""
    try:
        parsed = Decision(decision.upper())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown decision '{decision}'. Use 'approve' or 'decline'.",
        )
    return services.ledger.resolve_by_token(db, token, parsed)
