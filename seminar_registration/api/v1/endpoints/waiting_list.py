# seminar_registration/api/v1/endpoints/waiting_list.py
from typing import List

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from seminar_registration.api import deps
from seminar_registration.schemas.registration import Registration
from seminar_registration.schemas.waiting_list import WaitingListEntry, WaitingListPosition
from seminar_registration.services.container import Services

router = APIRouter(tags=["Waiting List"])


@router.get("/slots/{slot_id}/waiting-list", response_model=List[WaitingListEntry])
def list_waiting_list(
    slot_id: str,
    db: Session = Depends(deps.get_db),
    services: Services = Depends(deps.get_services),
):
    """Entries of a slot's waiting list in queue order."""
    return services.waiting_list.list_entries(db, slot_id)


@router.get("/slots/{slot_id}/waiting-list/{presenter_username}", response_model=WaitingListPosition)
def get_waiting_position(
    slot_id: str,
    presenter_username: str,
    db: Session = Depends(deps.get_db),
    services: Services = Depends(deps.get_services),
):
    return services.waiting_list.get_position(db, slot_id, presenter_username)


@router.delete("/slots/{slot_id}/waiting-list/{presenter_username}", status_code=status.HTTP_204_NO_CONTENT)
def leave_waiting_list(
    slot_id: str,
    presenter_username: str,
    db: Session = Depends(deps.get_db),
    services: Services = Depends(deps.get_services),
):
    """
    Leave the waiting list voluntarily.

    If the presenter held a live offer, it is declined and the seat goes to
    the next presenter in line.
    """
    services.waiting_list.withdraw(db, slot_id, presenter_username)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ==================== Promotion offers ====================
# Reachable with GET so the links in the offer email work directly.

@router.api_route("/offers/{token}/accept", methods=["GET", "POST"], response_model=Registration)
def accept_offer(
    token: str,
    db: Session = Depends(deps.get_db),
    services: Services = Depends(deps.get_services),
):
    """
    Accept a promotion offer.

    **Errors**:
    - 404: Unknown token
    - 409: The seat is no longer available
    - 410: Offer expired or already answered
    """
    return services.waiting_list.accept_offer(db, token)


@router.api_route("/offers/{token}/decline", methods=["GET", "POST"], status_code=status.HTTP_204_NO_CONTENT)
def decline_offer(
    token: str,
    db: Session = Depends(deps.get_db),
    services: Services = Depends(deps.get_services),
):
    services.waiting_list.decline_offer(db, token)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
