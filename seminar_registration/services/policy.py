# seminar_registration/services/policy.py
from sqlalchemy.orm import Session

from seminar_registration import crud
from seminar_registration.constants.statuses import Degree
from seminar_registration.core.config import Settings
from seminar_registration.services.exceptions import DuplicateRegistration, RegistrationLimitReached


def check_presenter_may_register(
    db: Session,
    settings: Settings,
    *,
    slot_id: str,
    presenter_username: str,
    degree: Degree,
    pending: bool = True,
) -> None:
    """
    Presenter-level limits that apply before any seat is handed out.

    Raises:
        DuplicateRegistration: already PENDING/APPROVED on this slot
        RegistrationLimitReached: active on another slot, or too many PENDING requests
    """
    if crud.registration.exists_active_registration(db, slot_id=slot_id, presenter_username=presenter_username):
        raise DuplicateRegistration(f"{presenter_username} is already registered for slot {slot_id}")

    if not settings.ALLOW_MULTIPLE_ACTIVE_REGISTRATIONS and crud.registration.has_any_active_registration(
        db, presenter_username=presenter_username, exclude_slot_id=slot_id
    ):
        raise RegistrationLimitReached(f"{presenter_username} already holds a registration on another slot")

    if pending:
        limit = settings.MAX_PENDING_PHD if degree == Degree.PHD else settings.MAX_PENDING_MSC
        if crud.registration.count_pending_for_presenter(db, presenter_username=presenter_username) >= limit:
            raise RegistrationLimitReached(
                f"{presenter_username} already has {limit} registration(s) awaiting approval"
            )
