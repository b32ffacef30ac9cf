import pytest

from seminar_registration import crud
from seminar_registration.constants.statuses import ApprovalStatus, Decision, EmailStatus, EmailType
from seminar_registration.core.config import Settings
from seminar_registration.models.registration import Registration
from seminar_registration.schemas.registration import RegistrationOutcomeStatus
from seminar_registration.services.container import build_services
from seminar_registration.services.exceptions import (
    AlreadyResolved,
    AlreadyWaiting,
    DuplicateRegistration,
    NotRegistered,
    RegistrationLimitReached,
    SlotFull,
    SlotNotFound,
    TokenExpired,
    TokenNotFound,
)
from tests.utils.factories import create_slot, emails_of_type, register


# ==================== register ====================

def test_register_creates_pending_registration_with_token(services, db, clock):
    slot_id = create_slot(db, capacity=2)

    outcome = register(services, db, slot_id, "msc_ana", presenter_name="Ana Lima", topic="Graph sparsifiers")

    assert outcome.status == RegistrationOutcomeStatus.REGISTERED
    assert outcome.approval_token
    assert outcome.has_supervisor_email is True

    registration = crud.registration.get(db, outcome.registration_id)
    assert registration.approval_status == ApprovalStatus.PENDING.value
    assert registration.approval_token == outcome.approval_token
    assert registration.degree == "MSC"


def test_register_token_expires_after_48_hours(services, db, clock):
    slot_id = create_slot(db)

    outcome = register(services, db, slot_id, "msc_ana")

    assert (outcome.approval_token_expires_at - clock.now).total_seconds() == 48 * 3600


def test_register_queues_supervisor_approval_and_presenter_copy(services, db):
    slot_id = create_slot(db)

    outcome = register(services, db, slot_id, "msc_ana")

    approvals = emails_of_type(db, EmailType.SUPERVISOR_APPROVAL)
    assert len(approvals) == 1
    assert approvals[0].to_email == "supervisor.msc_ana@uni.example.edu"
    assert approvals[0].registration_id == outcome.registration_id
    assert f"/api/v1/approvals/{outcome.approval_token}/approve" in approvals[0].body
    assert f"/api/v1/approvals/{outcome.approval_token}/decline" in approvals[0].body

    copies = emails_of_type(db, EmailType.SUPERVISOR_NOTIFICATION)
    assert len(copies) == 1
    assert copies[0].to_email == "msc_ana@uni.example.edu"


def test_register_without_supervisor_email(services, db):
    slot_id = create_slot(db)

    outcome = register(services, db, slot_id, "msc_ana", supervisor_email=None)

    assert outcome.status == RegistrationOutcomeStatus.REGISTERED
    assert outcome.has_supervisor_email is False
    assert emails_of_type(db, EmailType.SUPERVISOR_APPROVAL) == []
    assert len(emails_of_type(db, EmailType.SUPERVISOR_NOTIFICATION)) == 1


def test_register_duplicate(services, db):
    slot_id = create_slot(db)
    register(services, db, slot_id, "msc_ana")

    with pytest.raises(DuplicateRegistration):
        register(services, db, slot_id, "msc_ana")


def test_register_unknown_slot(services, db):
    with pytest.raises(SlotNotFound):
        register(services, db, "slot_missing", "msc_ana")


def test_register_full_slot_goes_to_waiting_list(services, db):
    slot_id = create_slot(db, capacity=2)
    register(services, db, slot_id, "phd_ana", degree="PhD")

    outcome = register(services, db, slot_id, "msc_ben")

    assert outcome.status == RegistrationOutcomeStatus.QUEUED
    assert outcome.waiting_position == 1
    assert outcome.registration_id is None
    assert crud.registration.get_active(db, slot_id=slot_id, presenter_username="msc_ben") is None


def test_register_full_slot_without_waiting_list(services, db):
    slot_id = create_slot(db, capacity=1)
    register(services, db, slot_id, "msc_ana")

    with pytest.raises(SlotFull):
        register(services, db, slot_id, "msc_ben", allow_waiting_list=False)

    assert crud.waiting_list.count_for_slot(db, slot_id=slot_id) == 0


def test_register_while_already_waiting(services, db):
    slot_id = create_slot(db, capacity=1)
    register(services, db, slot_id, "msc_ana")
    register(services, db, slot_id, "msc_ben")

    with pytest.raises(AlreadyWaiting):
        register(services, db, slot_id, "msc_ben")


def test_phd_does_not_fit_in_single_free_unit(services, db):
    slot_id = create_slot(db, capacity=3)
    register(services, db, slot_id, "phd_ana", degree="PhD")

    outcome = register(services, db, slot_id, "phd_ben", degree="PhD")

    assert outcome.status == RegistrationOutcomeStatus.QUEUED
    assert register(services, db, slot_id, "msc_cai").status == RegistrationOutcomeStatus.REGISTERED


def test_one_active_registration_across_slots(services, db):
    first = create_slot(db)
    second = create_slot(db)
    register(services, db, first, "msc_ana")

    with pytest.raises(RegistrationLimitReached):
        register(services, db, second, "msc_ana")


def test_pending_limit_per_degree(transport, clock, db):
    settings = Settings(RESEND_API_KEY=None, ALLOW_MULTIPLE_ACTIVE_REGISTRATIONS=True)
    services = build_services(settings=settings, transport=transport, clock=clock)
    slots = [create_slot(db, capacity=4) for _ in range(3)]

    register(services, db, slots[0], "phd_ana", degree="PhD")
    with pytest.raises(RegistrationLimitReached):
        register(services, db, slots[1], "phd_ana", degree="PhD")

    register(services, db, slots[0], "msc_ben")
    register(services, db, slots[1], "msc_ben")
    with pytest.raises(RegistrationLimitReached):
        register(services, db, slots[2], "msc_ben")


def test_rejected_registration_leaves_nothing_behind(services, db):
    first = create_slot(db)
    second = create_slot(db)
    register(services, db, first, "msc_ana")
    emails_before = db.query(crud.email_queue.model).count()

    with pytest.raises(RegistrationLimitReached):
        register(services, db, second, "msc_ana")

    assert db.query(Registration).count() == 1
    assert db.query(crud.email_queue.model).count() == emails_before


# ==================== resolve_by_token ====================

def test_approve(services, db):
    slot_id = create_slot(db)
    outcome = register(services, db, slot_id, "msc_ana")

    registration = services.ledger.resolve_by_token(db, outcome.approval_token, Decision.APPROVE)

    assert registration.approval_status == ApprovalStatus.APPROVED.value
    assert registration.approval_token is None
    assert registration.resolved_token == outcome.approval_token
    notifications = emails_of_type(db, EmailType.APPROVAL_NOTIFICATION, to_email="msc_ana@uni.example.edu")
    assert len(notifications) == 1
    assert "approved" in notifications[0].subject


def test_decline_frees_seat_and_offers_it(services, db):
    slot_id = create_slot(db, capacity=1)
    outcome = register(services, db, slot_id, "msc_ana")
    register(services, db, slot_id, "msc_ben")

    registration = services.ledger.resolve_by_token(db, outcome.approval_token, "DECLINE")

    assert registration.approval_status == ApprovalStatus.DECLINED.value
    entry = crud.waiting_list.get_by_slot_and_presenter(db, slot_id=slot_id, presenter_username="msc_ben")
    assert entry.promotion_token is not None
    assert len(emails_of_type(db, EmailType.STUDENT_CONFIRMATION, to_email="msc_ben@uni.example.edu")) == 1


def test_token_resolves_once(services, db):
    slot_id = create_slot(db)
    outcome = register(services, db, slot_id, "msc_ana")
    services.ledger.resolve_by_token(db, outcome.approval_token, "APPROVE")

    with pytest.raises(AlreadyResolved):
        services.ledger.resolve_by_token(db, outcome.approval_token, "APPROVE")
    with pytest.raises(AlreadyResolved):
        services.ledger.resolve_by_token(db, outcome.approval_token, "DECLINE")

    registration = crud.registration.get(db, outcome.registration_id)
    assert registration.approval_status == ApprovalStatus.APPROVED.value
    assert len(emails_of_type(db, EmailType.APPROVAL_NOTIFICATION)) == 1


def test_unknown_token(services, db):
    with pytest.raises(TokenNotFound):
        services.ledger.resolve_by_token(db, "not-a-real-token", "APPROVE")


def test_expired_token_marks_registration_expired(services, db, clock):
    slot_id = create_slot(db, capacity=1)
    outcome = register(services, db, slot_id, "msc_ana")
    register(services, db, slot_id, "msc_ben")
    clock.advance(hours=49)

    with pytest.raises(TokenExpired):
        services.ledger.resolve_by_token(db, outcome.approval_token, "APPROVE")

    registration = crud.registration.get(db, outcome.registration_id)
    assert registration.approval_status == ApprovalStatus.EXPIRED.value
    assert registration.approval_token is None
    # The freed seat went to the waiting list.
    entry = crud.waiting_list.get_by_slot_and_presenter(db, slot_id=slot_id, presenter_username="msc_ben")
    assert entry.promotion_token is not None

    with pytest.raises(TokenExpired):
        services.ledger.resolve_by_token(db, outcome.approval_token, "APPROVE")


# ==================== cancel ====================

def test_cancel_deletes_registration_and_pending_emails(services, db):
    slot_id = create_slot(db)
    outcome = register(services, db, slot_id, "msc_ana")

    services.ledger.cancel(db, slot_id, "msc_ana")

    assert crud.registration.get(db, outcome.registration_id) is None
    statuses = {e.status for e in services.email_queue.list_for_registration(db, outcome.registration_id)}
    assert statuses == {EmailStatus.CANCELLED.value}
    assert services.capacity.effective_usage(db, slot_id) == 0


def test_cancel_approved_registration(services, db):
    slot_id = create_slot(db)
    outcome = register(services, db, slot_id, "msc_ana")
    services.ledger.resolve_by_token(db, outcome.approval_token, "APPROVE")

    services.ledger.cancel(db, slot_id, "msc_ana")

    assert services.ledger.exists_active_registration(db, slot_id, "msc_ana") is False


def test_cancel_without_registration(services, db):
    slot_id = create_slot(db)

    with pytest.raises(NotRegistered):
        services.ledger.cancel(db, slot_id, "msc_ana")


def test_cancel_declined_registration_is_rejected(services, db):
    slot_id = create_slot(db)
    outcome = register(services, db, slot_id, "msc_ana")
    services.ledger.resolve_by_token(db, outcome.approval_token, "DECLINE")

    with pytest.raises(NotRegistered):
        services.ledger.cancel(db, slot_id, "msc_ana")


def test_register_again_after_decline(services, db):
    slot_id = create_slot(db)
    first = register(services, db, slot_id, "msc_ana")
    services.ledger.resolve_by_token(db, first.approval_token, "DECLINE")

    second = register(services, db, slot_id, "msc_ana")

    assert second.registration_id != first.registration_id
    assert len(services.ledger.list_slot_registrations(db, slot_id)) == 2
    assert len(services.ledger.list_slot_registrations(db, slot_id, status=ApprovalStatus.PENDING)) == 1


# ==================== sweeps ====================

def test_expire_stale_registrations(services, db, clock):
    slot_id = create_slot(db, capacity=1)
    outcome = register(services, db, slot_id, "msc_ana")
    register(services, db, slot_id, "msc_ben")

    clock.advance(hours=47)
    assert services.ledger.expire_stale_registrations(db) == 0

    clock.advance(hours=2)
    assert services.ledger.expire_stale_registrations(db) == 1
    assert services.ledger.expire_stale_registrations(db) == 0

    registration = crud.registration.get(db, outcome.registration_id)
    assert registration.approval_status == ApprovalStatus.EXPIRED.value
    entry = crud.waiting_list.get_by_slot_and_presenter(db, slot_id=slot_id, presenter_username="msc_ben")
    assert entry.promotion_token is not None


def test_expiration_warning_sent_once(services, db, clock):
    slot_id = create_slot(db)
    register(services, db, slot_id, "msc_ana")

    clock.advance(hours=12)
    assert services.ledger.send_expiration_warnings(db) == 0

    clock.advance(hours=13)
    assert services.ledger.send_expiration_warnings(db) == 1
    assert services.ledger.send_expiration_warnings(db) == 0

    warnings = emails_of_type(db, EmailType.EXPIRATION_WARNING)
    assert [w.to_email for w in warnings] == ["msc_ana@uni.example.edu"]


def test_supervisor_reminders(services, db, clock):
    slot_id = create_slot(db)
    register(services, db, slot_id, "msc_ana")

    clock.advance(hours=1)
    assert services.ledger.send_supervisor_reminders(db) == 0

    clock.advance(hours=24)
    assert services.ledger.send_supervisor_reminders(db) == 1
    assert services.ledger.send_supervisor_reminders(db) == 0

    clock.advance(hours=25)
    # Token expired by now, nothing left to remind about.
    assert services.ledger.send_supervisor_reminders(db) == 0

    reminders = emails_of_type(db, EmailType.SUPERVISOR_REMINDER)
    assert [r.to_email for r in reminders] == ["supervisor.msc_ana@uni.example.edu"]


def test_no_reminders_after_approval(services, db, clock):
    slot_id = create_slot(db)
    outcome = register(services, db, slot_id, "msc_ana")
    services.ledger.resolve_by_token(db, outcome.approval_token, "APPROVE")

    clock.advance(hours=30)

    assert services.ledger.send_supervisor_reminders(db) == 0
    assert services.ledger.send_expiration_warnings(db) == 0


def _run_after_first_scan(monkeypatch, query_name, action):
    """Run `action` once, right after the sweep's first candidate query returns."""
    original = getattr(crud.registration, query_name)
    calls = []

    def scan(db, **kwargs):
        rows = original(db, **kwargs)
        if not calls:
            calls.append(kwargs)
            action()
        return rows

    monkeypatch.setattr(crud.registration, query_name, scan)


def test_reminder_skips_registration_approved_during_sweep(services, db, session_factory, clock, monkeypatch):
    slot_id = create_slot(db)
    outcome = register(services, db, slot_id, "msc_ana")
    clock.advance(hours=25)

    def approve_elsewhere():
        other = session_factory()
        try:
            services.ledger.resolve_by_token(other, outcome.approval_token, Decision.APPROVE)
        finally:
            other.close()

    _run_after_first_scan(monkeypatch, "get_pending_for_reminder", approve_elsewhere)

    assert services.ledger.send_supervisor_reminders(db) == 0
    assert emails_of_type(db, EmailType.SUPERVISOR_REMINDER) == []
    db.expire_all()
    registration = services.ledger.get_registration(db, outcome.registration_id)
    assert registration.approval_status == ApprovalStatus.APPROVED.value
    assert registration.last_reminder_sent_at is None


def test_warning_skips_registration_cancelled_during_sweep(services, db, session_factory, clock, monkeypatch):
    slot_id = create_slot(db)
    other_slot_id = create_slot(db)
    register(services, db, slot_id, "msc_ana")
    register(services, db, other_slot_id, "msc_ben")
    clock.advance(hours=25)

    def cancel_elsewhere():
        other = session_factory()
        try:
            services.ledger.cancel(other, slot_id, "msc_ana")
        finally:
            other.close()

    _run_after_first_scan(monkeypatch, "get_pending_expiring_between", cancel_elsewhere)

    # The cancelled row drops out; the rest of the sweep still goes through.
    assert services.ledger.send_expiration_warnings(db) == 1
    warnings = emails_of_type(db, EmailType.EXPIRATION_WARNING)
    assert [w.to_email for w in warnings] == ["msc_ben@uni.example.edu"]


def test_sweep_stamps_require_pending_registration(services, db, clock):
    slot_id = create_slot(db)
    outcome = register(services, db, slot_id, "msc_ana")
    services.ledger.resolve_by_token(db, outcome.approval_token, Decision.APPROVE)

    assert crud.registration.mark_reminded(
        db, registration_id=outcome.registration_id, now=clock.now, reminded_before=clock.now
    ) is False
    assert crud.registration.mark_warning_sent(db, registration_id=outcome.registration_id, now=clock.now) is False
