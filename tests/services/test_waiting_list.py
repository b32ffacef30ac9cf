import random

import pytest

from seminar_registration import crud
from seminar_registration.constants.statuses import ApprovalStatus, EmailType, PromotionStatus
from seminar_registration.core.config import Settings
from seminar_registration.schemas.registration import RegistrationOutcomeStatus
from seminar_registration.services.container import build_services
from seminar_registration.services.exceptions import NotWaiting, OfferExpired, OfferNotFound
from tests.utils.factories import create_slot, emails_of_type, register


def offer_token(db, slot_id, username):
    entry = crud.waiting_list.get_by_slot_and_presenter(db, slot_id=slot_id, presenter_username=username)
    return entry.promotion_token if entry else None


def queue_usernames(services, db, slot_id):
    return [entry.presenter_username for entry in services.waiting_list.list_entries(db, slot_id)]


@pytest.fixture
def full_slot(services, db):
    """Capacity 1 held by msc_ana, with msc_ben and msc_cai waiting."""
    slot_id = create_slot(db, capacity=1)
    register(services, db, slot_id, "msc_ana")
    register(services, db, slot_id, "msc_ben")
    register(services, db, slot_id, "msc_cai")
    return slot_id


@pytest.fixture
def offered_slot(services, db, full_slot):
    """As `full_slot`, but msc_ana cancelled so msc_ben holds an offer."""
    services.ledger.cancel(db, full_slot, "msc_ana")
    return full_slot


# ==================== enqueue and positions ====================

def test_positions_are_assigned_in_arrival_order(services, db, full_slot):
    entries = services.waiting_list.list_entries(db, full_slot)

    assert [(e.presenter_username, e.position) for e in entries] == [("msc_ben", 1), ("msc_cai", 2)]


def test_get_position(services, db, full_slot):
    position = services.waiting_list.get_position(db, full_slot, "msc_cai")

    assert position.position == 2
    assert position.total == 2
    assert position.has_offer is False


def test_get_position_reports_live_offer(services, db, offered_slot):
    position = services.waiting_list.get_position(db, offered_slot, "msc_ben")

    assert position.position == 1
    assert position.has_offer is True


def test_get_position_when_not_waiting(services, db, full_slot):
    with pytest.raises(NotWaiting):
        services.waiting_list.get_position(db, full_slot, "msc_zoe")


def test_positions_stay_dense(services, db):
    slot_id = create_slot(db, capacity=1)
    register(services, db, slot_id, "msc_seed")
    rng = random.Random(20260302)
    expected = []

    for step in range(60):
        action = rng.choice(["join", "join", "leave", "promote"])
        if action == "join":
            username = f"msc_{step}"
            outcome = register(services, db, slot_id, username)
            assert outcome.status == RegistrationOutcomeStatus.QUEUED
            expected.append(username)
        elif action == "leave" and expected:
            username = rng.choice(expected)
            services.waiting_list.withdraw(db, slot_id, username)
            expected.remove(username)
        elif action == "promote" and expected:
            occupant = services.ledger.list_slot_registrations(db, slot_id, status=ApprovalStatus.APPROVED) or \
                services.ledger.list_slot_registrations(db, slot_id, status=ApprovalStatus.PENDING)
            services.ledger.cancel(db, slot_id, occupant[0].presenter_username)
            head = expected.pop(0)
            services.waiting_list.accept_offer(db, offer_token(db, slot_id, head))

        entries = services.waiting_list.list_entries(db, slot_id)
        assert [e.position for e in entries] == list(range(1, len(expected) + 1))
        assert [e.presenter_username for e in entries] == expected


# ==================== offers ====================

def test_freed_seat_is_offered_to_head(services, db, offered_slot, clock):
    entry = crud.waiting_list.get_by_slot_and_presenter(db, slot_id=offered_slot, presenter_username="msc_ben")

    assert entry.promotion_token is not None
    assert offer_token(db, offered_slot, "msc_cai") is None

    promotions = crud.waiting_list_promotion.get_for_presenter(
        db, slot_id=offered_slot, presenter_username="msc_ben"
    )
    assert [p.status for p in promotions] == [PromotionStatus.PENDING.value]

    offers = emails_of_type(db, EmailType.STUDENT_CONFIRMATION, to_email="msc_ben@uni.example.edu")
    assert len(offers) == 1
    assert f"/api/v1/offers/{entry.promotion_token}/accept" in offers[0].body


def test_live_offer_blocks_new_registrations(services, db, offered_slot):
    outcome = register(services, db, offered_slot, "msc_dan")

    assert outcome.status == RegistrationOutcomeStatus.QUEUED
    assert outcome.waiting_position == 3


def test_head_of_line_does_not_fit(services, db):
    slot_id = create_slot(db, capacity=2)
    register(services, db, slot_id, "msc_ana")
    register(services, db, slot_id, "msc_ben")
    register(services, db, slot_id, "phd_cai", degree="PhD")
    register(services, db, slot_id, "msc_dan")

    services.ledger.cancel(db, slot_id, "msc_ana")

    # One free unit: the PhD at the head needs two, and nobody jumps the queue.
    assert offer_token(db, slot_id, "phd_cai") is None
    assert offer_token(db, slot_id, "msc_dan") is None
    assert emails_of_type(db, EmailType.STUDENT_CONFIRMATION) == []

    services.ledger.cancel(db, slot_id, "msc_ben")
    assert offer_token(db, slot_id, "phd_cai") is not None


def test_accept_offer_auto_approves(services, db, offered_slot):
    registration = services.waiting_list.accept_offer(db, offer_token(db, offered_slot, "msc_ben"))

    assert registration.presenter_username == "msc_ben"
    assert registration.approval_status == ApprovalStatus.APPROVED.value
    assert registration.approval_token is None
    assert queue_usernames(services, db, offered_slot) == ["msc_cai"]
    assert services.waiting_list.get_position(db, offered_slot, "msc_cai").position == 1

    promotions = crud.waiting_list_promotion.get_for_presenter(
        db, slot_id=offered_slot, presenter_username="msc_ben"
    )
    assert promotions[0].status == PromotionStatus.ACCEPTED.value
    assert len(emails_of_type(db, EmailType.APPROVAL_NOTIFICATION, to_email="msc_ben@uni.example.edu")) == 1


def test_accept_offer_needs_supervisor_approval(db, transport, clock):
    settings = Settings(RESEND_API_KEY=None, PROMOTION_AUTO_APPROVE=False)
    services = build_services(settings=settings, transport=transport, clock=clock)
    slot_id = create_slot(db, capacity=1)
    register(services, db, slot_id, "msc_ana")
    register(services, db, slot_id, "msc_ben")
    services.ledger.cancel(db, slot_id, "msc_ana")

    registration = services.waiting_list.accept_offer(db, offer_token(db, slot_id, "msc_ben"))

    assert registration.approval_status == ApprovalStatus.PENDING.value
    assert registration.approval_token is not None
    approvals = emails_of_type(db, EmailType.SUPERVISOR_APPROVAL, to_email="supervisor.msc_ben@uni.example.edu")
    assert len(approvals) == 1


def test_accept_offer_twice(services, db, offered_slot):
    token = offer_token(db, offered_slot, "msc_ben")
    services.waiting_list.accept_offer(db, token)

    with pytest.raises(OfferExpired):
        services.waiting_list.accept_offer(db, token)

    assert len(services.ledger.list_slot_registrations(db, offered_slot, status=ApprovalStatus.APPROVED)) == 1


def test_accept_expired_offer(services, db, offered_slot, clock):
    token = offer_token(db, offered_slot, "msc_ben")
    clock.advance(hours=25)

    with pytest.raises(OfferExpired):
        services.waiting_list.accept_offer(db, token)

    assert queue_usernames(services, db, offered_slot) == ["msc_cai"]
    assert offer_token(db, offered_slot, "msc_cai") is not None
    assert services.ledger.exists_active_registration(db, offered_slot, "msc_ben") is False
    promotions = crud.waiting_list_promotion.get_for_presenter(
        db, slot_id=offered_slot, presenter_username="msc_ben"
    )
    assert promotions[0].status == PromotionStatus.EXPIRED.value


def test_unknown_offer_token(services, db):
    with pytest.raises(OfferNotFound):
        services.waiting_list.accept_offer(db, "no-such-offer")
    with pytest.raises(OfferNotFound):
        services.waiting_list.decline_offer(db, "no-such-offer")


def test_decline_offer_moves_to_next(services, db, offered_slot):
    token = offer_token(db, offered_slot, "msc_ben")

    services.waiting_list.decline_offer(db, token)

    assert queue_usernames(services, db, offered_slot) == ["msc_cai"]
    assert offer_token(db, offered_slot, "msc_cai") is not None
    promotions = crud.waiting_list_promotion.get_for_presenter(
        db, slot_id=offered_slot, presenter_username="msc_ben"
    )
    assert promotions[0].status == PromotionStatus.DECLINED.value

    with pytest.raises(OfferExpired):
        services.waiting_list.decline_offer(db, token)


def test_decline_expired_offer(services, db, offered_slot, clock):
    token = offer_token(db, offered_slot, "msc_ben")
    clock.advance(hours=25)

    with pytest.raises(OfferExpired):
        services.waiting_list.decline_offer(db, token)

    assert queue_usernames(services, db, offered_slot) == ["msc_cai"]
    assert offer_token(db, offered_slot, "msc_cai") is not None


# ==================== withdraw ====================

def test_withdraw_without_offer(services, db, full_slot):
    services.waiting_list.withdraw(db, full_slot, "msc_ben")

    entries = services.waiting_list.list_entries(db, full_slot)
    assert [(e.presenter_username, e.position) for e in entries] == [("msc_cai", 1)]
    assert offer_token(db, full_slot, "msc_cai") is None


def test_withdraw_with_live_offer_reoffers_seat(services, db, offered_slot):
    services.waiting_list.withdraw(db, offered_slot, "msc_ben")

    assert queue_usernames(services, db, offered_slot) == ["msc_cai"]
    assert offer_token(db, offered_slot, "msc_cai") is not None
    promotions = crud.waiting_list_promotion.get_for_presenter(
        db, slot_id=offered_slot, presenter_username="msc_ben"
    )
    assert promotions[0].status == PromotionStatus.DECLINED.value


def test_withdraw_when_not_waiting(services, db, full_slot):
    with pytest.raises(NotWaiting):
        services.waiting_list.withdraw(db, full_slot, "msc_zoe")


# ==================== sweeps ====================

def test_expire_stale_offers(services, db, offered_slot, clock):
    clock.advance(hours=23)
    assert services.waiting_list.expire_stale_offers(db) == 0

    clock.advance(hours=2)
    assert services.waiting_list.expire_stale_offers(db) == 1
    assert services.waiting_list.expire_stale_offers(db) == 0

    assert queue_usernames(services, db, offered_slot) == ["msc_cai"]
    assert offer_token(db, offered_slot, "msc_cai") is not None


def test_fill_open_seats_after_capacity_increase(services, db, full_slot):
    slot = crud.slot.get(db, full_slot)
    slot.capacity = 3
    db.commit()

    assert services.waiting_list.fill_open_seats(db) == 2
    assert offer_token(db, full_slot, "msc_ben") is not None
    assert offer_token(db, full_slot, "msc_cai") is not None

    # Both free units are now reserved by live offers.
    assert services.waiting_list.fill_open_seats(db) == 0
    assert len(emails_of_type(db, EmailType.STUDENT_CONFIRMATION)) == 2
