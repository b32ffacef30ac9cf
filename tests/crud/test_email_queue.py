# tests/crud/test_email_queue.py

from datetime import datetime, timezone
from unittest.mock import MagicMock

from seminar_registration.constants.statuses import EmailStatus, EmailType
from seminar_registration.crud.crud_email_queue import CRUDEmailQueue
from seminar_registration.models.email_queue import EmailQueue
from seminar_registration.schemas.email_queue import EmailCreate

email_queue_crud = CRUDEmailQueue(EmailQueue)
NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def test_enqueue_sets_pending_defaults():
    """
    Tests that a new row starts PENDING, unretried and due immediately.
    """
    db_session = MagicMock()
    email_in = EmailCreate(
        to_email="ana@uni.example.edu",
        subject="Hello",
        body="<p>Hello</p>",
        email_type=EmailType.SUPERVISOR_APPROVAL,
    )

    email_queue_crud.enqueue(db=db_session, obj_in=email_in, now=NOW, default_max_retries=3)

    created_obj = db_session.add.call_args[0][0]
    assert created_obj.status == EmailStatus.PENDING.value
    assert created_obj.retry_count == 0
    assert created_obj.max_retries == 3
    assert created_obj.scheduled_at == NOW
    assert created_obj.email_type == "SUPERVISOR_APPROVAL"


def test_enqueue_keeps_explicit_schedule_and_retries():
    db_session = MagicMock()
    later = datetime(2026, 3, 3, 9, 0, tzinfo=timezone.utc)
    email_in = EmailCreate(
        to_email="ana@uni.example.edu",
        subject="Hello",
        body="<p>Hello</p>",
        email_type=EmailType.EXPORT_EMAIL,
        scheduled_at=later,
        max_retries=5,
    )

    email_queue_crud.enqueue(db=db_session, obj_in=email_in, now=NOW)

    created_obj = db_session.add.call_args[0][0]
    assert created_obj.scheduled_at == later
    assert created_obj.max_retries == 5


def test_transition_reports_lost_race():
    """
    A conditional update that matched no row means another worker already
    moved the email on.
    """
    db_session = MagicMock()
    db_session.query.return_value.filter.return_value.update.return_value = 0

    assert email_queue_crud.claim(db=db_session, email_id="eml_1", now=NOW, claim_token="tok_a") is False

    db_session.query.return_value.filter.return_value.update.return_value = 1
    assert email_queue_crud.mark_as_sent(db=db_session, email_id="eml_1", now=NOW) is True


def test_renew_claim_only_touches_last_attempt():
    db_session = MagicMock()
    db_session.query.return_value.filter.return_value.update.return_value = 1

    assert email_queue_crud.renew_claim(db=db_session, email_id="eml_1", now=NOW, claim_token="tok_a") is True

    values = db_session.query.return_value.filter.return_value.update.call_args[0][0]
    assert values == {EmailQueue.last_attempt_at: NOW}


def test_count_by_status_includes_every_status():
    db_session = MagicMock()
    db_session.query.return_value.group_by.return_value.all.return_value = [("SENT", 4), ("FAILED", 1)]

    stats = email_queue_crud.count_by_status(db=db_session)

    assert stats == {
        "PENDING": 0,
        "PROCESSING": 0,
        "SENT": 4,
        "FAILED": 1,
        "CANCELLED": 0,
    }
