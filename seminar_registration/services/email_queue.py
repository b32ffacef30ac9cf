# seminar_registration/services/email_queue.py
"""
Durable outbound email queue.

Rows move PENDING -> PROCESSING -> SENT, back to PENDING for a retry, or to
FAILED once retries are used up. PENDING rows can also be CANCELLED.

Claiming is a per-row conditional update inside one transaction, so two
workers never both hold a row. A worker that dies mid-send leaves its rows
PROCESSING; `recover_stuck` hands them back to PENDING after a cutoff.
The worker renews its claim on each row right before sending it, so the
cutoff only has to outlast a single send, not a whole batch.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from seminar_registration import crud
from seminar_registration.core.config import Settings, settings as default_settings
from seminar_registration.core.email import DeliveryResult, MailTransport
from seminar_registration.models.email_queue import EmailQueue
from seminar_registration.schemas.email_queue import EmailCreate, EmailQueueStats
from seminar_registration.services.exceptions import DeliveryExhausted, DeliveryFailure
from seminar_registration.utils.backoff import backoff_from_settings
from seminar_registration.utils.time import utcnow

logger = logging.getLogger(__name__)


@dataclass
class BatchReport:
    sent: int = 0
    retried: int = 0
    failed: int = 0
    skipped: int = 0

    @property
    def processed(self) -> int:
        return self.sent + self.retried + self.failed


class EmailQueueService:
    def __init__(
        self,
        transport: MailTransport,
        settings: Settings = default_settings,
        clock: Callable[[], datetime] = utcnow,
        backoff: Optional[Callable[[int], timedelta]] = None,
    ):
        self.transport = transport
        self.settings = settings
        self.clock = clock
        self.backoff = backoff or backoff_from_settings(settings)

    def enqueue(self, db: Session, email: EmailCreate, commit: bool = False) -> EmailQueue:
        """Add a PENDING row. Most callers enqueue as part of a larger transaction."""
        row = crud.email_queue.enqueue(
            db,
            obj_in=email,
            now=self.clock(),
            default_max_retries=self.settings.EMAIL_QUEUE_MAX_RETRIES,
        )
        logger.info(f"Queued {row.email_type} email {row.id} to {row.to_email}")
        if commit:
            db.commit()
        return row

    def claim_batch(self, db: Session, limit: Optional[int] = None) -> List[EmailQueue]:
        """
        Move up to `limit` due PENDING rows to PROCESSING and return them.

        All rows of one batch share a fresh `claim_token`; later writes to a
        row only apply while it still carries that token.
        """
        limit = limit or self.settings.EMAIL_QUEUE_BATCH_SIZE
        now = self.clock()
        claim_token = uuid.uuid4().hex
        try:
            candidate_ids = crud.email_queue.get_claimable_ids(db, now=now, limit=limit)
            claimed_ids = [
                email_id for email_id in candidate_ids
                if crud.email_queue.claim(db, email_id=email_id, now=now, claim_token=claim_token)
            ]
            db.commit()
        except Exception:
            db.rollback()
            raise

        if not claimed_ids:
            return []
        return (
            db.query(EmailQueue)
            .filter(EmailQueue.id.in_(claimed_ids))
            .order_by(EmailQueue.scheduled_at.asc(), EmailQueue.created_at.asc())
            .all()
        )

    def process_batch(self, db: Session) -> BatchReport:
        """Claim a batch and try to deliver each row once."""
        report = BatchReport()
        # Read the ids and tokens now; the rows are reloaded after every commit.
        claimed = [(email, email.id, email.claim_token) for email in self.claim_batch(db)]
        for email, email_id, claim_token in claimed:
            # Earlier sends may have run long enough for the stuck-row sweep to release this row.
            if not self._renew_claim(db, email_id, claim_token):
                logger.info(f"Email {email_id} was released by the stuck-row sweep; skipped")
                report.skipped += 1
                continue
            result = self._deliver(email)
            try:
                outcome = self._record_outcome(db, email, result, claim_token)
                db.commit()
            except Exception:
                db.rollback()
                raise
            if outcome == "sent":
                report.sent += 1
            elif outcome == "retried":
                report.retried += 1
            elif outcome == "failed":
                report.failed += 1

        if report.processed or report.skipped:
            logger.info(
                f"Email batch done: sent={report.sent} retried={report.retried} "
                f"failed={report.failed} skipped={report.skipped}"
            )
        return report

    def recover_stuck(self, db: Session) -> int:
        """PROCESSING rows older than the cutoff go back to PENDING. SENT rows are never touched."""
        cutoff = self.clock() - timedelta(minutes=self.settings.EMAIL_QUEUE_STUCK_AFTER_MINUTES)
        try:
            count = crud.email_queue.reset_stuck_processing(db, cutoff=cutoff)
            db.commit()
        except Exception:
            db.rollback()
            raise
        if count:
            logger.warning(f"Reset {count} email(s) stuck in PROCESSING since before {cutoff.isoformat()}")
        return count

    def cancel_pending_for_registration(self, db: Session, registration_id: str, commit: bool = False) -> int:
        count = crud.email_queue.cancel_pending_for_registration(db, registration_id=registration_id)
        if count:
            logger.info(f"Cancelled {count} pending email(s) for registration {registration_id}")
        if commit:
            db.commit()
        return count

    def stats(self, db: Session) -> EmailQueueStats:
        by_status = crud.email_queue.count_by_status(db)
        return EmailQueueStats(by_status=by_status, total=sum(by_status.values()))

    def list_for_registration(self, db: Session, registration_id: str) -> List[EmailQueue]:
        return crud.email_queue.get_by_registration(db, registration_id=registration_id)

    def _renew_claim(self, db: Session, email_id: str, claim_token: str) -> bool:
        try:
            renewed = crud.email_queue.renew_claim(
                db, email_id=email_id, now=self.clock(), claim_token=claim_token
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        return renewed

    def _deliver(self, email: EmailQueue) -> DeliveryResult:
        try:
            return self.transport.send(
                to=email.to_email,
                subject=email.subject,
                html=email.body,
                cc=email.cc_email,
                bcc=email.bcc_email,
            )
        except Exception as e:
            logger.exception(f"Mail transport raised while sending email {email.id}")
            return DeliveryResult.failed(str(e), type(e).__name__.upper())

    def _record_outcome(
        self,
        db: Session,
        email: EmailQueue,
        result: DeliveryResult,
        claim_token: Optional[str] = None,
    ) -> Optional[str]:
        now = self.clock()
        email_id = email.id

        if result.success:
            if crud.email_queue.mark_as_sent(db, email_id=email_id, now=now, claim_token=claim_token):
                return "sent"
            return None

        retry_count = email.retry_count + 1
        error_message = (result.error or "Unknown delivery error")[:2000]

        if retry_count >= email.max_retries:
            if crud.email_queue.mark_as_failed(
                db,
                email_id=email_id,
                retry_count=retry_count,
                error_message=error_message,
                error_code=result.error_code,
                claim_token=claim_token,
            ):
                error = DeliveryExhausted(
                    f"Email {email_id} ({email.email_type}) to {email.to_email} failed after "
                    f"{retry_count} attempt(s): {error_message}"
                )
                logger.error(f"[{error.code}] {error.message}")
                return "failed"
            return None

        scheduled_at = now + self.backoff(retry_count)
        if crud.email_queue.mark_for_retry(
            db,
            email_id=email_id,
            retry_count=retry_count,
            scheduled_at=scheduled_at,
            error_message=error_message,
            error_code=result.error_code,
            claim_token=claim_token,
        ):
            error = DeliveryFailure(
                f"Email {email_id} attempt {retry_count} failed ({result.error_code}): {error_message}"
            )
            logger.warning(f"[{error.code}] {error.message}; retrying at {scheduled_at.isoformat()}")
            return "retried"
        return None
