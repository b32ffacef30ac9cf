# seminar_registration/core/email.py
"""
Mail transport using Resend for sending transactional emails.

The queue worker only sees `MailTransport.send`, which never raises: every
failure (API error, timeout, missing configuration) comes back as a failed
`DeliveryResult` with a short error code.
"""
import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import List, Optional, Protocol

import resend

from seminar_registration.core.config import settings

logger = logging.getLogger(__name__)


@dataclass
class DeliveryResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    @classmethod
    def ok(cls, message_id: Optional[str] = None) -> "DeliveryResult":
        return cls(success=True, message_id=message_id)

    @classmethod
    def failed(cls, error: str, error_code: str) -> "DeliveryResult":
        return cls(success=False, error=error, error_code=error_code)


class MailTransport(Protocol):
    def send(
        self,
        to: str,
        subject: str,
        html: str,
        cc: Optional[str] = None,
        bcc: Optional[str] = None,
    ) -> DeliveryResult:
        ...


class ResendTransport:
    """Sends through the Resend API, bounded by a wall-clock timeout."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        sender: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.RESEND_API_KEY
        self.sender = sender or settings.MAIL_FROM
        self.timeout_seconds = timeout_seconds or settings.EMAIL_SEND_TIMEOUT_SECONDS
        self._executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="resend")

    def send(
        self,
        to: str,
        subject: str,
        html: str,
        cc: Optional[str] = None,
        bcc: Optional[str] = None,
    ) -> DeliveryResult:
        if not self.api_key:
            logger.warning(f"Skipping email to {to} - RESEND_API_KEY not configured")
            return DeliveryResult.failed("RESEND_API_KEY not configured", "NOT_CONFIGURED")

        params = {
            "from": self.sender,
            "to": [to],
            "subject": subject,
            "html": html,
        }
        if cc:
            params["cc"] = _split(cc)
        if bcc:
            params["bcc"] = _split(bcc)

        future = self._executor.submit(self._send, params)
        try:
            response = future.result(timeout=self.timeout_seconds)
        except FutureTimeout:
            future.cancel()
            logger.warning(f"Resend timed out after {self.timeout_seconds}s sending to {to}")
            return DeliveryResult.failed(f"Send timed out after {self.timeout_seconds}s", "TIMEOUT")
        except Exception as e:
            logger.warning(f"Failed to send email to {to}: {e}")
            return DeliveryResult.failed(str(e), type(e).__name__.upper())

        message_id = response.get("id") if isinstance(response, dict) else None
        logger.info(f"Email sent to {to} (id={message_id})")
        return DeliveryResult.ok(message_id)

    def _send(self, params: dict):
        resend.api_key = self.api_key
        return resend.Emails.send(params)


def _split(addresses: str) -> List[str]:
    return [a.strip() for a in addresses.split(",") if a.strip()]
