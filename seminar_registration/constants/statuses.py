# seminar_registration/constants/statuses.py
"""
Constants for status and type values stored in the database.

Provides type-safe constants to replace hardcoded strings throughout the codebase.
"""

from enum import Enum


class ApprovalStatus(str, Enum):
    """Registration approval state."""
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    DECLINED = "DECLINED"
    EXPIRED = "EXPIRED"

    @classmethod
    def active_values(cls) -> list[str]:
        """Statuses that hold a seat."""
        return [cls.PENDING.value, cls.APPROVED.value]


class Decision(str, Enum):
    """Supervisor decision carried by an approval link."""
    APPROVE = "APPROVE"
    DECLINE = "DECLINE"


class PromotionStatus(str, Enum):
    """Waiting list promotion offer state."""
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    EXPIRED = "EXPIRED"
    DECLINED = "DECLINED"


class EmailStatus(str, Enum):
    """Email queue row state."""
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SENT = "SENT"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class EmailType(str, Enum):
    STUDENT_CONFIRMATION = "STUDENT_CONFIRMATION"
    SUPERVISOR_APPROVAL = "SUPERVISOR_APPROVAL"
    SUPERVISOR_REMINDER = "SUPERVISOR_REMINDER"
    EXPIRATION_WARNING = "EXPIRATION_WARNING"
    APPROVAL_NOTIFICATION = "APPROVAL_NOTIFICATION"
    EXPORT_EMAIL = "EXPORT_EMAIL"
    SUPERVISOR_NOTIFICATION = "SUPERVISOR_NOTIFICATION"
    BUG_REPORT = "BUG_REPORT"


class Degree(str, Enum):
    PHD = "PHD"
    MSC = "MSC"

    @classmethod
    def parse(cls, value: str) -> "Degree":
        """Accept 'PhD', 'phd', 'MSc' and friends."""
        try:
            return cls(value.strip().upper())
        except (AttributeError, ValueError):
            raise ValueError(f"Unknown degree: {value!r}")
