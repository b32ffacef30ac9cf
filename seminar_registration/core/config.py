# seminar_registration/core/config.py

import math
from typing import Dict, Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Values come from the process environment (Docker Compose .env in prod).
    model_config = SettingsConfigDict(extra="ignore")

    # The environment mode: 'local' or 'prod'
    ENV: str = "local"

    # --- Production URLs (for inside Docker) ---
    DATABASE_URL_PROD: Optional[str] = None
    REDIS_URL_PROD: Optional[str] = None

    # --- Local Development URLs (for running locally) ---
    DATABASE_URL_LOCAL: str = "sqlite:///./seminar_registration.db"
    REDIS_URL_LOCAL: Optional[str] = None

    # --- Links embedded in emails ---
    PUBLIC_BASE_URL: str = "http://localhost:8000"

    # --- Mail transport ---
    RESEND_API_KEY: Optional[str] = None
    MAIL_FROM: str = "SemScan <noreply@semscan.local>"
    EMAIL_SEND_TIMEOUT_SECONDS: float = 10.0

    # --- Registration policy ---
    APPROVAL_TOKEN_TTL_HOURS: int = 48
    EXPIRATION_WARNING_HOURS: int = 24
    SUPERVISOR_REMINDER_INTERVAL_HOURS: int = 24
    DEGREE_WEIGHTS: Dict[str, int] = {"PHD": 2, "MSC": 1}
    MAX_PENDING_PHD: int = 1
    MAX_PENDING_MSC: int = 2
    ALLOW_MULTIPLE_ACTIVE_REGISTRATIONS: bool = False

    # --- Waiting list policy ---
    PROMOTION_TOKEN_TTL_HOURS: int = 24
    PROMOTION_AUTO_APPROVE: bool = True

    # --- Email queue ---
    EMAIL_QUEUE_MAX_RETRIES: int = 3
    EMAIL_QUEUE_BATCH_SIZE: int = 50
    EMAIL_QUEUE_BACKOFF_STRATEGY: str = "fixed"  # fixed | exponential
    EMAIL_QUEUE_INITIAL_BACKOFF_MINUTES: int = 5
    EMAIL_QUEUE_BACKOFF_MULTIPLIER: int = 3
    EMAIL_QUEUE_STUCK_AFTER_MINUTES: int = 5

    # --- Scheduler ---
    SCHEDULER_ENABLED: bool = True
    SCHEDULER_JITTER_SECONDS: int = 10
    JOB_LOCK_TTL_SECONDS: int = 120
    JOB_MAX_BACKOFF_SECONDS: int = 600

    LOG_LEVEL: str = "INFO"

    @model_validator(mode="after")
    def check_email_timing(self) -> "Settings":
        """A single send must finish well inside the stuck-row cutoff."""
        if self.EMAIL_SEND_TIMEOUT_SECONDS * 2 > self.EMAIL_QUEUE_STUCK_AFTER_MINUTES * 60:
            raise ValueError(
                "EMAIL_SEND_TIMEOUT_SECONDS must be at most half of EMAIL_QUEUE_STUCK_AFTER_MINUTES"
            )
        return self

    # --- Dynamic Properties ---
    # These properties return the correct URL based on the ENV
    @property
    def DATABASE_URL(self) -> str:
        if self.ENV == "local" or not self.DATABASE_URL_PROD:
            return self.DATABASE_URL_LOCAL
        return self.DATABASE_URL_PROD

    @property
    def REDIS_URL(self) -> Optional[str]:
        return self.REDIS_URL_LOCAL if self.ENV == "local" else self.REDIS_URL_PROD

    @property
    def EMAIL_QUEUE_JOB_LOCK_TTL_SECONDS(self) -> int:
        # Worst case: every row in a batch runs into the send timeout.
        worst_batch = math.ceil(self.EMAIL_QUEUE_BATCH_SIZE * self.EMAIL_SEND_TIMEOUT_SECONDS)
        return worst_batch + self.JOB_LOCK_TTL_SECONDS


# Create a single instance of the settings
settings = Settings()
