import secrets
from datetime import datetime, timedelta
from typing import Tuple

TOKEN_BYTES = 32


def generate_token(now: datetime, ttl_hours: int) -> Tuple[str, datetime]:
    """
    Generate a single-use opaque token for an email link.

    Returns:
        (token, expires_at)
    """
    return secrets.token_urlsafe(TOKEN_BYTES), now + timedelta(hours=ttl_hours)
