import secrets
from datetime import datetime, timedelta
from typing import Optional

from app.core.config import settings


def generate_invitation_token(nbytes: Optional[int] = None) -> str:
    """Random URL-safe token; ``nbytes`` of entropy before encoding."""
    return secrets.token_urlsafe(nbytes or settings.INVITATION_TOKEN_BYTES)


def invitation_expiry(now: datetime, days: Optional[int] = None) -> datetime:
    if days is None:
        days = settings.INVITATION_EXPIRY_DAYS
    return now + timedelta(days=days)


def mask_token(token: str) -> str:
    """Shorten a token for log lines."""
    return f"{token[:6]}..." if token else ""
