"""Input validation helpers shared by the family services."""
from email_validator import EmailNotValidError, validate_email

from app.core.errors import InvalidEmail


def normalize_email(email: str) -> str:
    """Lower-case and trim an email address, then check its syntax."""
    normalized = (email or "").strip().lower()
    try:
        validate_email(normalized, check_deliverability=False)
    except EmailNotValidError as exc:
        raise InvalidEmail(context={"email": normalized}) from exc
    return normalized
