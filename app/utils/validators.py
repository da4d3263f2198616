"""
utils/validators.py

Local structural checks run before any lockout tracker or store is touched.
Every function raises ValidationError with a client-safe message, or returns
the normalized value.
"""

import re
from typing import Optional

from app.core.exceptions import ValidationError

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# At least one letter and one digit; length is checked separately.
_HAS_LETTER = re.compile(r"[A-Za-z]")
_HAS_DIGIT = re.compile(r"\d")

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 128
USERNAME_MAX_LENGTH = 50
AUTHOR_MAX_LENGTH = 50
CONTENT_MAX_LENGTH = 1000
EMAIL_MAX_LENGTH = 255
FULL_NAME_MAX_LENGTH = 255
AVATAR_URL_MAX_LENGTH = 500
POST_ID_MAX_LENGTH = 255
PARENT_ID_MAX_LENGTH = 255

_HTML_ESCAPES = {
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
    "'": "&#x27;",
    "/": "&#x2F;",
}


def require_fields(**fields: Optional[str]) -> None:
    """Reject missing or blank values, naming the first offending field."""
    for name, value in fields.items():
        if value is None or not str(value).strip():
            raise ValidationError(f"{name} is required.")


def validate_max_length(name: str, value: Optional[str], max_length: int) -> Optional[str]:
    if value is not None and len(value) > max_length:
        raise ValidationError(f"{name} must be at most {max_length} characters.")
    return value


def validate_email(email: str) -> str:
    email = email.strip()
    if len(email) > EMAIL_MAX_LENGTH:
        raise ValidationError(f"Email address must be at most {EMAIL_MAX_LENGTH} characters.")
    if not EMAIL_PATTERN.match(email):
        raise ValidationError("Email address is not valid.")
    return email


def validate_password(password: str) -> str:
    if (
        len(password) < PASSWORD_MIN_LENGTH
        or not _HAS_LETTER.search(password)
        or not _HAS_DIGIT.search(password)
    ):
        raise ValidationError(
            f"Password must be at least {PASSWORD_MIN_LENGTH} characters "
            "and contain both letters and digits."
        )
    if len(password) > PASSWORD_MAX_LENGTH:
        raise ValidationError(f"Password must be at most {PASSWORD_MAX_LENGTH} characters.")
    return password


def validate_username(username: str) -> str:
    username = username.strip()
    if not username:
        raise ValidationError("username is required.")
    if len(username) > USERNAME_MAX_LENGTH:
        raise ValidationError(f"Username must be at most {USERNAME_MAX_LENGTH} characters.")
    return username


def validate_comment(author: str, content: str, email: Optional[str]) -> None:
    """Comment field rules: author 1-50 chars, content 1-1000, email optional."""
    if author is None or not author.strip():
        raise ValidationError("Author name is required.")
    if len(author.strip()) > AUTHOR_MAX_LENGTH:
        raise ValidationError(f"Author name must be at most {AUTHOR_MAX_LENGTH} characters.")
    if content is None or not content.strip():
        raise ValidationError("Comment content is required.")
    if len(content.strip()) > CONTENT_MAX_LENGTH:
        raise ValidationError(f"Comment content must be at most {CONTENT_MAX_LENGTH} characters.")
    if email:
        validate_email(email)


def sanitize_input(value: Optional[str]) -> Optional[str]:
    """HTML-escape user text before it is stored and later rendered."""
    if value is None:
        return None
    return "".join(_HTML_ESCAPES.get(ch, ch) for ch in value)
