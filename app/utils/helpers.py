# app/utils/helpers.py
from datetime import datetime, timezone
from typing import Optional
import re
import secrets
import string


_SLUG_ALPHABET = string.ascii_lowercase + string.digits


def utc_now() -> datetime:
    """Get current UTC datetime"""
    return datetime.now(timezone.utc)


def ensure_aware(dt: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes (as returned by SQLite) as UTC"""
    if dt is None or dt.tzinfo is not None:
        return dt
    return dt.replace(tzinfo=timezone.utc)


def sanitize_email(email: str) -> str:
    """Sanitize email address"""
    return email.lower().strip()


def emails_match(left: Optional[str], right: Optional[str]) -> bool:
    if not left or not right:
        return False
    return sanitize_email(left) == sanitize_email(right)


def mask_sensitive_data(data: str, visible_chars: int = 4, mask_char: str = "*") -> str:
    """
    Mask sensitive data for logging

    Args:
        data: The sensitive data to mask
        visible_chars: Number of characters to show at the beginning
        mask_char: Character to use for masking
    """
    if not data or len(data) <= visible_chars:
        return mask_char * len(data) if data else ""

    return data[:visible_chars] + mask_char * (len(data) - visible_chars)


def slugify(value: str, max_length: Optional[int] = None) -> str:
    """Lowercase, hyphen-separated slug; 'org' when nothing usable remains"""
    slug = value.lower().strip()
    slug = re.sub(r"[^a-z0-9\s_-]", "", slug)
    slug = re.sub(r"[\s_-]+", "-", slug)
    if max_length is not None:
        slug = slug[:max_length]
    slug = slug.strip("-")
    return slug or "org"


def random_suffix(length: int = 5) -> str:
    """Random base36 string used to disambiguate slugs"""
    return "".join(secrets.choice(_SLUG_ALPHABET) for _ in range(length))
