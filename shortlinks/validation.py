"""Input rules shared by the link and tag services.

Each check raises ``ServiceError`` with kind ``INVALID_INPUT`` and a
caller-safe message; nothing here touches the store.
"""

import datetime
import re
from typing import Optional
from urllib.parse import urlsplit

import validators

from shortlinks.errors import ServiceError

__all__ = [
    "validate_url",
    "validate_expiry",
    "validate_shortcode",
    "normalize_tag_name",
    "as_utc",
    "RESERVED_SHORTCODES",
]

_SHORTCODE_RE = re.compile(r"^[A-Za-z0-9_-]+$")

# Single-segment paths routed ahead of the public redirect.
RESERVED_SHORTCODES = frozenset({"docs", "redoc", "metrics"})


def as_utc(value: datetime.datetime) -> datetime.datetime:
    # Naive datetimes are treated as UTC (SQLite hands them back without tzinfo).
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value.astimezone(datetime.timezone.utc)


def validate_url(raw_url: str, max_length: int) -> str:
    if not raw_url:
        raise ServiceError.invalid_input("URL is required")
    if len(raw_url) > max_length:
        raise ServiceError.invalid_input(f"URL is too long (max {max_length} characters)")
    if not validators.url(raw_url, simple_host=True):
        raise ServiceError.invalid_input("Invalid URL format")
    if urlsplit(raw_url).scheme.lower() not in ("http", "https"):
        raise ServiceError.invalid_input("URL must use http or https scheme")
    return raw_url


def validate_expiry(expires_at: Optional[datetime.datetime], now: datetime.datetime) -> Optional[datetime.datetime]:
    if expires_at is None:
        return None
    expires_at = as_utc(expires_at)
    if expires_at <= now:
        raise ServiceError.invalid_input("expires_at must be set to a future time")
    return expires_at


def validate_shortcode(shortcode: str, max_length: int) -> str:
    if not 1 <= len(shortcode) <= max_length:
        raise ServiceError.invalid_input(f"shortcode must be between 1 and {max_length} characters")
    if not _SHORTCODE_RE.match(shortcode):
        raise ServiceError.invalid_input("shortcode may only contain letters, digits, '-' and '_'")
    if shortcode in RESERVED_SHORTCODES:
        raise ServiceError.invalid_input(f"shortcode '{shortcode}' is reserved")
    return shortcode


def normalize_tag_name(name: str, max_length: int) -> str:
    name = name.strip()
    if not name:
        raise ServiceError.invalid_input("tag name cannot be empty")
    if len(name) > max_length:
        raise ServiceError.invalid_input(f"tag name must be at most {max_length} characters")
    return name
