"""Shared enums for the link-shortening service.

This module defines all status and classification enums used across the
codebase. Using enums instead of string literals provides type safety and
prevents typos.
"""

from enum import StrEnum

__all__ = ["ErrorKind", "HealthStatus", "RequestStatus", "CacheStatus"]


class ErrorKind(StrEnum):
    """Classification carried by every ``ServiceError``."""

    INVALID_INPUT = "invalid_input"
    NOT_FOUND = "not_found"
    CODE_TAKEN = "code_taken"
    TAG_NAME_TAKEN = "tag_name_taken"
    INTERNAL = "internal"


class HealthStatus(StrEnum):
    """Health check status values."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    DISABLED = "disabled"


class RequestStatus(StrEnum):
    """Request status values for metrics and logging."""

    SUCCESS = "success"
    VALIDATION_ERROR = "validation_error"
    CONFLICT = "conflict"
    ERROR = "error"
    NOT_FOUND = "not_found"


class CacheStatus(StrEnum):
    """Outcome of a cache lookup on the redirect path, used as a metric label."""

    HIT = "hit"
    MISS = "miss"
    ERROR = "error"
    DISABLED = "disabled"
