"""Error types raised by the link and tag services and their stores.

Services raise a single ``ServiceError`` whose ``kind`` tells the caller what
happened; the HTTP layer maps kinds to status codes. Stores signal conflicts
with the narrower exceptions below so the services can classify them.
"""

from typing import Optional

from shortlinks.enums import ErrorKind

__all__ = [
    "ServiceError",
    "ShortcodeConflictError",
    "TagNameConflictError",
]


class ServiceError(Exception):
    """Classified failure of a service operation.

    Attributes:
        kind: What went wrong, see ``ErrorKind``.
        message: Caller-safe description. For ``INTERNAL`` this is opaque.
        cause: Underlying exception, kept for logging only.
    """

    def __init__(self, kind: ErrorKind, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.cause = cause

    def __repr__(self) -> str:
        return f"ServiceError(kind={self.kind.value!r}, message={self.message!r})"

    @classmethod
    def invalid_input(cls, message: str) -> "ServiceError":
        return cls(ErrorKind.INVALID_INPUT, message)

    @classmethod
    def not_found(cls, message: str = "link not found") -> "ServiceError":
        return cls(ErrorKind.NOT_FOUND, message)

    @classmethod
    def code_taken(cls, shortcode: str) -> "ServiceError":
        return cls(ErrorKind.CODE_TAKEN, f"shortcode already taken: {shortcode}")

    @classmethod
    def tag_name_taken(cls, name: str) -> "ServiceError":
        return cls(ErrorKind.TAG_NAME_TAKEN, f"tag name '{name}' already exists")

    @classmethod
    def internal(cls, cause: Optional[BaseException] = None) -> "ServiceError":
        return cls(ErrorKind.INTERNAL, "internal error", cause=cause)


class ShortcodeConflictError(Exception):
    """A write collided with another live link's shortcode."""

    def __init__(self, shortcode: Optional[str]):
        super().__init__(f"shortcode conflict: {shortcode}")
        self.shortcode = shortcode


class TagNameConflictError(Exception):
    """A tag write collided with another tag of the same owner."""

    def __init__(self, name: str):
        super().__init__(f"tag name conflict: {name}")
        self.name = name
