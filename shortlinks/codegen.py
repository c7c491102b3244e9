"""Random short-code generation.

Codes are drawn from a 62-symbol alphabet with nanoid, which reads
``os.urandom`` and masks-and-rejects each byte, so every symbol is equally
likely and codes are not guessable.
"""

from nanoid import generate

__all__ = ["ALPHABET", "generate_short_code"]

ALPHABET = "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"


def generate_short_code(length: int) -> str:
    if not isinstance(length, int) or length <= 0:
        raise ValueError(f"length must be a positive integer, got {length!r}")
    return generate(ALPHABET, length)
