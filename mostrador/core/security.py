"""Hashing helpers for customer identifiers stored at rest."""

import hashlib
import re

_NON_DIGITS = re.compile(r"\D")


def normalize_email(email: str) -> str:
    """Lower-case and strip an email address."""
    return email.strip().lower()


def hash_email(email: str) -> str:
    """Return the sha256 hex digest of a normalized email.

    Auth records are keyed by this hash so plaintext emails never reach
    the database.
    """
    return hashlib.sha256(normalize_email(email).encode()).hexdigest()


def digits_only(value: str) -> str:
    """Strip every non-digit character (dots, dashes, spaces)."""
    return _NON_DIGITS.sub("", value)
