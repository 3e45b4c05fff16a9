"""Donation identifiers embedded in bank payment comments."""

from __future__ import annotations

import random
import re
from typing import Optional

# Uppercase letters and digits without the look-alikes 0/O and 1/I.
IDENTIFIER_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
IDENTIFIER_PATTERN = re.compile(r"^[A-HJ-NP-Z2-9]{3}-[A-HJ-NP-Z2-9]{6}$")

# Parenthesised run of 6+ identifier characters. The identifier is always
# appended last, so the last match wins over anything the donor typed.
_COMMENT_TOKEN = re.compile(r"\(([A-Z0-9-]{6,})\)", re.IGNORECASE)

_rng = random.SystemRandom()


def _block(length: int) -> str:
    return "".join(_rng.choice(IDENTIFIER_ALPHABET) for _ in range(length))


def generate_identifier() -> str:
    """Return a fresh identifier formatted as ``XXX-XXXXXX``."""

    return f"{_block(3)}-{_block(6)}"


def normalize_identifier(identifier: str) -> str:
    return identifier.strip().upper()


def format_comment(message: str, identifier: str) -> str:
    """Payment comment carrying the reconciliation key as a reserved suffix."""

    return f"{message} ({identifier})"


def extract_identifier(text: str) -> Optional[str]:
    """Return the normalised identifier from a bank comment, if any."""

    matches = _COMMENT_TOKEN.findall(text or "")
    if not matches:
        return None
    return normalize_identifier(matches[-1])
