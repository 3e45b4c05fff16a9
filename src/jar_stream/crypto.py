"""Secret handling for streamer credentials and widget capability tokens."""

from __future__ import annotations

import logging
import secrets
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)


def generate_widget_token() -> str:
    """Unguessable capability token granting a widget read access (256 bits)."""

    return secrets.token_hex(32)


def generate_webhook_id() -> str:
    return secrets.token_urlsafe(18)


class TokenCipher:
    """Encrypts provider API tokens before they reach the store."""

    def __init__(self, key: Optional[str]) -> None:
        self._fernet = Fernet(key.encode()) if key else None
        if self._fernet is None:
            logger.warning("crypto.no_encryption_key")

    @property
    def enabled(self) -> bool:
        return self._fernet is not None

    def encrypt(self, token: str) -> str:
        if not token or self._fernet is None:
            return token
        return self._fernet.encrypt(token.encode()).decode()

    def decrypt(self, stored: Optional[str]) -> Optional[str]:
        if not stored:
            return None
        if self._fernet is None:
            return stored
        try:
            return self._fernet.decrypt(stored.encode()).decode()
        except InvalidToken:
            logger.warning("crypto.decrypt_failed")
            return None
