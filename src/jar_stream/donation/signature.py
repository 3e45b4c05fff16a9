"""Best-effort verification of bank webhook signatures."""

from __future__ import annotations

import base64
import binascii
import hashlib
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

import httpx
from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa

from ..config import Settings, get_settings

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


def _load_public_key(encoded: str):
    raw = base64.b64decode(encoded)
    if raw.lstrip().startswith(b"-----BEGIN"):
        return serialization.load_pem_public_key(raw)
    return serialization.load_der_public_key(raw)


def verify_signature(raw_body: bytes, signature: str, public_key: str) -> bool:
    """Check a base64 signature over ``raw_body`` against a base64 PEM/DER public key."""

    if not signature or not public_key:
        return False
    try:
        key = _load_public_key(public_key)
        decoded = base64.b64decode(signature)
        if isinstance(key, ec.EllipticCurvePublicKey):
            key.verify(decoded, raw_body, ec.ECDSA(hashes.SHA256()))
        elif isinstance(key, rsa.RSAPublicKey):
            key.verify(decoded, raw_body, padding.PKCS1v15(), hashes.SHA256())
        else:
            logger.warning("signature.unsupported_key", extra={"type": type(key).__name__})
            return False
    except InvalidSignature:
        return False
    except (ValueError, TypeError, binascii.Error, UnsupportedAlgorithm) as exc:
        logger.warning("signature.malformed", extra={"error": str(exc)})
        return False
    return True


@dataclass(slots=True)
class _CachedKey:
    key: str
    fetched_at: float


class PublicKeyCache:
    """Per-token public key cache with an injectable clock."""

    def __init__(self, ttl_sec: float, clock: Clock = time.monotonic) -> None:
        self._ttl = ttl_sec
        self._clock = clock
        self._entries: dict[str, _CachedKey] = {}

    @staticmethod
    def _slot(token: str) -> str:
        return hashlib.sha256(token.encode()).hexdigest()

    def get(self, token: str) -> Optional[str]:
        entry = self._entries.get(self._slot(token))
        if entry is None:
            return None
        if self._clock() - entry.fetched_at >= self._ttl:
            self._entries.pop(self._slot(token), None)
            return None
        return entry.key

    def put(self, token: str, key: str) -> None:
        self._entries[self._slot(token)] = _CachedKey(key=key, fetched_at=self._clock())

    def clear(self) -> None:
        self._entries.clear()


class SignatureVerifier:
    """Fetches provider public keys (cached) and validates webhook bodies."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
        cache: Optional[PublicKeyCache] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._client = client or httpx.AsyncClient(
            base_url=str(self._settings.monobank_api_base),
            timeout=self._settings.http_timeout_sec,
        )
        self._cache = cache or PublicKeyCache(self._settings.pubkey_cache_ttl_sec)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def public_key(self, token: str) -> Optional[str]:
        """Return the provider key for ``token``; ``None`` when it cannot be fetched."""

        cached = self._cache.get(token)
        if cached:
            return cached
        try:
            response = await self._client.get("/api/merchant/pubkey", headers={"X-Token": token})
            response.raise_for_status()
            key = response.json().get("key")
        except (httpx.HTTPError, ValueError, AttributeError) as exc:
            logger.warning("signature.pubkey_fetch_failed", extra={"error": str(exc)})
            return None
        if not key:
            logger.warning("signature.pubkey_missing")
            return None
        self._cache.put(token, key)
        logger.info("signature.pubkey_refreshed")
        return key

    async def verify(self, raw_body: bytes, signature: Optional[str], token: Optional[str]) -> bool:
        """Advisory check: any failure degrades to ``False``, never raises."""

        if not signature or not token:
            return False
        key = await self.public_key(token)
        if key is None:
            return False
        return verify_signature(raw_body, signature, key)
