"""Matches bank statement webhooks to donation intents."""

from __future__ import annotations

import hmac
import json
import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..broadcast import BroadcastHub
from ..config import Settings, get_settings
from ..crypto import TokenCipher
from ..identifiers import extract_identifier
from ..models import DonationEvent, WebhookResult
from ..storage import Database, DuplicateEventError, EventStore, IntentStore, StreamerStore
from .signature import SignatureVerifier

logger = logging.getLogger(__name__)

STATEMENT_ITEM = "StatementItem"


class _Ignored(Exception):
    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


def _statement_item(payload: Any) -> dict[str, Any]:
    if payload.get("type") != STATEMENT_ITEM:
        raise _Ignored("Unsupported event type")
    data = payload.get("data")
    item = data.get("statementItem") if isinstance(data, dict) else None
    if not isinstance(item, dict):
        raise _Ignored("No statement item")
    return item


def _major_amount(item: dict[str, Any]) -> Decimal:
    try:
        minor = Decimal(str(item.get("amount", 0)))
    except InvalidOperation:
        raise _Ignored("Non-positive amount") from None
    if not minor.is_finite():
        raise _Ignored("Non-positive amount")
    amount = (minor.to_integral_value() / 100).quantize(Decimal("0.01"))
    if amount <= 0:
        raise _Ignored("Non-positive amount")
    return amount


class WebhookReconciler:
    """Runs one webhook delivery through parse -> match -> persist -> publish."""

    def __init__(
        self,
        database: Database,
        hub: BroadcastHub,
        verifier: Optional[SignatureVerifier] = None,
        settings: Optional[Settings] = None,
        cipher: Optional[TokenCipher] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._db = database
        self._hub = hub
        self._verifier = verifier
        self._cipher = cipher or TokenCipher(None)

    async def handle(self, webhook_id: str, raw_body: bytes, signature: Optional[str]) -> WebhookResult:
        """Per-streamer endpoint: scoped to the streamer owning ``webhook_id``."""

        with self._db.session() as session:
            config = StreamerStore(session, self._cipher).get_config_by_webhook(webhook_id)
        if config is None:
            logger.info("webhook.unrecognized", extra={"webhook_id": webhook_id})
            return WebhookResult.ignore("Webhook not recognized")

        await self._check_signature(raw_body, signature, config.api_token, config.streamer_id)
        return self._reconcile(raw_body, streamer_id=config.streamer_id)

    async def handle_legacy(self, raw_body: bytes, shared_secret: Optional[str]) -> WebhookResult:
        """Single-tenant endpoint gated by the static admin token; lookups are unscoped."""

        expected = self._settings.admin_token
        if expected is not None and not hmac.compare_digest(
            (shared_secret or "").encode(), expected.get_secret_value().encode()
        ):
            logger.warning("webhook.legacy_unauthorized")
            return WebhookResult.reject("Unauthorized", status_code=401)
        return self._reconcile(raw_body, streamer_id=None)

    async def _check_signature(
        self, raw_body: bytes, signature: Optional[str], token: Optional[str], streamer_id: int
    ) -> None:
        # Advisory only: an unverifiable delivery is still processed.
        if self._verifier is None or not token:
            logger.debug("webhook.signature_skipped", extra={"streamer_id": streamer_id})
            return
        if await self._verifier.verify(raw_body, signature, token):
            logger.debug("webhook.signature_valid", extra={"streamer_id": streamer_id})
            return
        logger.warning(
            "webhook.signature_unverified",
            extra={"streamer_id": streamer_id, "has_signature": bool(signature)},
        )

    def _reconcile(self, raw_body: bytes, streamer_id: Optional[int]) -> WebhookResult:
        try:
            payload = json.loads(raw_body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            logger.warning("webhook.invalid_json", extra={"error": str(exc)})
            return WebhookResult.reject("Invalid JSON")
        if not isinstance(payload, dict):
            logger.warning("webhook.invalid_body")
            return WebhookResult.reject("Invalid body")

        try:
            item = _statement_item(payload)
            amount = _major_amount(item)
            comment = str(item.get("comment") or "")
            description = str(item.get("description") or "")
            identifier = extract_identifier(comment) or extract_identifier(description)
            if identifier is None:
                raise _Ignored("No identifier")
            result = self._persist(identifier, streamer_id, amount, comment or description)
        except _Ignored as ignored:
            logger.info("webhook.ignored", extra={"reason": ignored.reason, "streamer_id": streamer_id})
            return WebhookResult.ignore(ignored.reason)

        if result.event is not None:
            self._hub.publish_donation(result.event)
        return result

    def _persist(
        self, identifier: str, streamer_id: Optional[int], amount: Decimal, comment: str
    ) -> WebhookResult:
        try:
            with self._db.session() as session:
                intents = IntentStore(session)
                intent = intents.find(identifier, streamer_id)
                if intent is None:
                    raise _Ignored("Identifier not found")
                if intent.consumed_at is not None:
                    raise _Ignored("Duplicate delivery")

                config = StreamerStore(session, self._cipher).get_config(intent.streamer_id)
                event = DonationEvent(
                    identifier=intent.identifier,
                    streamer_id=intent.streamer_id,
                    nickname=intent.nickname,
                    message=intent.message,
                    amount=float(amount),
                    mono_comment=comment,
                    jar_title=config.jar_title if config else None,
                    youtube_url=intent.youtube_url,
                    created_at=datetime.now(timezone.utc),
                )
                intents.mark_consumed(intent)
                stored = EventStore(session).append(event)
        except DuplicateEventError:
            raise _Ignored("Duplicate delivery") from None
        except SQLAlchemyError:
            # Acked anyway so the provider does not start a retry storm.
            logger.exception("webhook.persist_failed", extra={"identifier": identifier, "streamer_id": streamer_id})
            return WebhookResult(reason="Persistence failed")

        logger.info(
            "webhook.processed",
            extra={"identifier": stored.identifier, "streamer_id": stored.streamer_id, "amount": str(amount)},
        )
        return WebhookResult(processed=True, event=stored)
