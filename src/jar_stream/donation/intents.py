"""Donation creation: input validation, payment URL and intent persistence."""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import quote, urlparse

from ..config import Settings, get_settings
from ..identifiers import format_comment, generate_identifier
from ..messages import translate
from ..models import DonationIntent
from ..storage import IntentStore, StreamerStore

logger = logging.getLogger(__name__)

_CONTROL_CHARS = re.compile(r"[\u0000-\u001F\u007F]")
_YOUTUBE_URL = re.compile(
    r"^(?:https?://)?(?:www\.|m\.|music\.)?(?:youtube\.com|youtu\.be|youtube-nocookie\.com)/",
    re.IGNORECASE,
)
_YOUTUBE_ID = re.compile(
    r"(?:youtube(?:-nocookie)?\.com/(?:[^/]+/.+/|(?:v|e(?:mbed)?|shorts|live)/|.*[?&]v=)|youtu\.be/)"
    r"([A-Za-z0-9_-]{11})(?![A-Za-z0-9_-])"
)

MESSAGE_MAX_LENGTH = 500


class DonationValidationError(ValueError):
    """A donor-correctable problem with the submitted donation."""

    def __init__(self, code: str, **params: object) -> None:
        super().__init__(code)
        self.code = code
        self.params = params

    def localized(self, settings: Optional[Settings] = None) -> str:
        settings = settings or get_settings()
        return translate(self.code, settings.locale, **self.params)


@dataclass(slots=True)
class DonationRequest:
    nickname: str
    amount: object
    message: str
    youtube_url: Optional[str] = None
    streamer: Optional[str] = None
    referer: Optional[str] = None


@dataclass(slots=True)
class CreatedIntent:
    payment_url: str
    identifier: str
    intent: DonationIntent


def sanitize_message(message: str, limit: int = MESSAGE_MAX_LENGTH) -> str:
    """Strip control characters and surrounding whitespace, truncate to ``limit``."""

    cleaned = _CONTROL_CHARS.sub("", message or "").strip()
    return cleaned[:limit].rstrip()


def extract_video_id(url: str) -> Optional[str]:
    """Return the 11-character video id from a watch/share/embed URL."""

    if not url or not _YOUTUBE_URL.match(url.strip()):
        return None
    match = _YOUTUBE_ID.search(url.strip())
    return match.group(1) if match else None


def build_payment_url(base_url: str, jar_id: str, amount: int, comment: str) -> str:
    """Jar payment link with the amount and the comment pre-filled."""

    return f"{base_url.rstrip('/')}/jar/{jar_id}?a={int(amount)}&t={quote(comment, safe='')}"


def parse_amount(raw: object, minimum: int, maximum: int) -> int:
    try:
        value = float(str(raw).strip()) if raw is not None else math.nan
    except ValueError:
        raise DonationValidationError("amount_invalid") from None
    if not math.isfinite(value):
        raise DonationValidationError("amount_invalid")
    amount = int(round(value))
    if amount < minimum or amount > maximum:
        raise DonationValidationError("amount_out_of_range", min=minimum, max=maximum)
    return amount


def slug_from_referer(referer: Optional[str]) -> Optional[str]:
    """First path segment of the donation page URL (``/<slug>``)."""

    if not referer:
        return None
    path = urlparse(referer).path
    segments = [segment for segment in path.split("/") if segment]
    return segments[0].lower() if segments else None


def create_intent(
    request: DonationRequest,
    streamers: StreamerStore,
    intents: IntentStore,
    settings: Optional[Settings] = None,
) -> CreatedIntent:
    """Validate the donation, persist the intent and return the payment redirect."""

    settings = settings or get_settings()

    nickname = (request.nickname or "").strip()
    if not nickname:
        raise DonationValidationError("nickname_required")
    if len(nickname) > settings.nickname_max_length:
        raise DonationValidationError("nickname_too_long", limit=settings.nickname_max_length)

    message = sanitize_message(request.message or "", settings.message_max_length)
    if not message:
        raise DonationValidationError("message_required")

    amount = parse_amount(request.amount, settings.amount_min, settings.amount_max)

    youtube_url = (request.youtube_url or "").strip() or None
    if youtube_url and extract_video_id(youtube_url) is None:
        raise DonationValidationError("youtube_url_invalid")

    slug = (request.streamer or "").strip().lower() or slug_from_referer(request.referer)
    streamer_id = streamers.find_streamer_id_by_slug(slug) if slug else None
    if streamer_id is None:
        raise DonationValidationError("recipient_not_found")
    config = streamers.get_config(streamer_id)
    if config is None or not config.jar_id:
        raise DonationValidationError("jar_not_configured")

    identifier = generate_identifier()
    intent = DonationIntent(
        identifier=identifier,
        streamer_id=streamer_id,
        nickname=nickname,
        message=message,
        amount=amount,
        youtube_url=youtube_url,
        created_at=datetime.now(timezone.utc),
    )
    intents.append(intent)

    payment_url = build_payment_url(
        str(settings.payment_base_url), config.jar_id, amount, format_comment(message, identifier)
    )
    logger.info(
        "intent.created",
        extra={"streamer_id": streamer_id, "identifier": identifier, "amount": amount, "video": bool(youtube_url)},
    )
    return CreatedIntent(payment_url=payment_url, identifier=identifier, intent=intent)
