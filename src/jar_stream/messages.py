"""Donor-facing error strings."""

from __future__ import annotations

from .config import Locale

_CATALOG: dict[Locale, dict[str, str]] = {
    Locale.EN: {
        "nickname_required": "Please enter your nickname.",
        "nickname_too_long": "Nickname must be at most {limit} characters.",
        "message_required": "Please enter a message.",
        "amount_invalid": "Please enter a valid amount.",
        "amount_out_of_range": "Amount must be between {min} and {max}.",
        "youtube_url_invalid": "Please provide a valid YouTube link.",
        "recipient_not_found": "Recipient not found.",
        "jar_not_configured": "This streamer has not connected a donation jar yet.",
        "internal_error": "Something went wrong. Please try again later.",
    },
    Locale.UK: {
        "nickname_required": "Вкажіть нікнейм.",
        "nickname_too_long": "Нікнейм має містити не більше {limit} символів.",
        "message_required": "Напишіть повідомлення.",
        "amount_invalid": "Вкажіть коректну суму.",
        "amount_out_of_range": "Сума має бути від {min} до {max}.",
        "youtube_url_invalid": "Вкажіть коректне посилання на YouTube.",
        "recipient_not_found": "Отримувача не знайдено.",
        "jar_not_configured": "Стрімер ще не підключив банку для донатів.",
        "internal_error": "Сталася помилка. Спробуйте пізніше.",
    },
}


def translate(code: str, locale: Locale = Locale.EN, **params: object) -> str:
    """Return the localized message for ``code``, falling back to English."""

    catalog = _CATALOG.get(locale, _CATALOG[Locale.EN])
    template = catalog.get(code) or _CATALOG[Locale.EN].get(code, code)
    return template.format(**params)
