"""Donation intake: intent creation, webhook reconciliation and signatures."""

__all__ = [
    "CreatedIntent",
    "DonationRequest",
    "DonationValidationError",
    "PublicKeyCache",
    "SignatureVerifier",
    "WebhookReconciler",
    "build_payment_url",
    "create_intent",
    "extract_video_id",
    "sanitize_message",
    "verify_signature",
]

from .intents import (
    CreatedIntent,
    DonationRequest,
    DonationValidationError,
    build_payment_url,
    create_intent,
    extract_video_id,
    sanitize_message,
)
from .reconciler import WebhookReconciler
from .signature import PublicKeyCache, SignatureVerifier, verify_signature
