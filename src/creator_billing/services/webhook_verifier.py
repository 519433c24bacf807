"""
Stripe webhook verification.

The signature is checked against the raw request body exactly as received;
the body is only parsed after the signature matches.
"""
import json
import logging
from typing import Any, Optional

import stripe
from pydantic import ValidationError

from creator_billing.core.responses import (
    InvalidSignatureException,
    MalformedPayloadException,
    MissingSignatureException,
)
from creator_billing.schemas import WebhookEvent, parse_event

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE_SECONDS = 300


def verify(
    raw_body: bytes,
    signature_header: Optional[str],
    shared_secret: str,
    *,
    tolerance: int = DEFAULT_TOLERANCE_SECONDS,
) -> WebhookEvent:
    """Authenticate a Stripe event and return its typed variant.

    Raises ``MissingSignatureException`` when no signature header was sent,
    ``InvalidSignatureException`` when it does not match the body, and
    ``MalformedPayloadException`` when an authentic body is not a usable event.
    """
    if not signature_header or not signature_header.strip():
        logger.warning("[STRIPE] missing Stripe-Signature header")
        raise MissingSignatureException()

    try:
        payload = raw_body.decode("utf-8")
    except UnicodeDecodeError:
        logger.warning("[STRIPE] webhook body is not valid UTF-8")
        raise InvalidSignatureException()

    try:
        stripe.WebhookSignature.verify_header(payload, signature_header, shared_secret, tolerance)
    except stripe.SignatureVerificationError as e:
        logger.warning("[STRIPE] signature verification failed: %s", e)
        raise InvalidSignatureException()

    try:
        envelope = json.loads(payload)
    except json.JSONDecodeError:
        logger.warning("[STRIPE] signed body is not valid JSON")
        raise MalformedPayloadException()

    return _build_event(envelope)


def _build_event(envelope: Any) -> WebhookEvent:
    if not isinstance(envelope, dict):
        raise MalformedPayloadException()

    event_id = envelope.get("id")
    event_type = envelope.get("type")
    data = envelope.get("data")
    data_object = data.get("object") if isinstance(data, dict) else None

    if not isinstance(event_id, str) or not event_id or not isinstance(event_type, str) or not event_type:
        logger.warning("[STRIPE] event envelope missing id/type")
        raise MalformedPayloadException()
    if not isinstance(data_object, dict):
        logger.warning("[STRIPE] event %s missing data.object", event_id)
        raise MalformedPayloadException()

    try:
        return parse_event(event_id, event_type, data_object)
    except ValidationError as e:
        logger.warning("[STRIPE] event %s (%s) has an unexpected shape: %s", event_id, event_type, e)
        raise MalformedPayloadException()
