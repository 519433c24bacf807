"""
Stripe Webhook Router

Handles Stripe webhook deliveries:
- signature verification against the raw body (Stripe-Signature header)
- dispatch to the subscription reconciliation handlers
- idempotency tracking via processed_webhook_events
"""
import logging
from typing import Optional

from fastapi import APIRouter, Header, Request
from fastapi.responses import JSONResponse

from creator_billing.core.middleware import WEBHOOK_FAILURE_MESSAGE
from creator_billing.core.responses import success_response
from creator_billing.services.event_dispatcher import EventDispatcher
from creator_billing.services.webhook_verifier import DEFAULT_TOLERANCE_SECONDS, verify

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/webhooks", tags=["webhooks", "stripe"])

# 의존성 주입을 위한 전역 변수
dispatcher: Optional[EventDispatcher] = None
webhook_secret: Optional[str] = None
signature_tolerance: int = DEFAULT_TOLERANCE_SECONDS


def set_dependencies(event_dispatcher: EventDispatcher, secret: str, tolerance: int = DEFAULT_TOLERANCE_SECONDS):
    """의존성 설정 (앱 팩토리에서 호출)"""
    global dispatcher, webhook_secret, signature_tolerance
    dispatcher = event_dispatcher
    webhook_secret = secret
    signature_tolerance = tolerance


def _require_dependencies() -> EventDispatcher:
    if dispatcher is None or not webhook_secret:
        raise RuntimeError("stripe_router dependencies are not configured")
    return dispatcher


@router.get("/stripe")
async def stripe_webhook_get():
    return success_response(data={"ok": True}, message="stripe webhook alive")


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: str | None = Header(default=None, alias="Stripe-Signature"),
):
    raw = await request.body()
    logger.info(
        "[STRIPE] webhook received: len=%s, has_signature=%s",
        len(raw),
        bool(stripe_signature),
    )

    event_dispatcher = _require_dependencies()

    # 검증 실패는 BusinessException 핸들러가 400으로 응답
    event = verify(raw, stripe_signature, webhook_secret, tolerance=signature_tolerance)

    try:
        result = await event_dispatcher.dispatch(event)
    except Exception:
        logger.error("[STRIPE] webhook handling failed for %s (%s)", event.event_id, event.type, exc_info=True)
        return JSONResponse(status_code=500, content={"error": WEBHOOK_FAILURE_MESSAGE})

    logger.info("[STRIPE] event %s (%s) acknowledged: %s", result.event_id, result.event_type, result.status)
    return {"received": True}
