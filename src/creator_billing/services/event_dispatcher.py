"""
Stripe event dispatcher

Routes a verified event to exactly one reconciliation handler. Each delivery
first claims its event id in the ledger, so concurrent or repeated deliveries
run the handler once; the claim is released when nothing was applied. Expected handler failures
(``BusinessException``) are acknowledged; anything else propagates so the
provider retries the delivery.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from functools import partial
from typing import Any, Awaitable, Callable, Dict, Optional

from creator_billing.core.interfaces import IReconciliationStore
from creator_billing.core.responses import BusinessException
from creator_billing.schemas import (
    CheckoutCompleted,
    InvoicePaymentFailed,
    InvoicePaymentSucceeded,
    SubscriptionDeleted,
    SubscriptionUpdated,
    WebhookEvent,
)
from creator_billing.services.reconciliation_service import HandlerResult, ReconciliationService

logger = logging.getLogger(__name__)

PROVIDER = "stripe"

HandlerCall = Callable[[], Awaitable[HandlerResult]]


@dataclass(slots=True)
class DispatchResult:
    event_id: str
    event_type: str
    status: str
    handled: bool = False
    duplicate: bool = False
    log_recorded: bool = False
    details: Dict[str, Any] = field(default_factory=dict)


class EventDispatcher:
    def __init__(
        self,
        reconciliation: ReconciliationService,
        store: IReconciliationStore,
        *,
        retention_hours: int = 72,
        claim_timeout_seconds: int = 300,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.reconciliation = reconciliation
        self.store = store
        self.retention = timedelta(hours=retention_hours)
        self.claim_timeout = timedelta(seconds=claim_timeout_seconds)
        self.clock = clock

    def _resolve_handler(self, event: WebhookEvent) -> Optional[HandlerCall]:
        service = self.reconciliation
        match event:
            case CheckoutCompleted(session=session):
                return partial(service.handle_checkout_completed, session)
            case InvoicePaymentSucceeded(invoice=invoice):
                return partial(service.handle_invoice_payment_succeeded, invoice)
            case InvoicePaymentFailed(invoice=invoice):
                return partial(service.handle_invoice_payment_failed, invoice)
            case SubscriptionUpdated(subscription=subscription):
                return partial(service.handle_subscription_updated, subscription)
            case SubscriptionDeleted(subscription=subscription):
                return partial(service.handle_subscription_deleted, subscription)
            case _:
                return None

    async def dispatch(self, event: WebhookEvent, *, allow_duplicate: bool = False) -> DispatchResult:
        handler = self._resolve_handler(event)
        if handler is None:
            logger.info("[STRIPE] unhandled event type %s (%s) acknowledged", event.type, event.event_id)
            return DispatchResult(event.event_id, event.type, "ignored")

        claimed = False
        if not allow_duplicate:
            now = self.clock()
            claimed = await self.store.claim_webhook_event(
                PROVIDER,
                event.event_id,
                event.type,
                now - self.retention,
                now - self.claim_timeout,
            )
            if not claimed:
                logger.info("[STRIPE] duplicate event ignored: %s", event.event_id)
                return DispatchResult(event.event_id, event.type, "duplicate", duplicate=True)

        logger.info("[STRIPE] dispatching %s (%s)", event.type, event.event_id)
        try:
            outcome = await handler()
        except BusinessException as e:
            logger.warning(
                "[STRIPE] event %s (%s) not applied: %s",
                event.event_id,
                event.type,
                e.message,
            )
            await self._release(event, claimed)
            return DispatchResult(
                event.event_id,
                event.type,
                "failed",
                handled=True,
                details={"error": e.message, "error_code": e.error_code},
            )
        except Exception:
            logger.error("[STRIPE] handler for %s (%s) raised", event.type, event.event_id, exc_info=True)
            await self._release(event, claimed)
            raise

        if outcome.get("status") != "applied":
            # 미적용 이벤트는 기록하지 않음 - 로컬 상태가 따라잡은 뒤 재전송되면 다시 처리
            await self._release(event, claimed)
            return DispatchResult(event.event_id, event.type, outcome.get("status", "skipped"), handled=True, details=outcome)

        status_label = "replayed" if allow_duplicate else "processed"
        log_recorded = await self.store.record_webhook_event(
            PROVIDER,
            event.event_id,
            event.type,
            status_label,
            {"result": outcome},
        )
        return DispatchResult(
            event.event_id,
            event.type,
            status_label,
            handled=True,
            log_recorded=log_recorded,
            details=outcome,
        )

    async def _release(self, event: WebhookEvent, claimed: bool) -> None:
        if claimed:
            await self.store.release_webhook_event(PROVIDER, event.event_id)
