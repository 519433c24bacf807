"""
Stripe 이벤트 정산 서비스

Applies subscription lifecycle events to the local subscription aggregate, the
tier/artist counters and the payment failure log. Subscription creation and
cancellation commit together with their counter changes in one store call.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional, Tuple

from creator_billing.core.base_service import BaseService
from creator_billing.core.interfaces import INotificationSender, IReconciliationStore
from creator_billing.core.money import artist_share, from_epoch, minor_to_major, to_decimal
from creator_billing.core.responses import ReconciliationException
from creator_billing.schemas import (
    CheckoutSessionObject,
    InvoiceObject,
    SubscriptionObject,
    SubscriptionStatus,
)
from creator_billing.services import email_templates

HandlerResult = Dict[str, Any]

INITIAL_PERIOD_DAYS = 30
DEFAULT_FAILURE_REASON = "Payment failed"

_METADATA_KEYS = {
    "fan_id": ("fanId", "fan_id"),
    "artist_id": ("artistId", "artist_id"),
    "tier_id": ("tierId", "tier_id"),
    "amount": ("amount",),
}

KNOWN_STATUSES = frozenset(status.value for status in SubscriptionStatus)


def _metadata_value(metadata: Dict[str, Any], keys: Tuple[str, ...]) -> Any:
    """첫 번째로 값이 있는 메타데이터 키의 값"""
    for key in keys:
        value = metadata.get(key)
        if value not in (None, ""):
            return value
    return None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _period_update(start: Any, end: Any) -> Dict[str, datetime]:
    data: Dict[str, datetime] = {}
    period_start = from_epoch(start)
    period_end = from_epoch(end)
    if period_start:
        data["current_period_start"] = period_start
    if period_end:
        data["current_period_end"] = period_end
    return data


class ReconciliationService(BaseService):
    """웹훅 이벤트별 정산 핸들러"""

    def __init__(
        self,
        store: IReconciliationStore,
        notifier: Optional[INotificationSender] = None,
        *,
        app_base_url: str = "",
        clock: Callable[[], datetime] = _utcnow,
    ):
        super().__init__(store, notifier)
        self.app_base_url = app_base_url.rstrip("/")
        self.clock = clock

    async def handle_checkout_completed(self, session: CheckoutSessionObject) -> HandlerResult:
        metadata = session.metadata
        fields: Dict[str, Any] = {name: _metadata_value(metadata, keys) for name, keys in _METADATA_KEYS.items()}
        fields["stripe_subscription_id"] = session.subscription

        missing = self.missing_fields(fields, ["fan_id", "artist_id", "tier_id", "amount", "stripe_subscription_id"])
        if missing:
            self.logger.warning(
                "[STRIPE] checkout session %s missing required metadata: %s",
                session.id,
                ", ".join(missing),
            )
            return {"status": "skipped", "reason": "missing_metadata", "missing": missing}

        amount = to_decimal(fields["amount"])
        if amount is None or amount <= 0:
            self.logger.warning(
                "[STRIPE] checkout session %s has an invalid amount: %r",
                session.id,
                fields["amount"],
            )
            return {"status": "skipped", "reason": "invalid_amount"}

        now = self.clock()
        record, created = await self.store.reconcile_checkout(
            {
                "fan_id": str(fields["fan_id"]),
                "artist_id": str(fields["artist_id"]),
                "tier_id": str(fields["tier_id"]),
                "stripe_subscription_id": fields["stripe_subscription_id"],
                "amount": amount,
                "status": SubscriptionStatus.ACTIVE.value,
                "current_period_start": now,
                "current_period_end": now + timedelta(days=INITIAL_PERIOD_DAYS),
            }
        )
        if not created:
            self.logger.info(
                "[STRIPE] subscription %s already exists; checkout replay ignored",
                fields["stripe_subscription_id"],
            )
            return {"status": "duplicate", "subscription_id": record.get("id")}

        self.logger.info(
            "[STRIPE] subscription %s created for fan=%s tier=%s",
            fields["stripe_subscription_id"],
            record["fan_id"],
            record["tier_id"],
        )

        ctx = await self._notification_context(record)
        notified = await self.send_best_effort(
            ctx and email_templates.welcome_message(ctx, amount, self.app_base_url),
            reason="welcome",
        )
        await self.send_best_effort(
            ctx and email_templates.new_subscriber_message(ctx, amount, self.app_base_url),
            reason="new subscriber",
        )

        return {"status": "applied", "subscription_id": record["id"], "notified": notified}

    async def handle_invoice_payment_succeeded(self, invoice: InvoiceObject) -> HandlerResult:
        external_id = invoice.subscription_id
        if not external_id:
            self.logger.info("[STRIPE] invoice %s is not a subscription invoice", invoice.id)
            return {"status": "ignored", "reason": "not_subscription_invoice"}

        subscription = await self.store.find_subscription_by_external_id(external_id)
        if not subscription:
            self.logger.info("[STRIPE] subscription %s not found for paid invoice %s", external_id, invoice.id)
            return {"status": "not_found"}

        if subscription.get("status") == SubscriptionStatus.CANCELED.value:
            self.logger.warning(
                "[STRIPE] paid invoice %s reactivates canceled subscription %s",
                invoice.id,
                external_id,
            )

        update = {"status": SubscriptionStatus.ACTIVE.value}
        update.update(_period_update(*invoice.billing_period))
        await self.store.update_subscription(subscription["id"], update)

        gross = minor_to_major(invoice.amount_paid)
        earnings = artist_share(gross)
        if earnings > 0:
            await self.store.add_artist_earnings(subscription["artist_id"], earnings)

        self.logger.info(
            "[STRIPE] invoice %s paid: subscription=%s gross=%s artist_share=%s",
            invoice.id,
            external_id,
            gross,
            earnings,
        )

        ctx = await self._notification_context(subscription)
        await self.send_best_effort(
            ctx and email_templates.payment_receipt_message(ctx, gross),
            reason="payment receipt",
        )

        return {"status": "applied", "subscription_id": subscription["id"], "earnings": str(earnings)}

    async def handle_invoice_payment_failed(self, invoice: InvoiceObject) -> HandlerResult:
        external_id = invoice.subscription_id
        if not external_id:
            self.logger.info("[STRIPE] invoice %s is not a subscription invoice", invoice.id)
            return {"status": "ignored", "reason": "not_subscription_invoice"}

        subscription = await self.store.find_subscription_by_external_id(external_id)
        if not subscription:
            self.logger.info("[STRIPE] subscription %s not found for failed invoice %s", external_id, invoice.id)
            return {"status": "not_found"}

        await self.store.update_subscription(subscription["id"], {"status": SubscriptionStatus.PAST_DUE.value})

        amount_due = minor_to_major(invoice.amount_due)
        attempt_count = invoice.attempt_count or 1
        next_retry_at = from_epoch(invoice.next_payment_attempt)
        failure = await self.store.create_payment_failure(
            {
                "subscription_id": subscription["id"],
                "stripe_invoice_id": invoice.id,
                "amount": amount_due,
                "attempt_count": attempt_count,
                "next_retry_at": next_retry_at,
                "failure_reason": invoice.failure_reason or DEFAULT_FAILURE_REASON,
            }
        )
        self.logger.warning(
            "[STRIPE] invoice %s failed: subscription=%s attempt=%s next_retry=%s",
            invoice.id,
            external_id,
            attempt_count,
            next_retry_at.isoformat() if next_retry_at else None,
        )

        ctx = await self._notification_context(subscription)
        notified = await self.send_best_effort(
            ctx
            and email_templates.payment_failed_message(
                ctx, amount_due, attempt_count, next_retry_at, self.app_base_url
            ),
            reason="payment failed",
        )

        return {
            "status": "applied",
            "subscription_id": subscription["id"],
            "payment_failure_id": failure.get("id"),
            "notified": notified,
        }

    async def handle_subscription_updated(self, stripe_subscription: SubscriptionObject) -> HandlerResult:
        status = (stripe_subscription.status or "").strip().upper()
        if status not in KNOWN_STATUSES:
            self.logger.warning(
                "[STRIPE] subscription %s reported unrecognized status %r",
                stripe_subscription.id,
                stripe_subscription.status,
            )
            raise ReconciliationException(
                f"Unrecognized subscription status: {stripe_subscription.status!r}",
                "UNKNOWN_SUBSCRIPTION_STATUS",
            )

        subscription = await self.store.find_subscription_by_external_id(stripe_subscription.id)
        if not subscription:
            self.logger.info("[STRIPE] subscription %s not found for update", stripe_subscription.id)
            return {"status": "not_found"}

        update = {"status": status}
        update.update(_period_update(*stripe_subscription.billing_period))
        await self.store.update_subscription(subscription["id"], update)
        self.logger.info(
            "[STRIPE] subscription %s synced: %s -> %s",
            stripe_subscription.id,
            subscription.get("status"),
            status,
        )

        return {"status": "applied", "subscription_id": subscription["id"], "subscription_status": status}

    async def handle_subscription_deleted(self, stripe_subscription: SubscriptionObject) -> HandlerResult:
        subscription = await self.store.find_subscription_by_external_id(stripe_subscription.id)
        if not subscription:
            self.logger.info("[STRIPE] subscription %s not found for deletion", stripe_subscription.id)
            return {"status": "not_found"}

        canceled = await self.store.reconcile_cancellation(subscription["id"], self.clock())
        if not canceled:
            self.logger.info("[STRIPE] subscription %s already canceled", stripe_subscription.id)
            return {"status": "duplicate", "subscription_id": subscription["id"]}

        self.logger.info("[STRIPE] subscription %s canceled", stripe_subscription.id)

        return {"status": "applied", "subscription_id": subscription["id"]}

    async def _notification_context(self, subscription: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if not self.notifier:
            return None
        try:
            return await self.store.get_notification_context(
                subscription.get("fan_id"),
                subscription.get("artist_id"),
                subscription.get("tier_id"),
            )
        except Exception as e:
            self.logger.warning("[STRIPE] notification context lookup failed: %s", e)
            return None
