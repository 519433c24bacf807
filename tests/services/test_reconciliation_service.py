"""ReconciliationService 핸들러 테스트"""
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from creator_billing.core.responses import ReconciliationException
from creator_billing.schemas import CheckoutSessionObject, InvoiceObject, SubscriptionObject
from creator_billing.services.reconciliation_service import ReconciliationService

from stubs import ARTIST_ID, FAN_ID, TIER_ID, FailingNotifier

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def _service(store, notifier=None):
    return ReconciliationService(store, notifier, app_base_url="https://app.example.com", clock=lambda: NOW)


def _session(**metadata_overrides):
    metadata = {"fanId": FAN_ID, "artistId": ARTIST_ID, "tierId": TIER_ID, "amount": "10"}
    metadata.update(metadata_overrides)
    return CheckoutSessionObject.model_validate(
        {"id": "cs_1", "subscription": "sub_S", "metadata": {k: v for k, v in metadata.items() if v is not None}}
    )


def _seed(store, status="ACTIVE"):
    return store.add_subscription(
        fan_id=FAN_ID,
        artist_id=ARTIST_ID,
        tier_id=TIER_ID,
        stripe_subscription_id="sub_S",
        amount=Decimal("10"),
        status=status,
    )


@pytest.mark.asyncio
async def test_checkout_creates_active_subscription_and_increments_counters(store, notifier):
    service = _service(store, notifier)

    result = await service.handle_checkout_completed(_session())

    assert result["status"] == "applied"
    record = store.subscription("sub_S")
    assert record["status"] == "ACTIVE"
    assert record["amount"] == Decimal("10")
    assert record["current_period_start"] == NOW
    assert record["current_period_end"] == NOW + timedelta(days=30)
    assert store.tier_counts[TIER_ID] == 1
    assert store.artist_subscribers[ARTIST_ID] == 1


@pytest.mark.asyncio
async def test_checkout_replay_creates_one_row_and_one_increment(store):
    service = _service(store)

    first = await service.handle_checkout_completed(_session())
    second = await service.handle_checkout_completed(_session())

    assert first["status"] == "applied"
    assert second["status"] == "duplicate"
    assert len(store.subscriptions) == 1
    assert store.tier_counts[TIER_ID] == 1
    assert store.artist_subscribers[ARTIST_ID] == 1


@pytest.mark.asyncio
async def test_checkout_accepts_snake_case_metadata(store):
    session = CheckoutSessionObject.model_validate(
        {
            "id": "cs_2",
            "subscription": "sub_S",
            "metadata": {"fan_id": FAN_ID, "artist_id": ARTIST_ID, "tier_id": TIER_ID, "amount": "12.5"},
        }
    )

    result = await _service(store).handle_checkout_completed(session)

    assert result["status"] == "applied"
    assert store.subscription("sub_S")["amount"] == Decimal("12.5")


@pytest.mark.asyncio
async def test_checkout_blank_camel_case_key_falls_back_to_snake_case(store):
    session = CheckoutSessionObject.model_validate(
        {
            "id": "cs_4",
            "subscription": "sub_S",
            "metadata": {"fanId": "", "fan_id": FAN_ID, "artistId": ARTIST_ID, "tierId": TIER_ID, "amount": "10"},
        }
    )

    result = await _service(store).handle_checkout_completed(session)

    assert result["status"] == "applied"
    assert store.subscription("sub_S")["fan_id"] == FAN_ID


@pytest.mark.asyncio
async def test_checkout_missing_metadata_is_a_noop(store):
    result = await _service(store).handle_checkout_completed(_session(tierId=None))

    assert result == {"status": "skipped", "reason": "missing_metadata", "missing": ["tier_id"]}
    assert store.mutations == []


@pytest.mark.asyncio
async def test_checkout_without_provider_subscription_is_a_noop(store):
    session = CheckoutSessionObject.model_validate(
        {"id": "cs_3", "metadata": {"fanId": FAN_ID, "artistId": ARTIST_ID, "tierId": TIER_ID, "amount": "10"}}
    )

    result = await _service(store).handle_checkout_completed(session)

    assert result["missing"] == ["stripe_subscription_id"]
    assert store.mutations == []


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", ["abc", "0", "-5"])
async def test_checkout_with_invalid_amount_is_a_noop(store, amount):
    result = await _service(store).handle_checkout_completed(_session(amount=amount))

    assert result["reason"] == "invalid_amount"
    assert store.mutations == []


@pytest.mark.asyncio
async def test_checkout_notifies_fan_and_artist(store, notifier):
    result = await _service(store, notifier).handle_checkout_completed(_session())

    assert result["notified"] is True
    recipients = [message["to"] for message in notifier.sent]
    assert recipients == ["fan@example.com", "artist@example.com"]
    assert "Gold" in notifier.sent[0]["subject"]
    assert "$10.00" in notifier.sent[0]["text"]


@pytest.mark.asyncio
async def test_notification_failure_does_not_roll_back_checkout(store):
    failing = FailingNotifier()

    result = await _service(store, failing).handle_checkout_completed(_session())

    assert result["status"] == "applied"
    assert result["notified"] is False
    assert failing.attempts == 2
    assert store.subscription("sub_S") is not None
    assert store.tier_counts[TIER_ID] == 1


@pytest.mark.asyncio
async def test_notification_context_failure_is_swallowed(store, notifier):
    store.fail_on.add("get_notification_context")

    result = await _service(store, notifier).handle_checkout_completed(_session())

    assert result["status"] == "applied"
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_invoice_succeeded_reactivates_and_credits_artist(store, notifier):
    subscription = _seed(store, status="PAST_DUE")
    invoice = InvoiceObject.model_validate(
        {"id": "in_1", "subscription": "sub_S", "amount_paid": 1000, "period_start": 1709251200, "period_end": 1711929600}
    )

    result = await _service(store, notifier).handle_invoice_payment_succeeded(invoice)

    assert result["status"] == "applied"
    record = store.subscriptions[subscription["id"]]
    assert record["status"] == "ACTIVE"
    assert record["current_period_start"] == datetime(2024, 3, 1, tzinfo=timezone.utc)
    assert record["current_period_end"] == datetime(2024, 4, 1, tzinfo=timezone.utc)
    assert store.artist_earnings[ARTIST_ID] == Decimal("9.50")
    assert notifier.sent[0]["subject"] == "Payment received - Artist One"


@pytest.mark.asyncio
async def test_invoice_succeeded_accumulates_without_drift(store):
    _seed(store)
    service = _service(store)
    amounts = [199, 1000, 333, 1, 2499] * 200

    for index, amount in enumerate(amounts):
        invoice = InvoiceObject.model_validate({"id": f"in_{index}", "subscription": "sub_S", "amount_paid": amount})
        await service.handle_invoice_payment_succeeded(invoice)

    assert store.artist_earnings[ARTIST_ID] == Decimal(sum(amounts)) / 100 * Decimal("0.95")


@pytest.mark.asyncio
async def test_invoice_succeeded_after_cancellation_still_reactivates(store):
    subscription = _seed(store, status="CANCELED")
    invoice = InvoiceObject.model_validate({"id": "in_late", "subscription": "sub_S", "amount_paid": 500})

    result = await _service(store).handle_invoice_payment_succeeded(invoice)

    assert result["status"] == "applied"
    assert store.subscriptions[subscription["id"]]["status"] == "ACTIVE"


@pytest.mark.asyncio
async def test_one_off_invoice_is_ignored(store):
    invoice = InvoiceObject.model_validate({"id": "in_once", "amount_paid": 1000})

    result = await _service(store).handle_invoice_payment_succeeded(invoice)

    assert result["status"] == "ignored"
    assert store.calls == []


@pytest.mark.asyncio
async def test_invoice_failed_records_failure_and_marks_past_due(store, notifier):
    subscription = _seed(store)
    invoice = InvoiceObject.model_validate(
        {
            "id": "in_fail",
            "subscription": "sub_S",
            "amount_due": 1000,
            "attempt_count": 2,
            "next_payment_attempt": 1709856000,
            "last_finalization_error": {"message": "Your card was declined."},
        }
    )

    result = await _service(store, notifier).handle_invoice_payment_failed(invoice)

    assert result["status"] == "applied"
    assert store.subscriptions[subscription["id"]]["status"] == "PAST_DUE"
    assert len(store.payment_failures) == 1
    failure = store.payment_failures[0]
    assert failure["subscription_id"] == subscription["id"]
    assert failure["stripe_invoice_id"] == "in_fail"
    assert failure["attempt_count"] == 2
    assert failure["amount"] == Decimal("10.00")
    assert failure["next_retry_at"] == datetime(2024, 3, 8, tzinfo=timezone.utc)
    assert failure["failure_reason"] == "Your card was declined."
    assert "March 08, 2024" in notifier.sent[0]["text"]


@pytest.mark.asyncio
async def test_invoice_failed_defaults_when_provider_omits_detail(store, notifier):
    _seed(store)
    invoice = InvoiceObject.model_validate({"id": "in_fail2", "subscription": "sub_S", "amount_due": 1000})

    await _service(store, notifier).handle_invoice_payment_failed(invoice)

    failure = store.payment_failures[0]
    assert failure["attempt_count"] == 1
    assert failure["next_retry_at"] is None
    assert failure["failure_reason"] == "Payment failed"
    assert "update your payment method" in notifier.sent[0]["text"].lower()
    assert "https://app.example.com/dashboard/fan/subscriptions" in notifier.sent[0]["html"]


@pytest.mark.asyncio
async def test_subscription_updated_syncs_uppercased_status_and_period(store):
    subscription = _seed(store)
    stripe_subscription = SubscriptionObject.model_validate(
        {"id": "sub_S", "status": "past_due", "current_period_start": 1709251200, "current_period_end": 1711929600}
    )

    result = await _service(store).handle_subscription_updated(stripe_subscription)

    assert result["subscription_status"] == "PAST_DUE"
    record = store.subscriptions[subscription["id"]]
    assert record["status"] == "PAST_DUE"
    assert record["current_period_end"] == datetime(2024, 4, 1, tzinfo=timezone.utc)
    assert store.tier_counts[TIER_ID] == 0


@pytest.mark.asyncio
async def test_subscription_updated_rejects_unknown_status(store):
    _seed(store)
    stripe_subscription = SubscriptionObject.model_validate({"id": "sub_S", "status": "frozen_solid"})

    with pytest.raises(ReconciliationException) as exc_info:
        await _service(store).handle_subscription_updated(stripe_subscription)

    assert exc_info.value.error_code == "UNKNOWN_SUBSCRIPTION_STATUS"
    assert store.mutations == []


@pytest.mark.asyncio
async def test_subscription_deleted_cancels_and_decrements(store):
    subscription = _seed(store)
    store.tier_counts[TIER_ID] = 4
    store.artist_subscribers[ARTIST_ID] = 9

    result = await _service(store).handle_subscription_deleted(SubscriptionObject(id="sub_S", status="canceled"))

    assert result["status"] == "applied"
    record = store.subscriptions[subscription["id"]]
    assert record["status"] == "CANCELED"
    assert record["canceled_at"] == NOW
    assert store.tier_counts[TIER_ID] == 3
    assert store.artist_subscribers[ARTIST_ID] == 8


@pytest.mark.asyncio
async def test_subscription_deleted_replay_does_not_decrement_twice(store):
    _seed(store)
    store.tier_counts[TIER_ID] = 1
    store.artist_subscribers[ARTIST_ID] = 1
    service = _service(store)

    await service.handle_subscription_deleted(SubscriptionObject(id="sub_S"))
    result = await service.handle_subscription_deleted(SubscriptionObject(id="sub_S"))

    assert result["status"] == "duplicate"
    assert store.tier_counts[TIER_ID] == 0
    assert store.artist_subscribers[ARTIST_ID] == 0


@pytest.mark.asyncio
async def test_lookup_misses_produce_no_mutations(store):
    service = _service(store)
    invoice = InvoiceObject.model_validate({"id": "in_x", "subscription": "sub_missing", "amount_paid": 1000, "amount_due": 1000})
    stripe_subscription = SubscriptionObject.model_validate({"id": "sub_missing", "status": "active"})

    results = [
        await service.handle_invoice_payment_succeeded(invoice),
        await service.handle_invoice_payment_failed(invoice),
        await service.handle_subscription_updated(stripe_subscription),
        await service.handle_subscription_deleted(stripe_subscription),
    ]

    assert [result["status"] for result in results] == ["not_found"] * 4
    assert store.mutations == []
