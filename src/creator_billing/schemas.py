"""
Stripe 웹훅 이벤트 스키마

Only the fields the reconciliation handlers read are declared; everything else
in the provider payload is kept as extra data and ignored.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
INVOICE_PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
INVOICE_PAYMENT_FAILED = "invoice.payment_failed"
CUSTOMER_SUBSCRIPTION_UPDATED = "customer.subscription.updated"
CUSTOMER_SUBSCRIPTION_DELETED = "customer.subscription.deleted"


class SubscriptionStatus(str, Enum):
    """Local subscription states, plus the provider states mirrored on sync."""
    ACTIVE = "ACTIVE"
    PAST_DUE = "PAST_DUE"
    CANCELED = "CANCELED"
    TRIALING = "TRIALING"
    UNPAID = "UNPAID"
    INCOMPLETE = "INCOMPLETE"
    INCOMPLETE_EXPIRED = "INCOMPLETE_EXPIRED"
    PAUSED = "PAUSED"


def _get(d: Any, *keys: str, default=None):
    cur = d
    for k in keys:
        if not isinstance(cur, dict) or k not in cur:
            return default
        cur = cur[k]
    return cur


def _first_line(container: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    items = _get(container, "data", default=[]) or []
    if items and isinstance(items[0], dict):
        return items[0]
    return {}


def _expandable_id(value: Any) -> Optional[str]:
    """Stripe expandable field: either an id string or the expanded object."""
    if isinstance(value, dict):
        value = value.get("id")
    if value is None:
        return None
    value = str(value).strip()
    return value or None


class StripeObject(BaseModel):
    model_config = ConfigDict(extra="allow")


class CheckoutSessionObject(StripeObject):
    id: Optional[str] = None
    subscription: Optional[str] = None
    customer: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("subscription", "customer", mode="before")
    @classmethod
    def _collapse_expanded(cls, v):
        return _expandable_id(v)

    @field_validator("metadata", mode="before")
    @classmethod
    def _metadata_or_empty(cls, v):
        return v if isinstance(v, dict) else {}


class InvoiceObject(StripeObject):
    id: Optional[str] = None
    subscription: Optional[str] = None
    amount_paid: Optional[int] = 0
    amount_due: Optional[int] = 0
    attempt_count: Optional[int] = None
    next_payment_attempt: Optional[int] = None
    period_start: Optional[int] = None
    period_end: Optional[int] = None
    parent: Optional[Dict[str, Any]] = None
    lines: Optional[Dict[str, Any]] = None
    last_finalization_error: Optional[Dict[str, Any]] = None
    payment_intent: Optional[Any] = None

    @field_validator("subscription", mode="before")
    @classmethod
    def _collapse_expanded(cls, v):
        return _expandable_id(v)

    @property
    def subscription_id(self) -> Optional[str]:
        return self.subscription or _expandable_id(
            _get(self.parent, "subscription_details", "subscription")
        )

    @property
    def billing_period(self) -> Tuple[Optional[int], Optional[int]]:
        if self.period_start is not None and self.period_end is not None:
            return self.period_start, self.period_end
        line_period = _first_line(self.lines).get("period") or {}
        return line_period.get("start"), line_period.get("end")

    @property
    def failure_reason(self) -> Optional[str]:
        return (
            _get(self.last_finalization_error, "message")
            or _get(self.payment_intent, "last_payment_error", "message")
            or None
        )


class SubscriptionObject(StripeObject):
    id: str
    status: Optional[str] = None
    current_period_start: Optional[int] = None
    current_period_end: Optional[int] = None
    items: Optional[Dict[str, Any]] = None

    @property
    def billing_period(self) -> Tuple[Optional[int], Optional[int]]:
        if self.current_period_start is not None and self.current_period_end is not None:
            return self.current_period_start, self.current_period_end
        item = _first_line(self.items)
        return item.get("current_period_start"), item.get("current_period_end")


@dataclass(frozen=True, slots=True)
class CheckoutCompleted:
    event_id: str
    session: CheckoutSessionObject
    type: str = field(default=CHECKOUT_SESSION_COMPLETED, init=False)


@dataclass(frozen=True, slots=True)
class InvoicePaymentSucceeded:
    event_id: str
    invoice: InvoiceObject
    type: str = field(default=INVOICE_PAYMENT_SUCCEEDED, init=False)


@dataclass(frozen=True, slots=True)
class InvoicePaymentFailed:
    event_id: str
    invoice: InvoiceObject
    type: str = field(default=INVOICE_PAYMENT_FAILED, init=False)


@dataclass(frozen=True, slots=True)
class SubscriptionUpdated:
    event_id: str
    subscription: SubscriptionObject
    type: str = field(default=CUSTOMER_SUBSCRIPTION_UPDATED, init=False)


@dataclass(frozen=True, slots=True)
class SubscriptionDeleted:
    event_id: str
    subscription: SubscriptionObject
    type: str = field(default=CUSTOMER_SUBSCRIPTION_DELETED, init=False)


@dataclass(frozen=True, slots=True)
class UnknownEvent:
    event_id: str
    type: str
    data: Dict[str, Any] = field(default_factory=dict)


WebhookEvent = Union[
    CheckoutCompleted,
    InvoicePaymentSucceeded,
    InvoicePaymentFailed,
    SubscriptionUpdated,
    SubscriptionDeleted,
    UnknownEvent,
]


def parse_event(event_id: str, event_type: str, data_object: Dict[str, Any]) -> WebhookEvent:
    """Build the typed variant for an event envelope.

    Raises ``pydantic.ValidationError`` when a recognized event carries an
    object that does not fit its shape.
    """
    if event_type == CHECKOUT_SESSION_COMPLETED:
        return CheckoutCompleted(event_id, CheckoutSessionObject.model_validate(data_object))
    if event_type == INVOICE_PAYMENT_SUCCEEDED:
        return InvoicePaymentSucceeded(event_id, InvoiceObject.model_validate(data_object))
    if event_type == INVOICE_PAYMENT_FAILED:
        return InvoicePaymentFailed(event_id, InvoiceObject.model_validate(data_object))
    if event_type == CUSTOMER_SUBSCRIPTION_UPDATED:
        return SubscriptionUpdated(event_id, SubscriptionObject.model_validate(data_object))
    if event_type == CUSTOMER_SUBSCRIPTION_DELETED:
        return SubscriptionDeleted(event_id, SubscriptionObject.model_validate(data_object))
    return UnknownEvent(event_id, event_type, data_object)
