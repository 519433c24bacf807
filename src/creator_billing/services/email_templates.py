"""Subscriber email templates used by the reconciliation handlers."""
from datetime import datetime
from decimal import Decimal
from html import escape
from typing import Any, Dict, Optional

from creator_billing.core.money import format_amount


def _name(ctx: Dict[str, Any], key: str, fallback: str) -> str:
    return ctx.get(key) or fallback


def _date(value: datetime) -> str:
    return value.strftime("%B %d, %Y")


def welcome_message(ctx: Dict[str, Any], amount: Decimal, app_base_url: str) -> Dict[str, str]:
    fan = _name(ctx, "fan_name", "there")
    artist = _name(ctx, "artist_name", "your artist")
    tier = _name(ctx, "tier_name", "membership")
    link = f"{app_base_url}/dashboard/fan/subscriptions"
    return {
        "to": ctx.get("fan_email") or "",
        "subject": f"Welcome to {artist}'s {tier} tier",
        "html": (
            f"<h1>Welcome, {escape(fan)}!</h1>"
            f"<p>You are now subscribed to {escape(artist)}'s {escape(tier)} tier "
            f"for ${format_amount(amount)} per month.</p>"
            f'<p><a href="{link}">Manage your subscriptions</a></p>'
        ),
        "text": (
            f"Welcome, {fan}!\n\n"
            f"You are now subscribed to {artist}'s {tier} tier for ${format_amount(amount)} per month.\n\n"
            f"Manage your subscriptions: {link}"
        ),
    }


def new_subscriber_message(ctx: Dict[str, Any], amount: Decimal, app_base_url: str) -> Dict[str, str]:
    fan = _name(ctx, "fan_name", "A new fan")
    tier = _name(ctx, "tier_name", "membership")
    link = f"{app_base_url}/dashboard/artist"
    return {
        "to": ctx.get("artist_email") or "",
        "subject": f"New subscriber: {fan}",
        "html": (
            "<h1>You have a new subscriber</h1>"
            f"<p>{escape(fan)} joined your {escape(tier)} tier at ${format_amount(amount)} per month.</p>"
            f'<p><a href="{link}">Open your dashboard</a></p>'
        ),
        "text": (
            "You have a new subscriber\n\n"
            f"{fan} joined your {tier} tier at ${format_amount(amount)} per month.\n\n"
            f"Open your dashboard: {link}"
        ),
    }


def payment_receipt_message(ctx: Dict[str, Any], amount: Decimal) -> Dict[str, str]:
    artist = _name(ctx, "artist_name", "your artist")
    return {
        "to": ctx.get("fan_email") or "",
        "subject": f"Payment received - {artist}",
        "html": (
            "<h1>Payment processed</h1>"
            f"<p>Your payment of ${format_amount(amount)} to {escape(artist)} was successful.</p>"
        ),
        "text": f"Payment processed\n\nYour payment of ${format_amount(amount)} to {artist} was successful.",
    }


def payment_failed_message(
    ctx: Dict[str, Any],
    amount: Decimal,
    attempt_count: int,
    next_retry_at: Optional[datetime],
    app_base_url: str,
) -> Dict[str, str]:
    fan = _name(ctx, "fan_name", "there")
    artist = _name(ctx, "artist_name", "your artist")
    link = f"{app_base_url}/dashboard/fan/subscriptions"

    if next_retry_at:
        follow_up_text = f"We will retry the payment on {_date(next_retry_at)}."
        follow_up_html = f"<p>{follow_up_text}</p>"
    else:
        follow_up_text = f"No further attempts are scheduled. Please update your payment method: {link}"
        follow_up_html = (
            "<p>No further attempts are scheduled.</p>"
            f'<p><a href="{link}">Update your payment method</a> to keep your subscription.</p>'
        )

    return {
        "to": ctx.get("fan_email") or "",
        "subject": f"Payment failed - {artist}",
        "html": (
            "<h1>Payment failed</h1>"
            f"<p>Hi {escape(fan)}, your payment of ${format_amount(amount)} to {escape(artist)} "
            f"could not be processed (attempt {attempt_count}).</p>"
            f"{follow_up_html}"
        ),
        "text": (
            "Payment failed\n\n"
            f"Hi {fan}, your payment of ${format_amount(amount)} to {artist} "
            f"could not be processed (attempt {attempt_count}).\n\n"
            f"{follow_up_text}"
        ),
    }
