"""Stripe webhook reconciliation for the creator subscription platform."""

__version__ = "1.0.0"
