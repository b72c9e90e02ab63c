"""Billing provider boundary."""

from .stripe_events import StripeEventSource, StripeNotConfiguredError, build_event_context

__all__ = ["StripeEventSource", "StripeNotConfiguredError", "build_event_context"]
