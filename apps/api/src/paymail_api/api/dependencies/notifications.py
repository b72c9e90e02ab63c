"""Request-scoped access to the notification pipeline built at startup."""

from __future__ import annotations

from fastapi import Request

from paymail_api.services.billing import StripeEventSource
from paymail_api.services.notifications import NotificationDispatcher


def get_stripe_event_source(request: Request) -> StripeEventSource:
    source = getattr(request.app.state, "stripe_event_source", None)
    if source is None:
        source = StripeEventSource.from_settings()
        request.app.state.stripe_event_source = source
    return source


def get_notification_dispatcher(request: Request) -> NotificationDispatcher:
    dispatcher = getattr(request.app.state, "notification_dispatcher", None)
    if dispatcher is None:
        dispatcher = NotificationDispatcher.from_settings()
        request.app.state.notification_dispatcher = dispatcher
    return dispatcher
