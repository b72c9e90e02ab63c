"""Webhook endpoint for Stripe billing events."""

from __future__ import annotations

from typing import Any

import stripe
from fastapi import APIRouter, Depends, HTTPException, Request, status
from loguru import logger

from paymail_api.api.dependencies.notifications import get_notification_dispatcher, get_stripe_event_source
from paymail_api.services.billing import StripeEventSource
from paymail_api.services.notifications import NotificationDispatcher

router = APIRouter(prefix="/billing/webhooks", tags=["billing-webhooks"])


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    source: StripeEventSource = Depends(get_stripe_event_source),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> dict[str, Any]:
    """Verify a Stripe callback and send at most one billing notification for it."""

    if not source.configured:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Stripe webhook secret not configured")

    signature = request.headers.get("Stripe-Signature")
    if not signature:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing Stripe signature header")

    payload = await request.body()
    try:
        event = source.construct_event(payload, signature)
    except stripe.SignatureVerificationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid Stripe signature") from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid payload body") from exc

    kind = source.notification_kind(event)
    if kind is None:
        logger.info("Ignoring Stripe event", event_id=event.get("id"), event_type=event.get("type"))
        return {"received": True, "mailed": False, "error": "ignored"}

    context = await source.load_context(event, kind)
    outcome = await dispatcher.dispatch(context)
    return outcome.as_response()
