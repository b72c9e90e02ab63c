"""Stripe webhook verification and normalization into ``EventContext``."""

from __future__ import annotations

import asyncio
from typing import Any, Mapping, Sequence

import stripe
from loguru import logger

from paymail_api.core.settings import Settings, get_settings
from paymail_api.domain.events import BillingAddress, EventContext, MetadataLayers

INVOICE_EXPAND: Sequence[str] = ("lines.data.price.product", "customer")
RENEWED_KIND = "subscription-renewed"
PAID_KINDS = {"invoice-paid", "payment-paid"}


class StripeNotConfiguredError(RuntimeError):
    """Raised when Stripe credentials are missing."""


def to_plain(value: Any) -> Any:
    """Convert Stripe SDK objects into plain dicts/lists."""

    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Mapping):
        return {key: to_plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_plain(item) for item in value]
    to_dict = getattr(value, "to_dict_recursive", None) or getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_plain(to_dict())
    return value


def _mapping(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _string(value: Any) -> str | None:
    if isinstance(value, str):
        cleaned = value.strip()
        return cleaned or None
    return None


def _metadata(record: Mapping[str, Any] | None) -> dict[str, Any]:
    return _mapping((record or {}).get("metadata"))


class StripeEventSource:
    """Verifies Stripe webhooks and builds normalized billing events from them."""

    def __init__(
        self,
        secret_key: str,
        webhook_secret: str,
        *,
        event_kinds: Mapping[str, str],
        renewal_billing_reasons: Sequence[str] = ("subscription_cycle",),
    ) -> None:
        self._secret_key = secret_key
        self._webhook_secret = webhook_secret
        self._event_kinds = dict(event_kinds)
        self._renewal_reasons = {reason.strip() for reason in renewal_billing_reasons if reason}
        if secret_key:
            stripe.api_key = secret_key

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "StripeEventSource":
        active = settings or get_settings()
        return cls(
            active.stripe_secret_key,
            active.stripe_webhook_secret,
            event_kinds=active.notification_event_kinds,
            renewal_billing_reasons=active.renewal_billing_reasons,
        )

    @property
    def configured(self) -> bool:
        return bool(self._secret_key and self._webhook_secret)

    async def _run(self, func: Any, *args: Any, **kwargs: Any) -> Any:
        """Execute blocking Stripe SDK calls in a worker thread."""

        return await asyncio.to_thread(func, *args, **kwargs)

    def construct_event(self, payload: bytes, signature: str) -> dict[str, Any]:
        """Verify the signature and return the event as a plain dict.

        Raises ``stripe.SignatureVerificationError`` on a bad signature.
        """

        if not self.configured:
            raise StripeNotConfiguredError("Stripe secret key or webhook secret not configured")
        event = stripe.Webhook.construct_event(payload, signature, self._webhook_secret)
        return _mapping(to_plain(event))

    def notification_kind(self, event: Mapping[str, Any]) -> str | None:
        """Map an event to a notification kind, ``None`` for event types we do not mail."""

        kind = self._event_kinds.get(str(event.get("type") or ""))
        if kind is None:
            return None
        invoice = _mapping(_mapping(event.get("data")).get("object"))
        if kind in PAID_KINDS and invoice.get("billing_reason") in self._renewal_reasons:
            return RENEWED_KIND
        return kind

    async def load_context(self, event: Mapping[str, Any], kind: str) -> EventContext:
        """Expand the invoice and customer and build the immutable event context."""

        payload_invoice = _mapping(_mapping(event.get("data")).get("object"))
        invoice = await self._expand_invoice(payload_invoice)
        customer = await self._resolve_customer(invoice)
        price, product = self._first_line_records(invoice)
        return build_event_context(
            kind,
            invoice,
            customer=customer,
            price=price,
            product=product,
            event_id=_string(event.get("id")),
        )

    async def _expand_invoice(self, invoice: dict[str, Any]) -> dict[str, Any]:
        invoice_id = _string(invoice.get("id"))
        if not invoice_id:
            return invoice
        try:
            expanded = await self._run(stripe.Invoice.retrieve, invoice_id, expand=list(INVOICE_EXPAND))
        except stripe.StripeError as exc:
            logger.warning("Could not expand invoice; falling back to payload", invoice_id=invoice_id, error=str(exc))
            return invoice
        return _mapping(to_plain(expanded)) or invoice

    async def _resolve_customer(self, invoice: Mapping[str, Any]) -> dict[str, Any] | None:
        customer = invoice.get("customer")
        if isinstance(customer, dict):
            return customer
        customer_id = _string(customer)
        if not customer_id:
            return None
        try:
            retrieved = await self._run(stripe.Customer.retrieve, customer_id)
        except stripe.StripeError as exc:
            logger.warning("Could not retrieve customer", customer_id=customer_id, error=str(exc))
            return None
        record = _mapping(to_plain(retrieved))
        if record.get("deleted"):
            return None
        return record

    @staticmethod
    def _first_line_records(invoice: Mapping[str, Any]) -> tuple[dict[str, Any] | None, dict[str, Any] | None]:
        lines = _mapping(invoice.get("lines")).get("data")
        if not isinstance(lines, list) or not lines:
            return None, None
        line = _mapping(lines[0])
        price = line.get("price")
        if not isinstance(price, dict):
            return None, None
        product = price.get("product")
        return price, product if isinstance(product, dict) else None


def build_event_context(
    kind: str,
    invoice: Mapping[str, Any],
    *,
    customer: Mapping[str, Any] | None = None,
    price: Mapping[str, Any] | None = None,
    product: Mapping[str, Any] | None = None,
    event_id: str | None = None,
) -> EventContext:
    """Normalize a Stripe invoice (plus related records) into an ``EventContext``."""

    address = _mapping(invoice.get("customer_address")) or _mapping((customer or {}).get("address"))
    tax_ids = invoice.get("customer_tax_ids")
    tax_id = None
    if isinstance(tax_ids, list) and tax_ids:
        tax_id = _string(_mapping(tax_ids[0]).get("value"))

    amount_paid = invoice.get("amount_paid")
    amount_due = invoice.get("amount_due")
    amount = amount_paid if isinstance(amount_paid, int) and amount_paid > 0 else amount_due
    display_name = _string(invoice.get("customer_name")) or _string((customer or {}).get("name"))

    return EventContext(
        kind=kind,
        event_id=event_id,
        invoice_id=_string(invoice.get("id")),
        invoice_number=_string(invoice.get("number")),
        amount_minor_units=amount if isinstance(amount, int) else 0,
        currency_code=(_string(invoice.get("currency")) or "").upper(),
        customer_display_name=display_name,
        invoice_email=_string(invoice.get("customer_email")),
        account_email=_string(invoice.get("account_email")),
        customer_email=_string((customer or {}).get("email")),
        billing_address=BillingAddress(
            name=display_name,
            line1=_string(address.get("line1")),
            line2=_string(address.get("line2")),
            postcode=_string(address.get("postal_code")),
            city=_string(address.get("city")),
            country=_string(address.get("country")),
            tax_id=tax_id,
        ),
        hosted_invoice_url=_string(invoice.get("hosted_invoice_url")),
        invoice_pdf_url=_string(invoice.get("invoice_pdf")),
        metadata=MetadataLayers.build(
            event=_metadata(invoice),
            customer=_metadata(customer),
            price=_metadata(price),
            product=_metadata(product),
        ),
    )


__all__ = [
    "INVOICE_EXPAND",
    "StripeEventSource",
    "StripeNotConfiguredError",
    "build_event_context",
    "to_plain",
]
