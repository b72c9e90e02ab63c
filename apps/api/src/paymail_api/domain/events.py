"""Normalized billing events and notification descriptors."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

from .brands import BrandKey, Locale

_EMPTY: Mapping[str, Any] = MappingProxyType({})

# ISO 4217 codes Stripe treats as zero-decimal
ZERO_DECIMAL_CURRENCIES = frozenset(
    {
        "BIF",
        "CLP",
        "DJF",
        "GNF",
        "JPY",
        "KMF",
        "KRW",
        "MGA",
        "PYG",
        "RWF",
        "UGX",
        "VND",
        "VUV",
        "XAF",
        "XOF",
        "XPF",
    }
)


class NotificationKind(str, Enum):
    """Current notification identifiers with built-in subjects and fallback copy."""

    PAYMENT_PAID = "payment-paid"
    PAYMENT_FAILED = "payment-failed"
    SUBSCRIPTION_RENEWED = "payment-paid-sub-renew"
    REFUND_ISSUED = "refund-issued"


class LegacyKindTable:
    """Rewrites deprecated notification ids to their current names.

    The rewrite is a single lookup, never chained, so applying it to an already
    normalized id is a no-op as long as no current id is itself a legacy key.
    """

    def __init__(self, mapping: Mapping[str, str]) -> None:
        cleaned = {key.strip().lower(): value.strip().lower() for key, value in mapping.items()}
        chained = sorted(value for value in cleaned.values() if value in cleaned and cleaned[value] != value)
        if chained:
            raise ValueError(f"Legacy notification ids must not map onto other legacy ids: {chained}")
        self._mapping = MappingProxyType(cleaned)

    def normalize(self, kind: str) -> str:
        cleaned = (kind or "").strip().lower()
        return self._mapping.get(cleaned, cleaned)

    def __contains__(self, kind: object) -> bool:
        return isinstance(kind, str) and kind.strip().lower() in self._mapping


@dataclass(frozen=True, slots=True)
class BillingAddress:
    name: str | None = None
    line1: str | None = None
    line2: str | None = None
    postcode: str | None = None
    city: str | None = None
    country: str | None = None
    tax_id: str | None = None

    def as_template_record(self) -> dict[str, str]:
        return {
            "name": self.name or "",
            "address_line1": self.line1 or "",
            "address_line2": self.line2 or "",
            "postcode": self.postcode or "",
            "city": self.city or "",
            "country": self.country or "",
            "vat_id": self.tax_id or "",
        }


@dataclass(frozen=True, slots=True)
class MetadataLayers:
    """Metadata maps in resolution priority order."""

    event: Mapping[str, Any] = field(default_factory=lambda: _EMPTY)
    customer: Mapping[str, Any] = field(default_factory=lambda: _EMPTY)
    price: Mapping[str, Any] = field(default_factory=lambda: _EMPTY)
    product: Mapping[str, Any] = field(default_factory=lambda: _EMPTY)

    @classmethod
    def build(
        cls,
        *,
        event: Mapping[str, Any] | None = None,
        customer: Mapping[str, Any] | None = None,
        price: Mapping[str, Any] | None = None,
        product: Mapping[str, Any] | None = None,
    ) -> "MetadataLayers":
        return cls(
            event=_freeze(event),
            customer=_freeze(customer),
            price=_freeze(price),
            product=_freeze(product),
        )


@dataclass(frozen=True, slots=True)
class EventContext:
    """Immutable view of one inbound billing event, built once at the boundary."""

    kind: str
    event_id: str | None = None
    invoice_id: str | None = None
    invoice_number: str | None = None
    amount_minor_units: int = 0
    currency_code: str = ""
    customer_display_name: str | None = None
    invoice_email: str | None = None
    account_email: str | None = None
    customer_email: str | None = None
    billing_address: BillingAddress = field(default_factory=BillingAddress)
    hosted_invoice_url: str | None = None
    invoice_pdf_url: str | None = None
    metadata: MetadataLayers = field(default_factory=MetadataLayers)

    @property
    def formatted_amount(self) -> str:
        return format_minor_units(self.amount_minor_units, self.currency_code)

    def template_data(self) -> dict[str, Any]:
        """Event-derived part of the placeholder data bag.

        Absent values stay ``None`` so template defaults (``{{ customerName | there }}``) apply.
        """

        amount = minor_units_to_decimal(self.amount_minor_units, self.currency_code)
        currency = (self.currency_code or "").upper()
        return {
            "customerName": self.customer_display_name or None,
            "customerEmail": self.invoice_email or self.account_email or self.customer_email or None,
            "invoiceNo": self.invoice_number or self.invoice_id or None,
            "amount": _format_decimal(amount, currency),
            "amountMinor": self.amount_minor_units,
            "currency": currency,
            "amountFormatted": self.formatted_amount,
            "billing": self.billing_address.as_template_record(),
            "hostedInvoiceUrl": self.hosted_invoice_url,
            "invoicePdf": self.invoice_pdf_url,
            "ctaUrl": self.hosted_invoice_url,
            "metadata": dict(self.metadata.event),
        }


@dataclass(frozen=True, slots=True)
class NotificationDescriptor:
    """Lookup key for notification content."""

    brand: BrandKey
    locale: Locale
    kind: str
    service_id: str | None = None


def minor_units_to_decimal(amount: int, currency: str) -> Decimal:
    if (currency or "").upper() in ZERO_DECIMAL_CURRENCIES:
        return Decimal(amount)
    return Decimal(amount) / Decimal(100)


def _format_decimal(amount: Decimal, currency: str) -> str:
    if currency in ZERO_DECIMAL_CURRENCIES:
        return f"{amount:.0f}"
    return f"{amount:.2f}"


def format_minor_units(amount: int, currency: str) -> str:
    """Render minor units as ``"590.00 EUR"``."""

    code = (currency or "").upper()
    numeric = _format_decimal(minor_units_to_decimal(amount, code), code)
    return f"{numeric} {code}".strip()


def _freeze(value: Mapping[str, Any] | None) -> Mapping[str, Any]:
    if not value:
        return _EMPTY
    return MappingProxyType(dict(value))


__all__ = [
    "BillingAddress",
    "EventContext",
    "LegacyKindTable",
    "MetadataLayers",
    "NotificationDescriptor",
    "NotificationKind",
    "ZERO_DECIMAL_CURRENCIES",
    "format_minor_units",
    "minor_units_to_decimal",
]
