"""Domain value objects for billing notifications."""

from .brands import BrandAssets, BrandIdentity, BrandKey, Locale, load_brand_identities
from .events import (
    BillingAddress,
    EventContext,
    LegacyKindTable,
    MetadataLayers,
    NotificationDescriptor,
    NotificationKind,
    format_minor_units,
)

__all__ = [
    "BillingAddress",
    "BrandAssets",
    "BrandIdentity",
    "BrandKey",
    "EventContext",
    "LegacyKindTable",
    "Locale",
    "MetadataLayers",
    "NotificationDescriptor",
    "NotificationKind",
    "format_minor_units",
    "load_brand_identities",
]
