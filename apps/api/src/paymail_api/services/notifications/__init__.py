"""Billing notification pipeline: resolution, suppression, rendering and delivery."""

from .backend import EmailBackend, EmailDeliveryError, InMemoryEmailBackend, SesEmailBackend
from .dispatcher import DispatchOutcome, NotificationDispatcher
from .renderer import BrandConfigurationError, NotificationRenderer, RenderedNotification
from .resolution import BrandLocaleResolution, BrandLocaleResolver, RecipientResolution, RecipientResolver
from .suppression import (
    SesSuppressionRegistry,
    SuppressionCache,
    SuppressionDecision,
    SuppressionGate,
    SuppressionLookup,
    SuppressionLookupError,
)

__all__ = [
    "BrandConfigurationError",
    "BrandLocaleResolution",
    "BrandLocaleResolver",
    "DispatchOutcome",
    "EmailBackend",
    "EmailDeliveryError",
    "InMemoryEmailBackend",
    "NotificationDispatcher",
    "NotificationRenderer",
    "RecipientResolution",
    "RecipientResolver",
    "RenderedNotification",
    "SesEmailBackend",
    "SesSuppressionRegistry",
    "SuppressionCache",
    "SuppressionDecision",
    "SuppressionGate",
    "SuppressionLookup",
    "SuppressionLookupError",
]
