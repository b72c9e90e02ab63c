"""Brand, locale, service and recipient resolution for billing events."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generic, Mapping, Sequence, TypeVar

from loguru import logger

from paymail_api.core.settings import Settings, get_settings
from paymail_api.domain.brands import BrandKey, Locale
from paymail_api.domain.events import EventContext

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class MetadataTier:
    """One metadata source, consulted in list order."""

    name: str
    select: Callable[[EventContext], Mapping[str, Any]]


DEFAULT_TIERS: tuple[MetadataTier, ...] = (
    MetadataTier("event", lambda context: context.metadata.event),
    MetadataTier("customer", lambda context: context.metadata.customer),
    MetadataTier("price", lambda context: context.metadata.price),
    MetadataTier("product", lambda context: context.metadata.product),
)


@dataclass(frozen=True, slots=True)
class TierMatch(Generic[T]):
    value: T
    source: str


def resolve_from_tiers(
    context: EventContext,
    tiers: Sequence[MetadataTier],
    keys: Sequence[str],
    parse: Callable[[Any], T | None],
) -> TierMatch[T] | None:
    """Return the first tier value that ``parse`` accepts.

    Values ``parse`` rejects are treated as absent and the walk continues, so an
    invalid value on a higher tier never shadows a valid one below it.
    """

    for tier in tiers:
        metadata = tier.select(context) or {}
        for key in keys:
            raw = metadata.get(key)
            if raw is None:
                continue
            parsed = parse(raw)
            if parsed is not None:
                return TierMatch(value=parsed, source=tier.name)
            logger.debug("Ignoring unrecognized metadata value", tier=tier.name, key=key, value=str(raw))
    return None


def _parse_service_id(value: Any) -> str | None:
    if isinstance(value, str):
        cleaned = value.strip()
        return cleaned or None
    return None


@dataclass(frozen=True, slots=True)
class BrandLocaleResolution:
    brand: BrandKey
    locale: Locale
    service_id: str | None
    brand_source: str
    locale_source: str


class BrandLocaleResolver:
    """Resolves brand, locale and service id independently across metadata tiers."""

    BRAND_KEYS = ("brand",)
    LOCALE_KEYS = ("locale",)
    SERVICE_KEYS = ("service_id", "service")

    def __init__(
        self,
        *,
        default_brand: BrandKey,
        default_locale: Locale = Locale.EN,
        tiers: Sequence[MetadataTier] = DEFAULT_TIERS,
    ) -> None:
        self._default_brand = default_brand
        self._default_locale = default_locale
        self._tiers = tuple(tiers)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "BrandLocaleResolver":
        active = settings or get_settings()
        return cls(
            default_brand=BrandKey(active.brand_default),
            default_locale=Locale(active.locale_default),
        )

    def resolve(self, context: EventContext) -> BrandLocaleResolution:
        brand = resolve_from_tiers(context, self._tiers, self.BRAND_KEYS, BrandKey.parse)
        locale = resolve_from_tiers(context, self._tiers, self.LOCALE_KEYS, Locale.parse)
        service = resolve_from_tiers(context, self._tiers, self.SERVICE_KEYS, _parse_service_id)
        return BrandLocaleResolution(
            brand=brand.value if brand else self._default_brand,
            locale=locale.value if locale else self._default_locale,
            service_id=service.value if service else None,
            brand_source=brand.source if brand else "default",
            locale_source=locale.source if locale else "default",
        )


@dataclass(frozen=True, slots=True)
class RecipientResolution:
    address: str | None
    original: str | None
    overridden: bool = False


class RecipientResolver:
    """Picks one destination address, routing fixtures to the test inbox."""

    def __init__(self, *, test_to: str | None = None, test_domain: str = "example.com") -> None:
        self._test_to = (test_to or "").strip() or None
        self._test_domain = test_domain.strip().lower().lstrip("@")

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "RecipientResolver":
        active = settings or get_settings()
        return cls(test_to=active.test_to, test_domain=active.test_routing_domain)

    def resolve(self, context: EventContext) -> RecipientResolution:
        candidate = None
        for value in (context.invoice_email, context.account_email, context.customer_email):
            if isinstance(value, str) and value.strip():
                candidate = value.strip()
                break

        if self._test_to and (candidate is None or self._is_reserved(candidate)):
            logger.info("Test recipient override active", recipient=self._test_to, original=candidate)
            return RecipientResolution(address=self._test_to, original=candidate, overridden=True)
        return RecipientResolution(address=candidate, original=candidate)

    def _is_reserved(self, address: str) -> bool:
        _, _, domain = address.rpartition("@")
        return domain.lower() == self._test_domain


__all__ = [
    "BrandLocaleResolution",
    "BrandLocaleResolver",
    "DEFAULT_TIERS",
    "MetadataTier",
    "RecipientResolution",
    "RecipientResolver",
    "TierMatch",
    "resolve_from_tiers",
]
