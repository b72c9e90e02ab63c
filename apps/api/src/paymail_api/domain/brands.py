"""Brand identities and locales known to the mailer."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

from paymail_api.core.settings import Settings


class BrandKey(str, Enum):
    YOKWEB = "yokweb"
    TRUEWEB = "trueweb"

    @classmethod
    def parse(cls, value: Any) -> "BrandKey | None":
        """Case-insensitive match against the closed brand set; ``None`` when unknown."""

        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


class Locale(str, Enum):
    EN = "en"
    PL = "pl"

    @classmethod
    def parse(cls, value: Any) -> "Locale | None":
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


@dataclass(frozen=True, slots=True)
class BrandAssets:
    css_url: str | None = None


@dataclass(frozen=True, slots=True)
class BrandIdentity:
    """Static sender identity for one brand, loaded once at startup."""

    key: BrandKey
    display_name: str
    region: str
    from_address: str
    reply_to: str | None
    configuration_set: str | None = None
    assets: BrandAssets = field(default_factory=BrandAssets)

    def as_template_record(self) -> dict[str, Any]:
        """Brand record exposed to templates when no remote brand config exists."""

        return {
            "key": self.key.value,
            "brandName": self.display_name,
            "replyTo": self.reply_to,
            "assets": {"cssUrl": self.assets.css_url},
        }


def load_brand_identities(settings: Settings) -> Mapping[BrandKey, BrandIdentity]:
    """Build the read-only brand registry from settings."""

    identities = {}
    for brand in BrandKey:
        suffix = brand.value
        identities[brand] = BrandIdentity(
            key=brand,
            display_name=getattr(settings, f"brand_name_{suffix}"),
            region=getattr(settings, f"ses_region_{suffix}"),
            from_address=getattr(settings, f"ses_from_{suffix}"),
            reply_to=getattr(settings, f"ses_reply_to_{suffix}") or None,
            configuration_set=getattr(settings, f"ses_configuration_set_{suffix}") or None,
            assets=BrandAssets(css_url=getattr(settings, f"brand_css_url_{suffix}") or None),
        )
    return MappingProxyType(identities)


__all__ = ["BrandAssets", "BrandIdentity", "BrandKey", "Locale", "load_brand_identities"]
