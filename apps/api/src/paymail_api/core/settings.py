from functools import lru_cache
from typing import Annotated, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    api_host: str = "127.0.0.1"
    api_port: int = 8000

    # Operator API key guarding read-only observability endpoints (empty disables the check)
    observability_api_key: str = ""

    # Stripe configuration
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""

    # Brand / locale defaults
    brand_default: Literal["yokweb", "trueweb"] = "yokweb"
    locale_default: Literal["en", "pl"] = "en"

    @field_validator("brand_default", "locale_default", mode="before")
    @classmethod
    def _lowercase_choice(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    # Sender identities (SES)
    brand_name_yokweb: str = "Yokweb"
    ses_from_yokweb: str = "Yokweb Billing <no-reply@billing.yokweb.com>"
    ses_reply_to_yokweb: str | None = "billing@yokweb.com"
    ses_region_yokweb: str = "eu-west-1"
    ses_configuration_set_yokweb: str | None = None
    brand_css_url_yokweb: str | None = None

    brand_name_trueweb: str = "Trueweb"
    ses_from_trueweb: str = "Trueweb Billing <no-reply@billing.trueweb.pl>"
    ses_reply_to_trueweb: str | None = "billing@trueweb.pl"
    ses_region_trueweb: str = "eu-central-1"
    ses_configuration_set_trueweb: str | None = None
    brand_css_url_trueweb: str | None = None

    # Template / asset storage
    templates_bucket: str | None = None
    assets_bucket: str | None = None
    object_store_region: str | None = None
    object_store_endpoint_url: str | None = None
    object_store_force_path_style: bool = False
    template_cache_ttl_seconds: int = 300
    stylesheet_fetch_timeout_seconds: float = 5.0

    # Recipient routing
    test_to: str | None = None
    test_routing_domain: str = "example.com"

    # Suppression
    suppression_cache_ttl_seconds: int = 24 * 60 * 60
    suppression_check_timeout_seconds: float = 3.0
    suppression_failure_keywords: Annotated[list[str], NoDecode] = Field(default_factory=lambda: ["suppress", "complaint"])

    @field_validator("suppression_failure_keywords", mode="before")
    @classmethod
    def _parse_keyword_list(cls, value: object) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [item.strip().lower() for item in value.split(",") if item.strip()]
        if isinstance(value, (list, tuple, set)):
            return [str(item).strip().lower() for item in value if str(item).strip()]
        return []

    # Notification kinds
    notification_event_kinds: dict[str, str] = Field(
        default_factory=lambda: {
            "invoice.paid": "invoice-paid",
            "invoice.payment_failed": "payment-failed",
        }
    )
    renewal_billing_reasons: Annotated[list[str], NoDecode] = Field(default_factory=lambda: ["subscription_cycle"])
    notification_legacy_ids: dict[str, str] = Field(
        default_factory=lambda: {
            "invoice-paid": "payment-paid",
            "subscription-renewed": "payment-paid-sub-renew",
        }
    )

    @field_validator("renewal_billing_reasons", mode="before")
    @classmethod
    def _parse_reason_list(cls, value: object) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        if isinstance(value, (list, tuple, set)):
            return [str(item).strip() for item in value if str(item).strip()]
        return []


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
