"""Brand- and locale-aware rendering of billing notification emails."""

from __future__ import annotations

import html
import json
import re
from dataclasses import dataclass
from typing import Any, Mapping

import css_inline
import httpx
from loguru import logger

from paymail_api.core.settings import Settings, get_settings
from paymail_api.domain.brands import BrandIdentity, BrandKey, Locale, load_brand_identities
from paymail_api.domain.events import LegacyKindTable, NotificationDescriptor, NotificationKind

from ..storage.template_store import TemplateNotFoundError, TemplateStoreClient, TemplateStoreError
from ..templating.placeholders import replace_placeholders

FALLBACK_LOCALE = Locale.EN

_STYLE_BLOCK = re.compile(r"<style\b[^>]*>.*?</style\s*>", re.IGNORECASE | re.DOTALL)
_TAG = re.compile(r"<[^>]+>")
_WHITESPACE = re.compile(r"\s+")
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_HEAD_CLOSE = re.compile(r"</head\s*>", re.IGNORECASE)
_REMOTE_LOCATION = re.compile(r"^https?://", re.IGNORECASE)
_OBJECT_LOCATION = re.compile(r"^(?:s3|gs)://([^/]+)/(.+)$", re.IGNORECASE)
_CSS_INLINER = css_inline.CSSInliner(load_remote_stylesheets=False)


class BrandConfigurationError(RuntimeError):
    """Raised when a configured brand record is missing or unreadable."""


@dataclass(frozen=True, slots=True)
class RenderedNotification:
    subject: str
    html: str
    text: str


_FALLBACK_COPY: dict[Locale, dict[str, str]] = {
    Locale.EN: {
        "greeting": "Hi {{customerName|there}},",
        "invoice": "Invoice",
        "amount": "Amount",
        "thanks": "Thanks,",
        NotificationKind.PAYMENT_PAID.value: "We've received your payment.",
        NotificationKind.PAYMENT_FAILED.value: "We couldn't process your payment. Please update your payment details.",
        NotificationKind.SUBSCRIPTION_RENEWED.value: "Your subscription has been renewed.",
        NotificationKind.REFUND_ISSUED.value: "Your refund has been processed.",
        "default": "There is an update on your account.",
    },
    Locale.PL: {
        "greeting": "Dzień dobry,",
        "invoice": "Faktura",
        "amount": "Kwota",
        "thanks": "Dziękujemy,",
        NotificationKind.PAYMENT_PAID.value: "Otrzymaliśmy Twoją płatność.",
        NotificationKind.PAYMENT_FAILED.value: "Nie udało się przetworzyć Twojej płatności. Zaktualizuj dane płatności.",
        NotificationKind.SUBSCRIPTION_RENEWED.value: "Twoja subskrypcja została odnowiona.",
        NotificationKind.REFUND_ISSUED.value: "Zwrot został zrealizowany.",
        "default": "Na Twoim koncie pojawiła się aktualizacja.",
    },
}

_DEFAULT_SUBJECTS: dict[Locale, dict[str, str]] = {
    Locale.EN: {
        NotificationKind.PAYMENT_PAID.value: "{brand}: Payment received — order {invoice}",
        NotificationKind.PAYMENT_FAILED.value: "{brand}: Payment failed",
        NotificationKind.SUBSCRIPTION_RENEWED.value: "{brand}: Subscription renewed",
        NotificationKind.REFUND_ISSUED.value: "{brand}: Refund processed",
        "default": "{brand}: Update",
    },
    Locale.PL: {
        NotificationKind.PAYMENT_PAID.value: "{brand}: Płatność otrzymana — zamówienie {invoice}",
        NotificationKind.PAYMENT_FAILED.value: "{brand}: Płatność nieudana",
        NotificationKind.SUBSCRIPTION_RENEWED.value: "{brand}: Subskrypcja odnowiona",
        NotificationKind.REFUND_ISSUED.value: "{brand}: Zwrot zrealizowany",
        "default": "{brand}: Aktualizacja",
    },
}


def build_fallback_document(kind: str, locale: Locale) -> str:
    """Last-resort HTML body; always renderable, still shows invoice and amount."""

    copy = _FALLBACK_COPY.get(locale, _FALLBACK_COPY[FALLBACK_LOCALE])
    headline = copy.get(kind, copy["default"])
    return (
        "<!doctype html>"
        f'<html lang="{locale.value}"><head><meta charset="utf-8"></head><body>'
        f"<p>{copy['greeting']}</p>"
        f"<p>{html.escape(headline)}</p>"
        f"<p><b>{copy['invoice']}:</b> {{{{invoiceNo|-}}}}<br><b>{copy['amount']}:</b> {{{{amountFormatted|-}}}}</p>"
        f"<p>{copy['thanks']}<br>{{{{brand.brandName}}}}</p>"
        "</body></html>"
    )


def default_subject(kind: str, data: Mapping[str, Any], locale: Locale = FALLBACK_LOCALE) -> str:
    subjects = _DEFAULT_SUBJECTS.get(locale, _DEFAULT_SUBJECTS[FALLBACK_LOCALE])
    pattern = subjects.get(kind, subjects["default"])
    brand = data.get("brand") or {}
    brand_name = brand.get("brandName") if isinstance(brand, Mapping) else None
    invoice = data.get("invoiceNo") or ""
    return pattern.format(brand=brand_name or "", invoice=invoice).strip()


def clean_subject(subject: str) -> str:
    """Single line, no control characters, trimmed."""

    return _WHITESPACE.sub(" ", _CONTROL_CHARS.sub(" ", subject)).strip()


def html_to_text(document: str) -> str:
    """Best-effort plain-text alternative: drop style blocks and tags, collapse whitespace."""

    stripped = _STYLE_BLOCK.sub(" ", document)
    stripped = _TAG.sub(" ", stripped)
    return _WHITESPACE.sub(" ", html.unescape(stripped)).strip()


def inject_stylesheet(document: str, css: str) -> str:
    block = f"<style>{css}</style>"
    if _HEAD_CLOSE.search(document):
        return _HEAD_CLOSE.sub(lambda match: f"{block}{match.group(0)}", document, count=1)
    return f"{block}{document}"


def inline_css(document: str) -> str:
    """Move stylesheet rules onto element ``style`` attributes and drop the style blocks."""

    return _CSS_INLINER.inline(document)


def html_template_paths(descriptor: NotificationDescriptor) -> list[str]:
    brand, kind, locale = descriptor.brand.value, descriptor.kind, descriptor.locale.value
    candidates = [
        f"{brand}/{kind}/{locale}.html",
        f"{brand}/{kind}/{FALLBACK_LOCALE.value}.html",
    ]
    if descriptor.service_id:
        candidates.extend(
            [
                f"{brand}/services/{descriptor.service_id}/{locale}.html",
                f"{brand}/services/{descriptor.service_id}/{FALLBACK_LOCALE.value}.html",
            ]
        )
    return list(dict.fromkeys(candidates))


def subject_template_paths(descriptor: NotificationDescriptor) -> list[str]:
    brand, kind, locale = descriptor.brand.value, descriptor.kind, descriptor.locale.value
    return list(
        dict.fromkeys(
            [
                f"{brand}/{kind}/{locale}.subject.txt",
                f"{brand}/{kind}/{FALLBACK_LOCALE.value}.subject.txt",
            ]
        )
    )


def _escape_leaves(value: Any) -> Any:
    if isinstance(value, str):
        return html.escape(value, quote=True)
    if isinstance(value, Mapping):
        return {key: _escape_leaves(item) for key, item in value.items()}
    return value


class NotificationRenderer:
    """Produces subject/html/text for a (brand, locale, kind, service) descriptor.

    Every lookup has a fallback; only a configured-but-missing brand record
    aborts rendering.
    """

    def __init__(
        self,
        template_store: TemplateStoreClient,
        *,
        brands: Mapping[BrandKey, BrandIdentity],
        legacy_ids: LegacyKindTable,
        templates_container: str | None = None,
        assets_container: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        stylesheet_timeout_seconds: float = 5.0,
    ) -> None:
        self._store = template_store
        self._brands = brands
        self._legacy_ids = legacy_ids
        self._templates_container = templates_container or None
        self._assets_container = assets_container or None
        self._http_client = http_client
        self._stylesheet_timeout = stylesheet_timeout_seconds

    @classmethod
    def from_settings(
        cls,
        template_store: TemplateStoreClient,
        *,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> "NotificationRenderer":
        active = settings or get_settings()
        return cls(
            template_store,
            brands=load_brand_identities(active),
            legacy_ids=LegacyKindTable(active.notification_legacy_ids),
            templates_container=active.templates_bucket,
            assets_container=active.assets_bucket,
            http_client=http_client,
            stylesheet_timeout_seconds=active.stylesheet_fetch_timeout_seconds,
        )

    def normalize_kind(self, kind: str) -> str:
        return self._legacy_ids.normalize(kind)

    async def render(
        self,
        brand: BrandKey,
        locale: Locale,
        notification_kind: str,
        service_id: str | None,
        event_data: Mapping[str, Any],
    ) -> RenderedNotification:
        kind = self.normalize_kind(notification_kind)
        descriptor = NotificationDescriptor(brand=brand, locale=locale, kind=kind, service_id=service_id)

        brand_record = await self.load_brand(brand)
        html_template = await self.load_html_template(descriptor)
        subject_template = await self.load_subject_template(descriptor)

        data = {
            **event_data,
            "brand": brand_record,
            "locale": locale.value,
            "notificationId": kind,
            "serviceId": service_id,
        }

        styled = await self.inline_stylesheet(html_template, brand_record)
        body_html = replace_placeholders(styled, _escape_leaves(data))

        if subject_template is not None:
            subject = clean_subject(replace_placeholders(subject_template, data))
        else:
            subject = ""
        if not subject:
            subject = clean_subject(default_subject(kind, data, locale))

        return RenderedNotification(subject=subject, html=body_html, text=html_to_text(body_html))

    async def load_brand(self, brand: BrandKey) -> dict[str, Any]:
        """Static brand identity merged with ``brands/<brand>.json`` from the assets container."""

        identity = self._brands.get(brand)
        if identity is None:
            raise BrandConfigurationError(f"Unknown brand '{brand.value}'")
        record = identity.as_template_record()
        if not self._assets_container:
            return record

        path = f"brands/{brand.value}.json"
        try:
            raw = await self._store.fetch_text(self._assets_container, path)
        except TemplateNotFoundError as exc:
            raise BrandConfigurationError(f"Brand config {path} not found") from exc
        except TemplateStoreError as exc:
            logger.warning("Brand config fetch failed; using static identity", brand=brand.value, error=str(exc))
            return record

        try:
            remote = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise BrandConfigurationError(f"Brand config {path} is not valid JSON") from exc
        if not isinstance(remote, dict):
            raise BrandConfigurationError(f"Brand config {path} must be a JSON object")

        for key, value in remote.items():
            if isinstance(value, dict) and isinstance(record.get(key), dict):
                record[key] = {**record[key], **value}
            else:
                record[key] = value
        if not record.get("brandName"):
            record["brandName"] = identity.display_name
        return record

    async def load_html_template(self, descriptor: NotificationDescriptor) -> str:
        for path in html_template_paths(descriptor):
            text = await self._store.fetch_optional_text(self._templates_container, path)
            if text:
                logger.debug("HTML template resolved", path=path)
                return text
        logger.info(
            "No HTML template found; using built-in fallback",
            brand=descriptor.brand.value,
            kind=descriptor.kind,
            locale=descriptor.locale.value,
            service_id=descriptor.service_id,
        )
        return build_fallback_document(descriptor.kind, descriptor.locale)

    async def load_subject_template(self, descriptor: NotificationDescriptor) -> str | None:
        for path in subject_template_paths(descriptor):
            text = await self._store.fetch_optional_text(self._templates_container, path)
            if text and text.strip():
                return text
        return None

    async def inline_stylesheet(self, document: str, brand_record: Mapping[str, Any]) -> str:
        assets = brand_record.get("assets")
        location = assets.get("cssUrl") if isinstance(assets, Mapping) else None
        if not isinstance(location, str) or not location.strip():
            return document
        css = await self._fetch_stylesheet(location.strip())
        if not css:
            return document
        injected = inject_stylesheet(document, css)
        try:
            return inline_css(injected)
        except ValueError as exc:
            logger.warning("Stylesheet inlining failed; sending unstyled", location=location, error=str(exc))
            return document

    async def _fetch_stylesheet(self, location: str) -> str | None:
        if _REMOTE_LOCATION.match(location):
            return await self._fetch_remote_stylesheet(location)
        object_match = _OBJECT_LOCATION.match(location)
        if object_match:
            return await self._store.fetch_optional_text(object_match.group(1), object_match.group(2))
        return await self._store.fetch_optional_text(self._assets_container, location)

    async def _fetch_remote_stylesheet(self, url: str) -> str | None:
        close_client = False
        client = self._http_client
        if client is None:
            client = httpx.AsyncClient(timeout=self._stylesheet_timeout)
            close_client = True
        try:
            response = await client.get(url, headers={"Accept": "text/css"})
            response.raise_for_status()
            return response.text
        except httpx.HTTPError as exc:
            logger.warning("Stylesheet fetch failed; sending unstyled", url=url, error=str(exc))
            return None
        finally:
            if close_client:
                await client.aclose()


__all__ = [
    "BrandConfigurationError",
    "NotificationRenderer",
    "RenderedNotification",
    "build_fallback_document",
    "clean_subject",
    "default_subject",
    "html_template_paths",
    "html_to_text",
    "inject_stylesheet",
    "inline_css",
    "subject_template_paths",
]
