"""Turns a normalized billing event into at most one sent email."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

import httpx
from loguru import logger

from paymail_api.core.settings import Settings, get_settings
from paymail_api.domain.brands import BrandIdentity, BrandKey, load_brand_identities
from paymail_api.domain.events import EventContext
from paymail_api.observability.notifications import NotificationObservabilityStore, get_notification_store
from paymail_api.observability.tracing import pipeline_span

from ..storage.object_store import S3ObjectStore
from ..storage.template_store import TemplateStoreClient
from .backend import EmailBackend, SesEmailBackend
from .renderer import NotificationRenderer
from .resolution import BrandLocaleResolver, RecipientResolver
from .suppression import SuppressionGate

OUTCOME_MAILED = "mailed"
OUTCOME_NO_RECIPIENT = "no_recipient"
OUTCOME_SUPPRESSED = "suppressed"
OUTCOME_RENDER_FAILED = "render_failed"
OUTCOME_SEND_FAILED = "send_failed"


@dataclass(frozen=True, slots=True)
class DispatchOutcome:
    mailed: bool
    reason: str
    kind: str
    brand: str | None = None
    locale: str | None = None
    recipient: str | None = None
    message_id: str | None = None
    detail: str | None = None

    def as_response(self) -> dict[str, object]:
        payload: dict[str, object] = {"received": True, "mailed": self.mailed}
        if self.mailed:
            payload["message_id"] = self.message_id
        else:
            payload["error"] = self.reason
        return payload


class NotificationDispatcher:
    """Resolve, gate, render and send; every failure ends in a ``DispatchOutcome``."""

    def __init__(
        self,
        *,
        brand_locale_resolver: BrandLocaleResolver,
        recipient_resolver: RecipientResolver,
        suppression_gate: SuppressionGate,
        renderer: NotificationRenderer,
        backend: EmailBackend,
        brands: Mapping[BrandKey, BrandIdentity],
        observability: NotificationObservabilityStore | None = None,
    ) -> None:
        self._brand_locale = brand_locale_resolver
        self._recipients = recipient_resolver
        self._gate = suppression_gate
        self._renderer = renderer
        self._backend = backend
        self._brands = brands
        self._observability = observability or get_notification_store()

    @classmethod
    def from_settings(
        cls,
        *,
        settings: Settings | None = None,
        backend: EmailBackend | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> "NotificationDispatcher":
        active = settings or get_settings()
        template_store = TemplateStoreClient(S3ObjectStore(settings=active), settings=active)
        return cls(
            brand_locale_resolver=BrandLocaleResolver.from_settings(active),
            recipient_resolver=RecipientResolver.from_settings(active),
            suppression_gate=SuppressionGate.from_settings(settings=active),
            renderer=NotificationRenderer.from_settings(template_store, settings=active, http_client=http_client),
            backend=backend or SesEmailBackend(),
            brands=load_brand_identities(active),
        )

    @property
    def suppression_gate(self) -> SuppressionGate:
        return self._gate

    async def dispatch(self, context: EventContext) -> DispatchOutcome:
        kind = self._renderer.normalize_kind(context.kind)
        with pipeline_span("notification.resolve", kind=kind, event_id=context.event_id):
            resolution = self._brand_locale.resolve(context)
            recipient = self._recipients.resolve(context)

        brand, locale = resolution.brand, resolution.locale
        bound = logger.bind(
            event_id=context.event_id,
            invoice_id=context.invoice_id,
            kind=kind,
            brand=brand.value,
            locale=locale.value,
            brand_source=resolution.brand_source,
            locale_source=resolution.locale_source,
        )

        if not recipient.address:
            bound.warning("No recipient email found; skipping send")
            return self._finish(kind, OUTCOME_NO_RECIPIENT, brand=brand.value, locale=locale.value)

        address = recipient.address
        identity = self._brands[brand]

        with pipeline_span("notification.suppression_check", region=identity.region):
            decision = await self._gate.check(identity.region, address)
        if not decision.allowed:
            bound.info("Send suppressed", recipient=address, reason=decision.reason, detail=decision.detail)
            return self._finish(
                kind,
                OUTCOME_SUPPRESSED,
                brand=brand.value,
                locale=locale.value,
                recipient=address,
                detail=decision.reason,
            )

        try:
            with pipeline_span("notification.render", brand=brand.value, locale=locale.value):
                rendered = await self._renderer.render(
                    brand,
                    locale,
                    context.kind,
                    resolution.service_id,
                    context.template_data(),
                )
        except Exception as exc:
            bound.exception("Notification render failed", error=str(exc))
            return self._finish(
                kind,
                OUTCOME_RENDER_FAILED,
                brand=brand.value,
                locale=locale.value,
                recipient=address,
                detail=str(exc),
            )

        try:
            with pipeline_span("notification.send", region=identity.region):
                message_id = await self._backend.send_email(
                    region=identity.region,
                    sender=identity.from_address,
                    recipient=address,
                    subject=rendered.subject,
                    body_html=rendered.html,
                    body_text=rendered.text,
                    reply_to=identity.reply_to,
                    configuration_set=identity.configuration_set,
                )
        except Exception as exc:
            bound.error("Email send failed", recipient=address, region=identity.region, error=str(exc))
            self._gate.record_send_failure(address, str(exc))
            return self._finish(
                kind,
                OUTCOME_SEND_FAILED,
                brand=brand.value,
                locale=locale.value,
                recipient=address,
                detail=str(exc),
            )

        bound.info("Notification sent", recipient=address, message_id=message_id, subject=rendered.subject)
        return self._finish(
            kind,
            OUTCOME_MAILED,
            brand=brand.value,
            locale=locale.value,
            recipient=address,
            message_id=message_id,
        )

    def _finish(self, kind: str, reason: str, **fields: str | None) -> DispatchOutcome:
        outcome = DispatchOutcome(mailed=reason == OUTCOME_MAILED, reason=reason, kind=kind, **fields)
        self._observability.record_outcome(kind, reason, message_id=outcome.message_id, detail=outcome.detail)
        return outcome


__all__ = [
    "DispatchOutcome",
    "NotificationDispatcher",
    "OUTCOME_MAILED",
    "OUTCOME_NO_RECIPIENT",
    "OUTCOME_RENDER_FAILED",
    "OUTCOME_SEND_FAILED",
    "OUTCOME_SUPPRESSED",
]
