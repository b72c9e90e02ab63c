import json
import re

import httpx
import pytest

from paymail_api.domain import BrandKey, EventContext, Locale, MetadataLayers, NotificationDescriptor
from paymail_api.domain.brands import load_brand_identities
from paymail_api.domain.events import LegacyKindTable
from paymail_api.services.caching import ExpiringCache
from paymail_api.services.notifications import BrandConfigurationError, NotificationRenderer
from paymail_api.services.notifications import renderer as renderer_module
from paymail_api.services.notifications.renderer import html_template_paths, html_to_text, inject_stylesheet
from paymail_api.services.storage import TemplateStoreClient

TEMPLATES = "paymail-templates"
ASSETS = "paymail-assets"


def _event_data(**overrides) -> dict:
    context = EventContext(
        kind="invoice-paid",
        invoice_number="INV-2025-0042",
        amount_minor_units=59000,
        currency_code="eur",
        customer_display_name="Jan <Kowalski>",
        invoice_email="jan@client.pl",
        metadata=MetadataLayers.build(event={"brand": "yokweb"}),
    )
    data = context.template_data()
    data.update(overrides)
    return data


def _renderer(settings, memory_store, clock, *, assets: str | None = None, http_client=None) -> NotificationRenderer:
    store = TemplateStoreClient(memory_store, cache=ExpiringCache(clock=clock))
    return NotificationRenderer(
        store,
        brands=load_brand_identities(settings),
        legacy_ids=LegacyKindTable(settings.notification_legacy_ids),
        templates_container=TEMPLATES,
        assets_container=assets,
        http_client=http_client,
    )


@pytest.mark.asyncio
async def test_legacy_kind_without_templates_uses_fallback_and_default_subject(settings, memory_store, clock) -> None:
    renderer = _renderer(settings, memory_store, clock)

    rendered = await renderer.render(BrandKey.YOKWEB, Locale.EN, "invoice-paid", None, _event_data())

    assert rendered.subject == "Yokweb: Payment received — order INV-2025-0042"
    assert "INV-2025-0042" in rendered.html
    assert "590.00 EUR" in rendered.html
    assert "Hi Jan &lt;Kowalski&gt;," in rendered.html
    assert "Yokweb" in rendered.html
    assert "{{" not in rendered.html
    assert "<p>" not in rendered.text
    assert "590.00 EUR" in rendered.text
    assert any("payment-paid/en.html" in request for request in memory_store.requests)
    assert not any("invoice-paid" in request for request in memory_store.requests)


@pytest.mark.asyncio
async def test_polish_fallback_subject(settings, memory_store, clock) -> None:
    renderer = _renderer(settings, memory_store, clock)

    rendered = await renderer.render(BrandKey.TRUEWEB, Locale.PL, "payment-failed", None, _event_data())

    assert rendered.subject == "Trueweb: Płatność nieudana"
    assert 'lang="pl"' in rendered.html


@pytest.mark.asyncio
async def test_locale_template_then_english_fallback(settings, memory_store, clock) -> None:
    memory_store.put(f"{TEMPLATES}/yokweb/payment-paid/en.html", "<p>EN {{invoiceNo}}</p>")
    memory_store.put(f"{TEMPLATES}/yokweb/payment-paid/pl.subject.txt", "Faktura {{ invoiceNo }}\n")
    renderer = _renderer(settings, memory_store, clock)

    rendered = await renderer.render(BrandKey.YOKWEB, Locale.PL, "payment-paid", None, _event_data())

    assert rendered.html == "<p>EN INV-2025-0042</p>"
    assert rendered.subject == "Faktura INV-2025-0042"
    assert rendered.text == "EN INV-2025-0042"


@pytest.mark.asyncio
async def test_service_template_used_when_kind_template_missing(settings, memory_store, clock) -> None:
    memory_store.put(f"{TEMPLATES}/yokweb/services/seo-pro/en.html", "<p>{{serviceId}} for {{customerName|there}}</p>")
    renderer = _renderer(settings, memory_store, clock)

    rendered = await renderer.render(BrandKey.YOKWEB, Locale.PL, "payment-paid", "seo-pro", _event_data(customerName=None))

    assert rendered.html == "<p>seo-pro for there</p>"


def test_template_candidates_order() -> None:
    descriptor = NotificationDescriptor(brand=BrandKey.TRUEWEB, locale=Locale.PL, kind="payment-paid", service_id="hosting")

    assert html_template_paths(descriptor) == [
        "trueweb/payment-paid/pl.html",
        "trueweb/payment-paid/en.html",
        "trueweb/services/hosting/pl.html",
        "trueweb/services/hosting/en.html",
    ]

    english = NotificationDescriptor(brand=BrandKey.YOKWEB, locale=Locale.EN, kind="payment-paid")
    assert html_template_paths(english) == ["yokweb/payment-paid/en.html"]


@pytest.mark.asyncio
async def test_subject_uses_raw_values_and_html_escapes(settings, memory_store, clock) -> None:
    memory_store.put(f"{TEMPLATES}/yokweb/payment-paid/en.html", "<p>{{customerName}}</p>")
    memory_store.put(f"{TEMPLATES}/yokweb/payment-paid/en.subject.txt", "For {{customerName}}")
    renderer = _renderer(settings, memory_store, clock)

    rendered = await renderer.render(BrandKey.YOKWEB, Locale.EN, "payment-paid", None, _event_data())

    assert rendered.html == "<p>Jan &lt;Kowalski&gt;</p>"
    assert rendered.subject == "For Jan <Kowalski>"


@pytest.mark.asyncio
async def test_brand_config_merged_and_stylesheet_inlined(settings, memory_store, clock) -> None:
    memory_store.put(
        f"{ASSETS}/brands/trueweb.json",
        "\ufeff" + json.dumps({"brandName": "TrueWeb.pl", "assets": {"cssUrl": "css/trueweb.css"}, "supportUrl": "https://trueweb.pl/help"}),
    )
    memory_store.put(f"{ASSETS}/css/trueweb.css", "p { color: #123456; }")
    memory_store.put(
        f"{TEMPLATES}/trueweb/payment-paid/en.html",
        "<html><head></head><body><p>{{brand.brandName}} {{brand.supportUrl}}</p></body></html>",
    )
    renderer = _renderer(settings, memory_store, clock, assets=ASSETS)

    rendered = await renderer.render(BrandKey.TRUEWEB, Locale.EN, "payment-paid", None, _event_data())

    assert re.search(r'<p style="color:\s*#123456;?">TrueWeb.pl https://trueweb.pl/help</p>', rendered.html)
    assert "<style>" not in rendered.html
    assert rendered.subject.startswith("TrueWeb.pl: Payment received")
    assert "color" not in rendered.text


@pytest.mark.asyncio
async def test_missing_brand_config_aborts_render(settings, memory_store, clock) -> None:
    renderer = _renderer(settings, memory_store, clock, assets=ASSETS)

    with pytest.raises(BrandConfigurationError):
        await renderer.render(BrandKey.YOKWEB, Locale.EN, "payment-paid", None, _event_data())


@pytest.mark.asyncio
async def test_unreachable_brand_config_falls_back_to_static_identity(settings, memory_store, clock) -> None:
    memory_store.failing.add(f"{ASSETS}/brands/yokweb.json")
    renderer = _renderer(settings, memory_store, clock, assets=ASSETS)

    rendered = await renderer.render(BrandKey.YOKWEB, Locale.EN, "payment-paid", None, _event_data())

    assert rendered.subject.startswith("Yokweb: ")


@pytest.mark.asyncio
async def test_remote_stylesheet_failure_sends_unstyled(settings, memory_store, clock) -> None:
    memory_store.put(f"{ASSETS}/brands/yokweb.json", json.dumps({"assets": {"cssUrl": "https://cdn.yokweb.com/mail.css"}}))

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
        renderer = _renderer(settings, memory_store, clock, assets=ASSETS, http_client=http_client)
        rendered = await renderer.render(BrandKey.YOKWEB, Locale.EN, "payment-paid", None, _event_data())

    assert "<style>" not in rendered.html
    assert "INV-2025-0042" in rendered.html


@pytest.mark.asyncio
async def test_remote_stylesheet_is_fetched_over_http(settings, memory_store, clock) -> None:
    memory_store.put(f"{ASSETS}/brands/yokweb.json", json.dumps({"assets": {"cssUrl": "https://cdn.yokweb.com/mail.css"}}))
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200, text="body { margin: 0; }", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
        renderer = _renderer(settings, memory_store, clock, assets=ASSETS, http_client=http_client)
        rendered = await renderer.render(BrandKey.YOKWEB, Locale.EN, "payment-paid", None, _event_data())

    assert seen == ["https://cdn.yokweb.com/mail.css"]
    assert re.search(r'<body style="margin:\s*0;?"', rendered.html)
    assert "<style>" not in rendered.html


@pytest.mark.asyncio
async def test_inlining_failure_sends_unstyled(monkeypatch: pytest.MonkeyPatch, settings, memory_store, clock) -> None:
    memory_store.put(f"{ASSETS}/brands/yokweb.json", json.dumps({"assets": {"cssUrl": "css/yokweb.css"}}))
    memory_store.put(f"{ASSETS}/css/yokweb.css", "p { color: #123456; }")
    memory_store.put(f"{TEMPLATES}/yokweb/payment-paid/en.html", "<p>{{invoiceNo}}</p>")

    def broken(document: str) -> str:
        raise ValueError("unparseable stylesheet")

    monkeypatch.setattr(renderer_module, "inline_css", broken)
    renderer = _renderer(settings, memory_store, clock, assets=ASSETS)

    rendered = await renderer.render(BrandKey.YOKWEB, Locale.EN, "payment-paid", None, _event_data())

    assert rendered.html == "<p>INV-2025-0042</p>"


def test_inline_css_moves_rules_onto_elements() -> None:
    document = inject_stylesheet("<html><head></head><body><p>{{ invoiceNo }}</p></body></html>", "p { color: #123456; }")

    inlined = renderer_module.inline_css(document)

    assert re.search(r'<p style="color:\s*#123456;?">\{\{ invoiceNo \}\}</p>', inlined)
    assert "<style>" not in inlined

def test_html_to_text_strips_styles_and_entities() -> None:
    document = "<html><head><style>p{color:red}</style></head><body><p>Paid&nbsp;&amp; done</p>\n\n<p>Thanks</p></body></html>"

    assert html_to_text(document) == "Paid & done Thanks"


def test_inject_stylesheet_without_head_prepends() -> None:
    assert inject_stylesheet("<p>x</p>", "p{}") == "<style>p{}</style><p>x</p>"
