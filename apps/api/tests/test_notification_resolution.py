from paymail_api.domain import BrandKey, EventContext, Locale, MetadataLayers
from paymail_api.services.notifications import BrandLocaleResolver, RecipientResolver


def _context(**metadata) -> EventContext:
    return EventContext(kind="invoice-paid", metadata=MetadataLayers.build(**metadata))


def test_brand_and_locale_resolve_independently_across_tiers() -> None:
    resolver = BrandLocaleResolver(default_brand=BrandKey.YOKWEB, default_locale=Locale.EN)
    context = _context(
        customer={"locale": "PL"},
        product={"brand": "trueweb", "locale": "en"},
    )

    resolution = resolver.resolve(context)

    assert resolution.brand is BrandKey.TRUEWEB
    assert resolution.brand_source == "product"
    assert resolution.locale is Locale.PL
    assert resolution.locale_source == "customer"


def test_event_metadata_wins_over_lower_tiers() -> None:
    resolver = BrandLocaleResolver(default_brand=BrandKey.YOKWEB)
    context = _context(
        event={"brand": "TrueWeb"},
        customer={"brand": "yokweb"},
        price={"brand": "yokweb"},
    )

    assert resolver.resolve(context).brand is BrandKey.TRUEWEB


def test_invalid_values_are_skipped_not_shadowing() -> None:
    resolver = BrandLocaleResolver(default_brand=BrandKey.YOKWEB, default_locale=Locale.EN)
    context = _context(
        event={"brand": "acme", "locale": "de"},
        price={"brand": "trueweb", "locale": "pl"},
    )

    resolution = resolver.resolve(context)

    assert resolution.brand is BrandKey.TRUEWEB
    assert resolution.brand_source == "price"
    assert resolution.locale is Locale.PL


def test_defaults_apply_without_metadata() -> None:
    resolver = BrandLocaleResolver(default_brand=BrandKey.TRUEWEB, default_locale=Locale.PL)

    resolution = resolver.resolve(_context())

    assert resolution.brand is BrandKey.TRUEWEB
    assert resolution.locale is Locale.PL
    assert resolution.brand_source == resolution.locale_source == "default"
    assert resolution.service_id is None


def test_service_id_accepts_either_key() -> None:
    resolver = BrandLocaleResolver(default_brand=BrandKey.YOKWEB)

    assert resolver.resolve(_context(product={"service": " seo-pro "})).service_id == "seo-pro"
    assert resolver.resolve(_context(customer={"service_id": "hosting"}, product={"service": "seo"})).service_id == "hosting"


def test_resolver_reads_defaults_from_settings(settings) -> None:
    configured = settings.model_copy(update={"brand_default": "trueweb", "locale_default": "pl"})

    resolution = BrandLocaleResolver.from_settings(configured).resolve(_context())

    assert resolution.brand is BrandKey.TRUEWEB
    assert resolution.locale is Locale.PL


def test_recipient_priority_order() -> None:
    resolver = RecipientResolver()
    context = EventContext(
        kind="invoice-paid",
        invoice_email=" ",
        account_email="account@yokweb.com",
        customer_email="customer@yokweb.com",
    )

    result = resolver.resolve(context)

    assert result.address == "account@yokweb.com"
    assert result.overridden is False


def test_recipient_absent_without_override() -> None:
    result = RecipientResolver().resolve(EventContext(kind="invoice-paid"))

    assert result.address is None


def test_test_inbox_override_for_missing_or_reserved_addresses() -> None:
    resolver = RecipientResolver(test_to="qa@yokweb.com", test_domain="example.com")

    missing = resolver.resolve(EventContext(kind="invoice-paid"))
    reserved = resolver.resolve(EventContext(kind="invoice-paid", invoice_email="Jan@Example.COM"))
    real = resolver.resolve(EventContext(kind="invoice-paid", invoice_email="jan@client.pl"))

    assert missing.address == "qa@yokweb.com"
    assert missing.overridden is True
    assert reserved.address == "qa@yokweb.com"
    assert reserved.original == "Jan@Example.COM"
    assert real.address == "jan@client.pl"
    assert real.overridden is False
