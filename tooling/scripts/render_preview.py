"""Render a sample billing notification to disk for template review.

Templates and brand config are read from the configured buckets
(``TEMPLATES_BUCKET`` / ``ASSETS_BUCKET``); without them the built-in fallback
content is rendered. No email is sent and no suppression lookup is made.

Example::
    python tooling/scripts/render_preview.py --brand trueweb --locale pl --kind invoice-paid
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from loguru import logger


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Render a billing notification preview")
    parser.add_argument("--brand", default="yokweb", help="Brand key (yokweb or trueweb).")
    parser.add_argument("--locale", default="en", help="Locale code (en or pl).")
    parser.add_argument(
        "--kind",
        default="invoice-paid",
        help="Notification id; legacy ids such as invoice-paid are normalized.",
    )
    parser.add_argument("--service-id", default=None, help="Optional service sub-id for service templates.")
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("out"),
        help="Directory receiving preview.html and preview.txt (defaults to ./out).",
    )
    return parser.parse_args()


def _ensure_api_on_path() -> None:
    repo_root = Path(__file__).resolve().parents[2]
    api_src = repo_root / "apps" / "api" / "src"
    if str(api_src) not in sys.path:
        sys.path.insert(0, str(api_src))


async def _render(args: argparse.Namespace) -> tuple[str, str, str]:
    _ensure_api_on_path()

    from paymail_api.core.settings import get_settings  # type: ignore import-position
    from paymail_api.domain import BillingAddress, BrandKey, EventContext, Locale  # type: ignore import-position
    from paymail_api.services.notifications import NotificationRenderer  # type: ignore import-position
    from paymail_api.services.storage import S3ObjectStore, TemplateStoreClient  # type: ignore import-position

    brand = BrandKey.parse(args.brand)
    locale = Locale.parse(args.locale)
    if brand is None:
        raise ValueError(f"Unknown brand '{args.brand}'")
    if locale is None:
        raise ValueError(f"Unknown locale '{args.locale}'")

    settings = get_settings()
    sample = EventContext(
        kind=args.kind,
        event_id="evt_preview",
        invoice_id="in_preview",
        invoice_number="INV-2025-0001",
        amount_minor_units=59000,
        currency_code="EUR",
        customer_display_name="Jan Kowalski",
        invoice_email="jan@example.com",
        billing_address=BillingAddress(
            name="Jan Kowalski",
            line1="ul. Prosta 1",
            line2="lok. 2",
            postcode="00-001",
            city="Warszawa",
            country="PL",
            tax_id="PL1234567890",
        ),
        hosted_invoice_url="https://example.com/invoice",
        invoice_pdf_url="https://example.com/invoice.pdf",
    )

    template_store = TemplateStoreClient(S3ObjectStore(settings=settings), settings=settings)
    renderer = NotificationRenderer.from_settings(template_store, settings=settings)
    rendered = await renderer.render(brand, locale, args.kind, args.service_id, sample.template_data())
    return rendered.subject, rendered.html, rendered.text


def main() -> None:
    args = parse_args()
    subject, body_html, body_text = asyncio.run(_render(args))

    output_dir: Path = args.output_dir
    output_dir.mkdir(parents=True, exist_ok=True)
    (output_dir / "preview.html").write_text(body_html, encoding="utf-8")
    (output_dir / "preview.txt").write_text(body_text, encoding="utf-8")

    logger.info("Preview rendered", subject=subject, output_dir=str(output_dir))
    print(f"Subject: {subject}")
    print(f"Wrote {output_dir / 'preview.html'} and {output_dir / 'preview.txt'}")


if __name__ == "__main__":
    main()
