import pytest

from paymail_api.services.notifications import EmailDeliveryError, InMemoryEmailBackend, SesEmailBackend


@pytest.mark.asyncio
async def test_ses_backend_builds_single_recipient_request(ses_client) -> None:
    regions: list[str] = []

    def factory(region: str):
        regions.append(region)
        return ses_client

    backend = SesEmailBackend(client_factory=factory)

    message_id = await backend.send_email(
        region="eu-west-1",
        sender="Yokweb Billing <no-reply@billing.yokweb.com>",
        recipient="jan@client.pl",
        subject="Yokweb: Payment received — order INV-1",
        body_html="<p>Paid</p>",
        body_text="Paid",
        reply_to="billing@yokweb.com",
        configuration_set="billing-events",
    )
    await backend.send_email(
        region="eu-west-1",
        sender="Yokweb Billing <no-reply@billing.yokweb.com>",
        recipient="ops@client.pl",
        subject="Second",
        body_html="<p>Second</p>",
        body_text="Second",
    )

    assert message_id == "ses-1"
    assert regions == ["eu-west-1"]
    request = ses_client.sent[0]
    assert request["Destination"] == {"ToAddresses": ["jan@client.pl"]}
    assert request["ReplyToAddresses"] == ["billing@yokweb.com"]
    assert request["ConfigurationSetName"] == "billing-events"
    simple = request["Content"]["Simple"]
    assert simple["Subject"]["Data"] == "Yokweb: Payment received — order INV-1"
    assert simple["Body"]["Html"]["Charset"] == "UTF-8"
    assert simple["Body"]["Text"]["Data"] == "Paid"
    assert "ConfigurationSetName" not in ses_client.sent[1]
    assert ses_client.sent[1]["ReplyToAddresses"] == []


@pytest.mark.asyncio
async def test_ses_backend_wraps_client_errors(ses_client) -> None:
    ses_client.send_error = ("MessageRejected", "Email address is on the suppression list")
    backend = SesEmailBackend(client_factory=lambda region: ses_client)

    with pytest.raises(EmailDeliveryError) as excinfo:
        await backend.send_email(
            region="eu-central-1",
            sender="billing@trueweb.pl",
            recipient="jan@client.pl",
            subject="x",
            body_html="<p>x</p>",
            body_text="x",
        )

    assert excinfo.value.code == "MessageRejected"
    assert "suppression list" in str(excinfo.value)


@pytest.mark.asyncio
async def test_in_memory_backend_records_messages() -> None:
    backend = InMemoryEmailBackend()

    message_id = await backend.send_email(
        region="eu-central-1",
        sender="billing@trueweb.pl",
        recipient="jan@client.pl",
        subject="Trueweb: Płatność nieudana",
        body_html="<p>Błąd</p>",
        body_text="Błąd",
        reply_to="billing@trueweb.pl",
    )

    assert message_id.startswith("local-")
    message = backend.sent_messages[0]
    assert message["To"] == "jan@client.pl"
    assert message["Reply-To"] == "billing@trueweb.pl"
    assert message.get_body(preferencelist=("html",)).get_content().strip() == "<p>Błąd</p>"
