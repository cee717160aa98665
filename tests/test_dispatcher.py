import pytest
import smtplib

import requests

from app.core.config import EmailSettings
from app.models.message_template import EmailTemplate, WebhookConfig
from app.services import dispatcher as dispatcher_module
from app.services import message_templates
from app.services.dispatcher import NotificationDispatcher


class FakeResponse:
    def __init__(self, status_code=200):
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} error")


class FakeSMTP:
    instances = []

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.sent = []
        self.started_tls = False
        self.logged_in = None
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        self.started_tls = True

    def login(self, user, password):
        self.logged_in = (user, password)

    def sendmail(self, sender, recipients, body):
        self.sent.append((sender, recipients, body))


class BrokenSMTP(FakeSMTP):
    def sendmail(self, sender, recipients, body):
        raise smtplib.SMTPRecipientsRefused({recipients[0]: (550, b"no such user")})


@pytest.fixture(autouse=True)
def reset_fake_smtp():
    FakeSMTP.instances = []


@pytest.fixture
def smtp_settings():
    return EmailSettings(
        smtp_host="smtp.example.com",
        smtp_port=2525,
        smtp_user="mailer",
        smtp_password="secret",
        smtp_use_tls=True,
        from_address="kpi@example.com",
        smtp_timeout_seconds=5,
    )


@pytest.fixture
def no_transport_settings():
    return EmailSettings(smtp_host=None)


@pytest.fixture
def webhook(db_session, company):
    config = WebhookConfig(company_id=company.id, webhook_url="https://relay.example.com/hook", is_active=True)
    db_session.add(config)
    db_session.commit()
    return config


def test_webhook_delivery(monkeypatch, session_factory, company, webhook, no_transport_settings):
    calls = []

    def fake_post(url, json=None, headers=None, timeout=None):
        calls.append((url, json, timeout))
        return FakeResponse(200)

    monkeypatch.setattr(dispatcher_module.requests, "post", fake_post)
    result = NotificationDispatcher(session_factory, no_transport_settings).send(
        company.id, "eve@example.com", "kpi_set", {"employeeName": "Eve", "link": "http://app/kpis/1"}
    )

    assert result.success is True
    assert result.method == "webhook"
    url, payload, _ = calls[0]
    assert url == "https://relay.example.com/hook"
    assert payload["to"] == "eve@example.com"
    assert payload["subject"] == "KPI Set for Eve"
    assert payload["templateType"] == "kpi_set"
    assert payload["employeeName"] == "Eve"


def test_company_template_overrides_default(monkeypatch, db_session, session_factory, company, webhook, no_transport_settings):
    db_session.add(EmailTemplate(
        company_id=company.id,
        template_type="kpi_assigned",
        subject="Hi {{recipientName}}, new goals from {{managerName}}",
        body_html="<p>{{kpiTitle}}</p>",
        is_active=True,
    ))
    db_session.commit()
    payloads = []
    monkeypatch.setattr(
        dispatcher_module.requests, "post",
        lambda url, json=None, headers=None, timeout=None: payloads.append(json) or FakeResponse(),
    )

    NotificationDispatcher(session_factory, no_transport_settings).send(
        company.id, "eve@example.com", "kpi_assigned",
        {"recipientName": "Eve", "managerName": "Mark", "kpiTitle": "Growth <2026>"},
    )

    assert payloads[0]["subject"] == "Hi Eve, new goals from Mark"
    assert payloads[0]["htmlBody"] == "<p>Growth &lt;2026&gt;</p>"
    assert payloads[0]["textBody"] == "Growth &lt;2026&gt;"


def test_webhook_retries_then_falls_back_to_smtp(monkeypatch, session_factory, company, webhook, smtp_settings):
    attempts = []

    def down(url, json=None, headers=None, timeout=None):
        attempts.append(url)
        raise requests.exceptions.ConnectionError("relay unreachable")

    monkeypatch.setattr(dispatcher_module.requests, "post", down)
    monkeypatch.setattr(dispatcher_module.smtplib, "SMTP", FakeSMTP)

    result = NotificationDispatcher(session_factory, smtp_settings).send(
        company.id, "eve@example.com", "review_completed", {"employeeName": "Eve"}
    )

    assert len(attempts) == 2
    assert result.success is True
    assert result.method == "smtp"
    server = FakeSMTP.instances[0]
    assert (server.host, server.port, server.timeout) == ("smtp.example.com", 2525, 5)
    assert server.started_tls is True
    assert server.logged_in == ("mailer", "secret")
    sender, recipients, body = server.sent[0]
    assert sender == "kpi@example.com"
    assert recipients == ["eve@example.com"]
    assert "KPI Review Completed" in body


def test_http_error_is_not_retried(monkeypatch, session_factory, company, webhook, no_transport_settings):
    attempts = []

    def rejected(url, json=None, headers=None, timeout=None):
        attempts.append(url)
        return FakeResponse(500)

    monkeypatch.setattr(dispatcher_module.requests, "post", rejected)
    result = NotificationDispatcher(session_factory, no_transport_settings).send(
        company.id, "eve@example.com", "kpi_set", {}
    )

    assert len(attempts) == 1
    assert result.success is False
    assert result.skipped is True


def test_smtp_failure_is_reported_not_raised(monkeypatch, session_factory, company, smtp_settings):
    monkeypatch.setattr(dispatcher_module.smtplib, "SMTP", BrokenSMTP)
    result = NotificationDispatcher(session_factory, smtp_settings).send(
        company.id, "ghost@example.com", "kpi_acknowledged", {}
    )
    assert result.success is False
    assert result.method == "smtp"
    assert result.skipped is False
    assert result.error


def test_nothing_configured_is_skipped(session_factory, company, no_transport_settings):
    result = NotificationDispatcher(session_factory, no_transport_settings).send(
        company.id, "eve@example.com", "kpi_set", {}
    )
    assert result.skipped is True
    assert result.method == "none"


def test_missing_recipient_is_skipped(session_factory, company, smtp_settings):
    result = NotificationDispatcher(session_factory, smtp_settings).send(company.id, "", "kpi_set", {})
    assert result.skipped is True
    assert result.error == "No recipient address"


def test_render_leaves_unknown_placeholders_empty():
    assert message_templates.render("Hi {{ name }}{{missing}}!", {"name": "Eve"}) == "Hi Eve!"
    assert message_templates.render("{{x}}", {"x": "<b>"}, escape=True) == "&lt;b&gt;"


def test_unknown_template_type_uses_generic():
    message = message_templates.render_default("something_new", {"link": "http://app"})
    assert message.subject == "KPI Notification"
    assert "http://app" in message.text
