import asyncio

import pytest

from app import email_service
from app.email_service import get_sender_email, send_email
from app.email_templates import campaign_email_template, reminder_template
from app.models import Company


def test_reminder_template_escapes_and_skips_empty_rows():
    mjml = reminder_template(
        "Cleaning tomorrow",
        "Hi Jane",
        "Your cleaning is coming up.",
        [("Address", "12 Elm St <b>"), ("Gate code", None)],
        "Sparkle & Shine",
        "See you soon",
    )
    assert "12 Elm St &lt;b&gt;" in mjml
    assert "Gate code" not in mjml
    assert "Sent by Sparkle &amp; Shine" in mjml


def test_campaign_template_splits_paragraphs():
    mjml = campaign_email_template("Spring deal", "First line\nsecond line\n\nNew paragraph", "Sparkle")
    assert "<mj-text>First line<br/>second line</mj-text>" in mjml
    assert "<mj-text>New paragraph</mj-text>" in mjml


def test_sender_uses_verified_company_domain():
    assert get_sender_email(Company(name="Sparkle", email_domain="sparkle.test")) == "Sparkle <bookings@sparkle.test>"
    assert get_sender_email(Company(name="Sparkle")) == email_service.EMAIL_FROM_ADDRESS


def test_send_email_passes_compiled_html_to_resend(monkeypatch):
    sent = []
    monkeypatch.setattr(email_service, "RESEND_API_KEY", "re_platform")
    monkeypatch.setattr(email_service, "compile_mjml_to_html", lambda mjml: "<html>ok</html>")
    monkeypatch.setattr(email_service.resend.Emails, "send", lambda params: sent.append(params) or {"id": "em_1"})

    response = asyncio.run(send_email("jane@example.com", "Hello", "<mjml></mjml>", company=Company(name="Sparkle")))

    assert response == {"id": "em_1"}
    assert sent[0]["to"] == ["jane@example.com"]
    assert sent[0]["html"] == "<html>ok</html>"


def test_send_email_without_any_key_fails(monkeypatch):
    monkeypatch.setattr(email_service, "RESEND_API_KEY", None)
    with pytest.raises(Exception, match="Email service not configured"):
        asyncio.run(send_email("jane@example.com", "Hello", "<mjml></mjml>"))
