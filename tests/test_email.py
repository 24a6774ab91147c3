from __future__ import annotations

import smtplib

import pytest

from crm_identity.notifications.email import SmtpEmailSender, confirmation_email


@pytest.fixture
def sender() -> SmtpEmailSender:
    return SmtpEmailSender(host="smtp.test", from_email="noreply@crm.test")


@pytest.mark.parametrize(
    "error", [ValueError("bad header"), smtplib.SMTPException("relay refused"), OSError("unreachable")]
)
def test_send_reports_failure_instead_of_raising(monkeypatch, sender, error):
    def explode(*args, **kwargs):
        raise error

    monkeypatch.setattr(smtplib, "SMTP", explode)

    assert sender.send("a@x.com", "Confirm your CRM account", "<p>hi</p>") is False


def test_unconfigured_sender_logs_instead_of_sending(monkeypatch):
    def unexpected(*args, **kwargs):
        raise AssertionError("smtp must not be contacted")

    monkeypatch.setattr(smtplib, "SMTP", unexpected)

    assert SmtpEmailSender(host="").send("a@x.com", "subject", "body") is True


def test_confirmation_email_escapes_link_and_quotes_lifetime():
    subject, body = confirmation_email("<Amy>", "http://crm.test/c?a=1&token=x", expires_in_hours=6)

    assert subject == "Confirm your CRM account"
    assert "&lt;Amy&gt;" in body
    assert "a=1&amp;token=x" in body
    assert "expire in 6 hours" in body
