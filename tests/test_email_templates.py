import pytest

import emailer
from email_bulk import available_tags, derive_text_from_html, render_email_template
from email_templates import (
    BUILTIN_TEMPLATES,
    UnknownTemplateError,
    build_reset_email,
    build_welcome_email,
    render_builtin_template,
)


def test_builtin_template_ids():
    assert set(BUILTIN_TEMPLATES) == {"entry-confirmation", "selection-result", "deadline-reminder", "welcome"}


def test_entry_confirmation_escapes_values():
    html = render_builtin_template(
        "entry-confirmation",
        {"name": "<script>x</script>", "dance_style": "Latin", "entry_id": 42},
    )
    assert "&lt;script&gt;" in html
    assert "<script>" not in html
    assert "Latin" in html
    assert "Individual entry" in html


def test_selection_result_variants():
    selected = render_builtin_template("selection-result", {"name": "A", "result": "selected", "message": "Congrats"})
    rejected = render_builtin_template("selection-result", {"name": "A", "result": "rejected"})
    assert "You have been selected" in selected
    assert "You have been selected" not in rejected


def test_unknown_template_raises():
    with pytest.raises(UnknownTemplateError):
        render_builtin_template("nope", {})


def test_welcome_and_reset_emails_carry_links():
    subject, html, text = build_welcome_email("Hanako", "http://app/auth/update-password?token=abc")
    assert "Hanako" in html
    assert "token=abc" in text
    assert subject

    _subject, html, text = build_reset_email("http://app/reset?token=xyz", validity_minutes=30)
    assert "30 minutes" in text
    assert "token=xyz" in html


def test_render_placeholders():
    context = {"name": "Taro & Co", "entry_id": 5, "status": None}
    template = "Hi {{ name }}, entry <entry_id> <unknown> {{status}}"
    assert render_email_template(template, context, html_mode=False) == "Hi Taro & Co, entry 5 <unknown> "
    assert "Taro &amp; Co" in render_email_template(template, context, html_mode=True)


def test_derive_text_from_html():
    text = derive_text_from_html("<p>Hello</p><p>World<br>again</p>")
    assert text.splitlines() == ["Hello", "World", "again"]


def test_available_tags_sorted():
    tags = list(available_tags())
    assert tags == sorted(tags)
    assert "representative_name" in tags


def test_email_function_transport(monkeypatch):
    calls = []

    class FakeResponse:
        status_code = 200

    def fake_post(url, json=None, headers=None, timeout=None):
        calls.append({"url": url, "json": json, "headers": headers})
        return FakeResponse()

    monkeypatch.setenv("EMAIL_FUNCTION_URL", "https://mail.example.com/send")
    monkeypatch.setenv("EMAIL_FUNCTION_KEY", "key-123")
    monkeypatch.setenv("EMAIL_FROM", "office@example.com")
    monkeypatch.setattr(emailer.requests, "post", fake_post)

    emailer.send_email("to@example.com", "Subject", "<p>Hi</p>", "Hi")
    assert calls[0]["json"] == {"to": "to@example.com", "subject": "Subject", "html": "<p>Hi</p>", "from": "office@example.com"}
    assert calls[0]["headers"]["Authorization"] == "Bearer key-123"


def test_email_function_failure_raises(monkeypatch):
    class FakeResponse:
        status_code = 500

        def json(self):
            return {"error": "quota exceeded"}

    monkeypatch.setenv("EMAIL_FUNCTION_URL", "https://mail.example.com/send")
    monkeypatch.setattr(emailer.requests, "post", lambda *args, **kwargs: FakeResponse())
    with pytest.raises(emailer.EmailDeliveryError, match="quota exceeded"):
        emailer.send_email("to@example.com", "Subject", "<p>Hi</p>", "Hi")


def test_missing_smtp_configuration_raises(monkeypatch):
    monkeypatch.delenv("EMAIL_FUNCTION_URL", raising=False)
    monkeypatch.delenv("SMTP_PRIMARY_HOST", raising=False)
    with pytest.raises(emailer.EmailDeliveryError):
        emailer.send_email("to@example.com", "Subject", "<p>Hi</p>", "Hi")
