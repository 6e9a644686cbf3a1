"""Unit tests for core/mailer.py -- template rendering and HTTP delivery.

The requests session is patched; no network access.
"""

from unittest.mock import MagicMock, patch

import pytest
import requests

from core.mailer import MailDeliveryError, Mailer, render_template


def _mailer(api_key: str = "sg-key") -> Mailer:
    return Mailer(
        api_url="https://mail.example.test/v3/mail/send",
        api_key=api_key,
        from_email="no-reply@tickethub.local",
    )


def test_reset_template_renders_link_and_escapes_name():
    html = render_template(
        "reset_password.html",
        name="<script>alert(1)</script>",
        link="http://localhost:3000/reset-password?token=abc",
        expires_minutes=60,
    )
    assert "http://localhost:3000/reset-password?token=abc" in html
    assert "<script>" not in html
    assert "&lt;script&gt;" in html
    assert "60" in html


def test_disabled_mailer_skips_delivery():
    mailer = _mailer(api_key="")
    assert mailer.enabled is False
    with patch.object(mailer._session, "post") as post:
        assert mailer.send("alice@x.com", "Hi", "<p>hi</p>") is False
    post.assert_not_called()


def test_send_posts_sendgrid_payload():
    mailer = _mailer()
    resp = MagicMock()
    resp.raise_for_status.return_value = None
    with patch.object(mailer._session, "post", return_value=resp) as post:
        assert mailer.send("alice@x.com", "Reset", "<p>link</p>") is True

    args, kwargs = post.call_args
    assert args[0] == "https://mail.example.test/v3/mail/send"
    payload = kwargs["json"]
    assert payload["personalizations"][0]["to"] == [{"email": "alice@x.com"}]
    assert payload["personalizations"][0]["subject"] == "Reset"
    assert payload["from"]["email"] == "no-reply@tickethub.local"
    assert payload["content"] == [{"type": "text/html", "value": "<p>link</p>"}]
    assert kwargs["headers"]["Authorization"] == "Bearer sg-key"


def test_transport_error_raises_mail_delivery_error():
    mailer = _mailer()
    with patch.object(mailer._session, "post", side_effect=requests.ConnectionError("down")):
        with pytest.raises(MailDeliveryError):
            mailer.send("alice@x.com", "Reset", "<p>link</p>")


def test_api_rejection_raises_mail_delivery_error():
    mailer = _mailer()
    resp = MagicMock()
    resp.raise_for_status.side_effect = requests.HTTPError("401 Unauthorized")
    with patch.object(mailer._session, "post", return_value=resp):
        with pytest.raises(MailDeliveryError):
            mailer.send("alice@x.com", "Reset", "<p>link</p>")
