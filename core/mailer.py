"""
core/mailer.py -- Outbound transactional email: template rendering + delivery.

Two collaborators live here:

  render_template(): compiles an HTML template from core/templates/ with
      Jinja2. Autoescaping is on for .html files so a username such as
      "<script>" is rendered inert in the mail body.

  Mailer: posts a rendered message to an HTTP mail API using the SendGrid v3
      payload shape. A Mailer without an API key is disabled -- it logs and
      skips delivery so local development works without credentials.
      Delivery failures raise MailDeliveryError; callers decide what a failed
      send means for their own state.

Layer rule: no imports from api/, auth/, or events/.
"""

from __future__ import annotations

import logging
from pathlib import Path

import requests
from jinja2 import Environment, FileSystemLoader, select_autoescape

from core.config import Settings

logger = logging.getLogger("tickethub.mail")

_TEMPLATE_DIR = Path(__file__).parent / "templates"

_env = Environment(
    loader=FileSystemLoader(str(_TEMPLATE_DIR)),
    autoescape=select_autoescape(["html"]),
)


class MailDeliveryError(Exception):
    """Raised when the mail API rejects a message or cannot be reached."""


def render_template(template_name: str, **context) -> str:
    """Render core/templates/<template_name> against the given context.

    Context keys are free-form and may include "name" (the reset email passes
    the recipient's name under it).
    """
    return _env.get_template(template_name).render(**context)


class Mailer:
    """HTTP mail transport.

    Usage:
        mailer = Mailer.from_settings(get_settings())
        mailer.send("alice@example.com", "Reset your password", html)
    """

    def __init__(
        self,
        api_url: str,
        api_key: str,
        from_email: str,
        from_name: str = "TicketHub",
        timeout: float = 10.0,
    ) -> None:
        self.api_url = api_url
        self.api_key = api_key
        self.from_email = from_email
        self.from_name = from_name
        self.timeout = timeout
        self.enabled = bool(api_key)
        self._session = requests.Session()
        self._session.max_redirects = 3
        if not self.enabled:
            logger.warning("Mail delivery disabled -- MAIL_API_KEY not set")

    @classmethod
    def from_settings(cls, settings: Settings) -> "Mailer":
        return cls(
            api_url=settings.mail_api_url,
            api_key=settings.mail_api_key,
            from_email=settings.mail_from,
            from_name=settings.mail_from_name,
        )

    def send(self, to: str, subject: str, html: str) -> bool:
        """Deliver one HTML message.

        Returns True when the API accepted the message and False when the
        mailer is disabled. Raises MailDeliveryError on any transport or API
        failure.
        """
        if not self.enabled:
            logger.info("Mail to %s skipped (delivery disabled): %s", to, subject)
            return False

        payload = {
            "personalizations": [{"to": [{"email": to}], "subject": subject}],
            "from": {"email": self.from_email, "name": self.from_name},
            "content": [{"type": "text/html", "value": html}],
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            resp = self._session.post(self.api_url, json=payload, headers=headers, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            logger.error("Mail delivery to %s failed: %s", to, e)
            raise MailDeliveryError(str(e)) from e
        logger.info("Mail sent to %s: %s", to, subject)
        return True

    def close(self) -> None:
        self._session.close()
