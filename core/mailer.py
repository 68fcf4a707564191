"""
core/mailer.py -- Transactional email over the Resend HTTP API.

One shared requests.Session per Mailer for connection pooling, a short
timeout on every call, and no retries. Callers decide what a failure means:
the contact form turns MailerError into a generic error result, the magic-link
flow does the same.

Layer rule: core/ is the kernel. No imports from api/, web/, auth/, actions/,
or messages/.
"""

from __future__ import annotations

import html
import logging
from typing import Any

import requests

logger = logging.getLogger("gatehouse.mailer")

RESEND_API = "https://api.resend.com/emails"


class MailerError(Exception):
    """Raised when an email could not be handed to the transport."""


class Mailer:
    """Thin client for the Resend /emails endpoint.

    Usage:
        mailer = Mailer(api_key="re_...", sender="Gatehouse <hello@example.com>")
        message_id = mailer.send("someone@example.com", "Hi", "<p>Hello</p>")
        mailer.close()
    """

    def __init__(self, api_key: str, sender: str, timeout: float = 10.0) -> None:
        self.api_key = api_key
        self.sender = sender
        self.timeout = timeout
        self._session = requests.Session()
        self._session.max_redirects = 3

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.sender)

    def send(self, to: str, subject: str, html_body: str) -> str:
        """Send one email and return the provider's message id.

        Raises MailerError when the mailer is not configured, the request
        fails, Resend answers with a non-2xx status, or the body is not JSON.
        """
        if not self.configured:
            raise MailerError("Mail transport is not configured (AUTH_RESEND_KEY / AUTH_RESEND_FROM).")

        payload: dict[str, Any] = {
            "from": self.sender,
            "to": [to],
            "subject": subject,
            "html": html_body,
        }
        try:
            resp = self._session.post(
                RESEND_API,
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
            resp.raise_for_status()
            body = resp.json()
        except requests.RequestException as e:
            raise MailerError(f"Resend request failed: {e}") from e
        except ValueError as e:
            raise MailerError(f"Resend returned a non-JSON response: {e}") from e

        message_id = str(body.get("id", "")) if isinstance(body, dict) else ""
        logger.info("Email sent (id=%s)", message_id or "unknown")
        return message_id

    def close(self) -> None:
        self._session.close()


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


def render_contact_email(name: str, email: str, message: str) -> str:
    """Build the HTML body relayed to the site owner for a contact message.

    Every user-supplied value is escaped; the body is rendered by mail clients.
    """
    return (
        "<h2>New Contact Message</h2>"
        f"<p><strong>Name:</strong> {html.escape(name)}</p>"
        f"<p><strong>Email:</strong> {html.escape(email)}</p>"
        "<p><strong>Message:</strong></p>"
        f"<p>{html.escape(message)}</p>"
    )


def render_magic_link_email(url: str) -> str:
    safe_url = html.escape(url, quote=True)
    return (
        "<h2>Sign in to Gatehouse</h2>"
        f'<p><a href="{safe_url}">Click here to sign in</a>. The link can be used once and expires shortly.</p>'
        "<p>If you did not request this email you can ignore it.</p>"
    )
