"""
SMTP notifier — emails each recipient a deep link to their certificate.

Adapter layer — implements the Notifier port with aiosmtplib. The HTML body
is rendered with Jinja2 (autoescaped, StrictUndefined) and sent alongside a
plain-text alternative.

The link has the shape ``<frontend_url>/certificate/<issuance_id>`` and
carries no expiry token, so it stays valid for as long as the record exists.

Deadline: the whole exchange (connect, STARTTLS, login, DATA) runs under
asyncio.wait_for with one wall-clock budget (15 s by default), so a relay
that answers slowly byte by byte cannot hold the batch past it. The same
value is passed to aiosmtplib as its per-operation timeout. Running out of
time is NOTIFY_TIMEOUT, any other transport fault NOTIFY_ERROR; the adapter
never raises.
"""

from __future__ import annotations

import asyncio
from email.message import EmailMessage

import aiosmtplib
import jinja2
import structlog

from cert_issuer.railway import ErrorCode, Result

log = structlog.get_logger()

SUBJECT = "Your Certificate has been Generated!"

_HTML_TEMPLATE = """\
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2 style="color: #5d4037;">Congratulations, {{ name }}!</h2>
  <p style="font-size: 16px; color: #333;">Your certificate has been successfully generated.</p>
  <div style="background-color: #f5f5f5; padding: 20px; border-radius: 8px; text-align: center; margin: 20px 0;">
    <p style="margin: 0 0 10px; color: #666; font-size: 14px;">Click below to view your certificate:</p>
    <a href="{{ link }}" style="background-color: #8b6f47; color: white; padding: 12px 30px; text-decoration: none; border-radius: 5px; display: inline-block; font-size: 16px; font-weight: bold;">View My Certificate</a>
  </div>
  <p style="font-size: 14px; color: #666; margin-top: 20px;">Or copy this link:</p>
  <p style="background-color: #f9f9f9; padding: 10px; border-radius: 4px; word-break: break-all; color: #666; font-size: 12px;">{{ link }}</p>
  <p style="margin-top: 30px; padding-top: 20px; border-top: 1px solid #ddd; color: #999; font-size: 12px;">
    Best regards,<br>{{ team }}
  </p>
</div>
"""

_TEXT_TEMPLATE = """\
Congratulations, {{ name }}!

Your certificate has been successfully generated.
View it here: {{ link }}

Best regards,
{{ team }}
"""

_env = jinja2.Environment(autoescape=True, undefined=jinja2.StrictUndefined)
_text_env = jinja2.Environment(autoescape=False, undefined=jinja2.StrictUndefined)
HTML_BODY = _env.from_string(_HTML_TEMPLATE)
TEXT_BODY = _text_env.from_string(_TEXT_TEMPLATE)


def certificate_link(frontend_url: str, issuance_id: str) -> str:
    return f"{frontend_url.rstrip('/')}/certificate/{issuance_id}"


class SmtpNotifier:
    """
    Send certificate notifications through an SMTP relay.

    Implements the Notifier port. Opens one connection per message.
    """

    def __init__(
        self,
        host: str,
        port: int,
        sender: str,
        frontend_url: str,
        username: str | None = None,
        password: str | None = None,
        use_starttls: bool = True,
        timeout: float = 15,
        team_name: str = "Certificate Platform Team",
    ) -> None:
        self._host = host
        self._port = port
        self._sender = sender
        self._frontend_url = frontend_url
        self._username = username
        self._password = password
        self._use_starttls = use_starttls
        self._timeout = timeout
        self._team_name = team_name

    def build_message(self, address: str, name: str, issuance_id: str) -> EmailMessage:
        link = certificate_link(self._frontend_url, issuance_id)
        context = {"name": name, "link": link, "team": self._team_name}
        message = EmailMessage()
        message["From"] = self._sender
        message["To"] = address
        message["Subject"] = SUBJECT
        message.set_content(TEXT_BODY.render(**context))
        message.add_alternative(HTML_BODY.render(**context), subtype="html")
        return message

    def send(self, address: str, name: str, issuance_id: str) -> Result[str]:
        """Deliver one message; must be called from a thread without a running event loop."""
        try:
            message = self.build_message(address, name, issuance_id)
            asyncio.run(self._deliver(message))
        except TimeoutError as e:
            log.warning("mailer.timeout", to=address, timeout_seconds=self._timeout)
            return Result.failure(
                ErrorCode.NOTIFY_TIMEOUT,
                f"Email send timeout after {self._timeout}s",
                e,
            )
        except (aiosmtplib.SMTPException, OSError, jinja2.TemplateError) as e:
            log.warning("mailer.failed", to=address, error=str(e))
            return Result.failure(ErrorCode.NOTIFY_ERROR, f"Email delivery failed: {e}", e)

        log.info("mailer.sent", to=address, issuance_id=issuance_id)
        return Result.success(address)

    async def _deliver(self, message: EmailMessage) -> None:
        credentials = bool(self._username and self._password)
        await asyncio.wait_for(
            aiosmtplib.send(
                message,
                hostname=self._host,
                port=self._port,
                username=self._username if credentials else None,
                password=self._password if credentials else None,
                start_tls=self._use_starttls,
                timeout=self._timeout,
            ),
            timeout=self._timeout,
        )
