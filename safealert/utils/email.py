# safealert/utils/email.py
import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail, From, To, HtmlContent, PlainTextContent, MailSettings, SandBoxMode

from safealert.config import Settings

logger = logging.getLogger(__name__)


class EmailTransport:
    """
    Sends one email to a batch of recipients via SendGrid.

    Without SENDGRID_API_KEY / SENDGRID_FROM_EMAIL the transport is simulated:
    messages are logged and reported as delivered so the panic pipeline
    stays usable without live credentials. send_mail() never raises.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.simulated = not (settings.sendgrid_api_key and settings.sendgrid_from_email)
        if self.simulated:
            logger.warning("⚠️ SendGrid not configured (missing API key or sender email). Emergency emails will be simulated.")

    async def send_mail(self, to: List[str], subject: str, html: str, text: str) -> Dict[str, Any]:
        if self.simulated:
            return self._simulate(to, subject, text)

        message = self._build_message(to, subject, html, text)
        try:
            resp = await asyncio.wait_for(
                asyncio.to_thread(self._send, message),
                timeout=self.settings.provider_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.error("SendGrid send timed out after %ss", self.settings.provider_timeout_seconds)
            return {"success": False, "error": "Email delivery timed out"}
        except Exception as e:
            logger.exception("Failed to send email via SendGrid: %s", e)
            return {"success": False, "error": str(e)}

        code_resp = resp.status_code if resp is not None else None
        logger.info("SendGrid send result: %s", code_resp)
        # SendGrid returns 202 on success, treat 200/202 as ok
        if code_resp in (200, 202):
            return {"success": True, "messageId": _message_id(resp)}

        logger.warning("SendGrid returned non-2xx: %s %s", code_resp, getattr(resp, "body", ""))
        return {"success": False, "error": f"SendGrid returned status {code_resp}"}

    def _build_message(self, to: List[str], subject: str, html: str, text: str) -> Mail:
        message = Mail(
            from_email=From(self.settings.sendgrid_from_email, f"{self.settings.app_name} Emergency System"),
            to_emails=[To(address) for address in to],
            subject=subject,
            plain_text_content=PlainTextContent(text),
            html_content=HtmlContent(html)
        )

        # Sandbox mode available for dev (does not deliver)
        if self.settings.sendgrid_sandbox:
            mail_settings = MailSettings()
            mail_settings.sandbox_mode = SandBoxMode(True)
            message.mail_settings = mail_settings

        return message

    def _send(self, message: Mail):
        client = SendGridAPIClient(self.settings.sendgrid_api_key)
        return client.send(message)

    def _simulate(self, to: List[str], subject: str, text: str) -> Dict[str, Any]:
        message_id = f"mock_{int(time.time() * 1000)}"
        logger.info("📧 [SIMULATED EMAIL] to=%s subject=%s", ", ".join(to), subject)
        logger.info("📧 [SIMULATED EMAIL] content: %s...", text.strip()[:200])
        return {"success": True, "messageId": message_id}


def _message_id(resp) -> Optional[str]:
    headers = getattr(resp, "headers", None)
    if not headers:
        return None
    return headers.get("X-Message-Id")
