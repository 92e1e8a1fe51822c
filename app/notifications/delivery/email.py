# ============================================================================
# Priority Transfers Notify - Email Delivery Channel
# ============================================================================
# Supports SMTP (default), SendGrid and Resend.
# ============================================================================

import json
import logging
import smtplib
import urllib.request
import urllib.error
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from email.header import Header
from email.utils import formataddr
from typing import Optional

from .base import DeliveryChannel, DeliveryResult
from ..config import get_config

logger = logging.getLogger("notifications.delivery.email")

PROVIDERS = ("smtp", "sendgrid", "resend")

SENDGRID_SEND_URL ="https://api.sendgrid.com/v3/mail/send"
SENDGRID_SCOPES_URL = "https://api.sendgrid.com/v3/scopes"
RESEND_SEND_URL = "https://api.resend.com/emails"
RESEND_DOMAINS_URL = "https://api.resend.com/domains"


class EmailDelivery(DeliveryChannel):
    """Email delivery using SMTP, SendGrid or Resend."""

    channel_name = "email"

    def __init__(self, provider: Optional[str] = None):
        provider = (provider or get_config("email_provider", "smtp")).strip().lower()
        if provider not in PROVIDERS:
            logger.warning(
                f"Unknown email provider {provider!r}, using smtp "
                f"(supported: {', '.join(PROVIDERS)})"
            )
            provider = "smtp"
        self.provider = provider

    def is_configured(self) -> bool:
        """Check if email is configured."""
        if self.provider == "sendgrid":
            return bool(get_config("sendgrid_api_key"))
        if self.provider == "resend":
            return bool(get_config("resend_api_key") and get_config("from_email"))
        return bool(get_config("smtp_user") and get_config("smtp_pass"))

    def test_connection(self) -> bool:
        """Test email configuration without sending anything."""
        if self.provider == "sendgrid":
            return self._test_api(SENDGRID_SCOPES_URL, get_config("sendgrid_api_key"))
        if self.provider == "resend":
            return self._test_api(RESEND_DOMAINS_URL, get_config("resend_api_key"))
        return self._test_smtp()

    def _test_api(self, url: str, api_key: str) -> bool:
        if not api_key:
            return False

        try:
            req = urllib.request.Request(url, headers={"Authorization": f"Bearer {api_key}"})
            with urllib.request.urlopen(req, timeout=10) as resp:
                return resp.getcode() == 200
        except Exception as e:
            logger.error(f"{self.provider} test failed: {e}")
            return False

    def _test_smtp(self) -> bool:
        """Test SMTP connection."""
        if not self.is_configured():
            return False

        try:
            with smtplib.SMTP(get_config("smtp_host"), get_config("smtp_port"),
                              timeout=get_config("email_timeout_seconds", 30)) as server:
                server.starttls()
                server.login(get_config("smtp_user"), get_config("smtp_pass"))
            return True
        except Exception as e:
            logger.error(f"SMTP test failed: {e}")
            return False

    def send(
        self,
        recipient: str,
        subject: str,
        body_text: str,
        body_html: Optional[str] = None,
    ) -> DeliveryResult:
        """Send email."""
        if self.provider == "sendgrid":
            result = self._send_sendgrid(recipient, subject, body_text, body_html)
        elif self.provider == "resend":
            result = self._send_resend(recipient, subject, body_text, body_html)
        else:
            result = self._send_smtp(recipient, subject, body_text, body_html)

        if result.success:
            logger.info(f"Email sent successfully to {recipient}: {subject}")
        else:
            logger.error(f"Email sending failed for {recipient}: {result.error}")
        return result

    def _skipped(self, recipient: str, subject: str, body_text: str, what: str) -> DeliveryResult:
        logger.info(
            "%s disabled - would send email to=%s subject=%r body_len=%d",
            what, recipient, subject, len(body_text),
        )
        return DeliveryResult.fail(
            recipient, self.channel_name,
            f"{what} not configured - delivery skipped (logged)",
        )

    def _post_json(self, url: str, api_key: str, payload: dict):
        req = urllib.request.Request(
            url,
            data=json.dumps(payload).encode("utf-8"),
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            method="POST",
        )
        return urllib.request.urlopen(req, timeout=get_config("email_timeout_seconds", 30))

    def _send_sendgrid(
        self,
        recipient: str,
        subject: str,
        body_text: str,
        body_html: Optional[str] = None,
    ) -> DeliveryResult:
        """Send email via SendGrid."""
        api_key = get_config("sendgrid_api_key")
        if not api_key:
            return self._skipped(recipient, subject, body_text, "SendGrid")

        content = [{"type": "text/plain", "value": body_text}]
        if body_html:
            content.append({"type": "text/html", "value": body_html})

        payload = {
            "personalizations": [{"to": [{"email": recipient}]}],
            "from": {"email": get_config("from_email"), "name": get_config("from_name")},
            "subject": subject,
            "content": content,
        }

        try:
            with self._post_json(SENDGRID_SEND_URL, api_key, payload) as resp:
                status = resp.getcode()
                message_id = resp.headers.get("X-Message-Id", "")

            if status in (200, 201, 202):
                return DeliveryResult.ok(recipient, self.channel_name, message_id)
            return DeliveryResult.fail(recipient, self.channel_name, f"SendGrid returned status {status}")

        except urllib.error.HTTPError as e:
            error_body = e.read().decode() if e.fp else str(e)
            return DeliveryResult.fail(recipient, self.channel_name, f"SendGrid error: {error_body}")
        except Exception as e:
            return DeliveryResult.fail(recipient, self.channel_name, str(e))

    def _send_resend(
        self,
        recipient: str,
        subject: str,
        body_text: str,
        body_html: Optional[str] = None,
    ) -> DeliveryResult:
        """Send email via the Resend API."""
        api_key = get_config("resend_api_key")
        if not api_key:
            return self._skipped(recipient, subject, body_text, "Resend")

        payload = {
            "from": f"{get_config('from_name')} <{get_config('from_email')}>",
            "to": [recipient],
            "subject": subject,
            "text": body_text,
        }
        if body_html:
            payload["html"] = body_html

        try:
            with self._post_json(RESEND_SEND_URL, api_key, payload) as resp:
                data = json.loads(resp.read().decode() or "{}")
            return DeliveryResult.ok(recipient, self.channel_name, data.get("id"))

        except urllib.error.HTTPError as e:
            error_body = e.read().decode() if e.fp else str(e)
            try:
                error_body = json.loads(error_body).get("message", error_body)
            except (ValueError, AttributeError):
                pass
            if e.code == 401:
                error_body = "Resend authentication failed - check RESEND_API_KEY"
            return DeliveryResult.fail(recipient, self.channel_name, f"Resend error: {error_body}")
        except Exception as e:
            return DeliveryResult.fail(recipient, self.channel_name, str(e))

    def _send_smtp(
        self,
        recipient: str,
        subject: str,
        body_text: str,
        body_html: Optional[str] = None,
    ) -> DeliveryResult:
        """Send email via SMTP."""
        user = get_config("smtp_user")
        password = get_config("smtp_pass")
        from_email = get_config("from_email") or user
        from_name = get_config("from_name")

        if not user or not password:
            return self._skipped(recipient, subject, body_text, "SMTP")

        if body_html:
            msg = MIMEMultipart("alternative")
            msg.attach(MIMEText(body_text, "plain", "utf-8"))
            msg.attach(MIMEText(body_html, "html", "utf-8"))
        else:
            msg = MIMEText(body_text, "plain", "utf-8")
        msg["Subject"] = Header(subject, "utf-8")
        msg["From"] = formataddr((from_name, from_email))
        msg["To"] = recipient

        try:
            with smtplib.SMTP(get_config("smtp_host"), get_config("smtp_port"),
                              timeout=get_config("email_timeout_seconds", 30)) as server:
                server.starttls()
                server.login(user, password)
                server.sendmail(from_email, [recipient], msg.as_string())

            return DeliveryResult.ok(recipient, self.channel_name)

        except smtplib.SMTPAuthenticationError as e:
            logger.error(f"SMTP auth failed: {e}")
            return DeliveryResult.fail(recipient, self.channel_name, "SMTP authentication failed")
        except smtplib.SMTPRecipientsRefused:
            return DeliveryResult.fail(recipient, self.channel_name, f"Recipient refused: {recipient}")
        except Exception as e:
            return DeliveryResult.fail(recipient, self.channel_name, str(e))
