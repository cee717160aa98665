"""
Outbound message delivery.

``NotificationDispatcher.send`` resolves a template for the company, then
tries the company's webhook relay and finally SMTP. It never raises: every
outcome, including "nothing configured", comes back as a DeliveryResult.
"""
import logging
import smtplib
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Callable, Dict, Optional

import requests
from sqlalchemy.orm import Session
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from app.core.config import EmailSettings, settings
from app.services import message_templates
from app.services.policy import active_template, active_webhook_url

logger = logging.getLogger(__name__)

METHOD_WEBHOOK = "webhook"
METHOD_SMTP = "smtp"
METHOD_NONE = "none"


@dataclass
class DeliveryResult:
    success: bool
    method: str
    recipient: str
    error: Optional[str] = None
    skipped: bool = False


@retry(
    stop=stop_after_attempt(max(1, settings.email.webhook_attempts)),
    wait=wait_exponential(multiplier=0.5, max=4),
    retry=retry_if_exception_type((requests.exceptions.ConnectionError, requests.exceptions.Timeout)),
    reraise=True
)
def _post_webhook(url: str, payload: Dict[str, Any], timeout: float) -> int:
    response = requests.post(url, json=payload, headers={"Content-Type": "application/json"}, timeout=timeout)
    response.raise_for_status()
    return response.status_code


class NotificationDispatcher:
    def __init__(self, session_factory: Callable[[], Session], email_settings: Optional[EmailSettings] = None):
        self.session_factory = session_factory
        self.email = email_settings or settings.email

    def send(
        self,
        company_id: int,
        recipient: str,
        template_type: str,
        variables: Optional[Dict[str, Any]] = None,
    ) -> DeliveryResult:
        variables = dict(variables or {})
        if not recipient:
            return DeliveryResult(False, METHOD_NONE, recipient or "", error="No recipient address", skipped=True)
        try:
            message, webhook_url = self._prepare(company_id, template_type, variables)
        except Exception as e:
            logger.error(f"Could not prepare {template_type} message for company {company_id}: {e}")
            return DeliveryResult(False, METHOD_NONE, recipient, error=str(e))

        if webhook_url:
            result = self._send_webhook(webhook_url, recipient, message, template_type, variables)
            if result.success:
                return result
            logger.warning(f"Webhook delivery to {recipient} failed, trying SMTP: {result.error}")

        if self.email.smtp_host:
            return self._send_smtp(recipient, message)

        logger.warning(f"No delivery method configured for company {company_id}; {template_type} to {recipient} skipped")
        return DeliveryResult(False, METHOD_NONE, recipient, error="No delivery method configured", skipped=True)

    def _prepare(self, company_id: int, template_type: str, variables: Dict[str, Any]):
        db = self.session_factory()
        try:
            template = active_template(db, company_id, template_type)
            if template is not None:
                message = message_templates.render_custom(
                    template.subject, template.body_html, template.body_text, variables
                )
            else:
                message = message_templates.render_default(template_type, variables)
            webhook_url = active_webhook_url(db, company_id)
        finally:
            db.close()
        return message, webhook_url

    def _send_webhook(self, url, recipient, message, template_type, variables) -> DeliveryResult:
        payload = {
            "to": recipient,
            "subject": message.subject,
            "htmlBody": message.html,
            "textBody": message.text,
            "templateType": template_type,
            **{k: v for k, v in variables.items() if isinstance(v, (str, int, float, bool)) or v is None},
        }
        try:
            status_code = _post_webhook(url, payload, self.email.webhook_timeout_seconds)
            logger.info(f"Webhook message sent to {recipient}: {message.subject} (status {status_code})")
            return DeliveryResult(True, METHOD_WEBHOOK, recipient)
        except requests.exceptions.RequestException as e:
            return DeliveryResult(False, METHOD_WEBHOOK, recipient, error=str(e))

    def _send_smtp(self, recipient, message) -> DeliveryResult:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = message.subject
        msg["From"] = self.email.from_address
        msg["To"] = recipient
        if message.text:
            msg.attach(MIMEText(message.text, "plain"))
        msg.attach(MIMEText(message.html or message.text, "html"))
        try:
            with smtplib.SMTP(self.email.smtp_host, self.email.smtp_port, timeout=self.email.smtp_timeout_seconds) as server:
                if self.email.smtp_use_tls:
                    server.starttls()
                if self.email.smtp_user and self.email.smtp_password:
                    server.login(self.email.smtp_user, self.email.smtp_password)
                server.sendmail(self.email.from_address, [recipient], msg.as_string())
            logger.info(f"Email sent to {recipient}: {message.subject}")
            return DeliveryResult(True, METHOD_SMTP, recipient)
        except smtplib.SMTPException as e:
            logger.error(f"SMTP error sending to {recipient}: {e}")
            return DeliveryResult(False, METHOD_SMTP, recipient, error=str(e))
        except OSError as e:
            # Includes socket timeouts
            logger.error(f"Network error sending email to {recipient}: {e}")
            return DeliveryResult(False, METHOD_SMTP, recipient, error=str(e))
