"""
Reminder emails through Resend.
"""
import logging
from typing import Optional

import resend

from ...application.ports.notification_channel import EmailProvider, ReminderMessage, SendResult
from ...exceptions import ContactMissing
from ...templates.reminders import reminder_email_html, reminder_email_subject, reminder_email_text

logger = logging.getLogger(__name__)

ICS_FILENAME = "appuntamento.ics"


class ResendEmailProvider(EmailProvider):
    def __init__(self, api_key: str):
        self.api_key = api_key

    def send(self, params: dict) -> dict:
        # The SDK reads its key from module state
        resend.api_key = self.api_key
        return resend.Emails.send(params)


class EmailChannel:
    def __init__(self, provider: Optional[EmailProvider], from_address: str, from_name: str = "Sphyra Wellness"):
        self.provider = provider
        self.from_address = from_address
        self.from_name = from_name

    @property
    def configured(self) -> bool:
        return self.provider is not None

    @property
    def sender(self) -> str:
        return f"{self.from_name} <{self.from_address}>"

    def validate_recipient(self, recipient: str) -> str:
        address = (recipient or "").strip()
        if "@" not in address:
            raise ContactMissing(f"Invalid email address: {recipient}")
        return address

    def send(self, recipient: str, message: ReminderMessage) -> SendResult:
        params = {
            "from": self.sender,
            "to": [recipient],
            "subject": reminder_email_subject(message),
            "html": reminder_email_html(message),
            "text": reminder_email_text(message),
        }
        if message.ics_content:
            params["attachments"] = [{
                "filename": ICS_FILENAME,
                "content": list(message.ics_content.encode("utf-8")),
            }]
        return self._deliver(recipient, params)

    def send_test_email(self, recipient: str) -> SendResult:
        params = {
            "from": self.sender,
            "to": [recipient],
            "subject": "Test Email - Sphyra Wellness",
            "text": "This is a test email from Sphyra Wellness reminder system.",
            "html": "<p>This is a test email from <strong>Sphyra Wellness</strong> reminder system.</p>",
        }
        return self._deliver(recipient, params)

    def _deliver(self, recipient: str, params: dict) -> SendResult:
        if not self.configured:
            logger.error("Email provider is not configured. Cannot send email.")
            return SendResult(success=False, error="Email provider not configured (RESEND_API_KEY missing)")
        try:
            response = self.provider.send(params)
        except Exception as e:
            # Resend errors carry a structured message
            error = getattr(e, "message", None) or str(e) or "Unknown error occurred while sending email"
            logger.error(f"Error sending email to {recipient}: {error}")
            return SendResult(success=False, error=str(error))
        message_id = response.get("id") if isinstance(response, dict) else getattr(response, "id", None)
        logger.info(f"Email sent successfully to {recipient}")
        return SendResult(success=True, message_id=message_id)
