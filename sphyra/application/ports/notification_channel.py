from dataclasses import dataclass
from typing import Optional, Protocol


@dataclass
class SendResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class ReminderMessage:
    """Template data shared by every reminder channel."""
    appointment_id: str
    customer_name: str
    customer_email: Optional[str]
    appointment_date: str  # human readable, e.g. "giovedì 21 dicembre 2025"
    appointment_time: str  # HH:MM
    service_name: str
    staff_name: str
    confirmation_link: str
    ics_content: Optional[str] = None


class NotificationChannel(Protocol):
    def validate_recipient(self, recipient: str) -> str:
        """Canonical recipient, or raise a pre-send validation error."""
        ...

    def send(self, recipient: str, message: ReminderMessage) -> SendResult:
        """Never raises; failures are reported on the result."""
        ...


class EmailProvider(Protocol):
    def send(self, params: dict) -> dict:
        """Deliver one message. Returns the provider response (with an "id") or raises."""
        ...
