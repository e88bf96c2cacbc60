import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Callable, Dict, List, Optional
from zoneinfo import ZoneInfo

from ..ports.appointments_repo import AppointmentDetails, AppointmentsRepository, CustomerDto
from ..ports.notification_channel import NotificationChannel, ReminderMessage, SendResult
from ..ports.reminder_repo import ReminderRepository
from .settings_cache import SettingsCache
from .token_service import TokenService, mask_token
from ...exceptions import ConsentMissing, ContactMissing, PhoneFormatInvalid
from ...templates.reminders import format_appointment_date

logger = logging.getLogger(__name__)

EMAIL = "email"
SMS = "sms"
REMINDER_TYPES = (EMAIL, SMS)
REMINDABLE_STATUSES = ["scheduled", "confirmed"]


@dataclass
class ReminderSendResult:
    success: bool
    reminder_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class AppointmentReminderOutcome:
    appointment_id: str
    type: str
    success: bool
    reminder_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class ReminderBatchResult:
    total: int = 0
    sent: int = 0
    failed: int = 0
    results: List[AppointmentReminderOutcome] = field(default_factory=list)


def _contact_for(customer: CustomerDto, type: str) -> Optional[str]:
    return customer.email if type == EMAIL else customer.phone


def _consent_for(customer: CustomerDto, type: str) -> bool:
    return customer.email_reminder_consent if type == EMAIL else customer.sms_reminder_consent


def check_recipient(customer: CustomerDto, type: str) -> str:
    """Contact field for type, or raise ContactMissing / ConsentMissing."""
    contact = _contact_for(customer, type)
    if not contact:
        label = "email" if type == EMAIL else "phone"
        raise ContactMissing(f"Customer {label} not found ({customer.full_name})")
    if not _consent_for(customer, type):
        label = "email" if type == EMAIL else "SMS"
        raise ConsentMissing(f"Customer has not consented to {label} reminders (GDPR)")
    return contact


@dataclass
class ReminderOrchestrator:
    """Finds due appointments and sends one reminder per appointment.

    Per appointment the order is fixed: recipient checks, token issue, channel
    send, then the Reminder record. reminder_sent is only set after a
    successful send, so failures are picked up again by the next run.
    """
    appointments: AppointmentsRepository
    reminders: ReminderRepository
    tokens: TokenService
    settings_cache: SettingsCache
    channels: Dict[str, NotificationChannel]
    frontend_url: str
    organizer_email: str = "noreply@sphyrawellness.com"
    timezone_name: str = "Europe/Rome"
    default_channel: str = EMAIL
    ics_builder: Optional[Callable[[AppointmentDetails, str, str], str]] = None
    clock: Callable[[], datetime] = field(default=datetime.utcnow)

    def local_today(self) -> date:
        utc_now = self.clock().replace(tzinfo=ZoneInfo("UTC"))
        return utc_now.astimezone(ZoneInfo(self.timezone_name)).date()

    def get_appointments_needing_reminders(self) -> List[AppointmentDetails]:
        settings = self.settings_cache.get()
        target_date = self.local_today() + timedelta(days=settings.reminder_days_before)
        due = self.appointments.find_due(target_date, REMINDABLE_STATUSES)
        logger.info(f"Found {len(due)} appointments needing reminders for {target_date.isoformat()}")
        return due

    def send_reminder_for_appointment(self, appointment_id: str, type: str = EMAIL) -> ReminderSendResult:
        if type not in REMINDER_TYPES:
            return ReminderSendResult(success=False, error=f"Unsupported reminder type: {type}")

        try:
            details = self.appointments.get_details(appointment_id)
        except Exception as e:
            logger.error(f"Error loading appointment {appointment_id}: {e}", exc_info=True)
            return ReminderSendResult(success=False, error=str(e) or "Unknown error")
        if details is None:
            return ReminderSendResult(success=False, error="Appointment not found")

        channel = self.channels.get(type)
        if channel is None:
            return self._record_failure(appointment_id, type, f"No {type} channel configured")

        # Checked before a token is issued: doomed sends never rotate the token
        try:
            recipient = channel.validate_recipient(check_recipient(details.customer, type))
        except (ContactMissing, ConsentMissing, PhoneFormatInvalid) as e:
            logger.warning(f"Skipping {type} reminder for appointment {appointment_id}: {e}")
            return self._record_failure(appointment_id, type, str(e))

        try:
            token = self.tokens.issue(appointment_id)
            message = self._build_message(details, token, type)
            logger.info(f"Sending {type} reminder for appointment {appointment_id} (token {mask_token(token)})")
            result = channel.send(recipient, message)
        except Exception as e:
            logger.error(f"Error sending {type} reminder for appointment {appointment_id}: {e}", exc_info=True)
            return self._record_failure(appointment_id, type, str(e) or "Unknown error")

        if not result.success:
            return self._record_failure(appointment_id, type, result.error or "Unknown error")
        return self._record_success(appointment_id, type, result)

    def send_all_due_reminders(self) -> ReminderBatchResult:
        batch = ReminderBatchResult()
        try:
            due = self.get_appointments_needing_reminders()
        except Exception as e:
            logger.error(f"Could not load appointments needing reminders: {e}", exc_info=True)
            return batch

        batch.total = len(due)
        # Sequential on purpose: one send at a time towards the providers
        for details in due:
            appointment_id = details.appointment.id
            type = self.select_channel(details.customer)
            try:
                result = self.send_reminder_for_appointment(appointment_id, type)
            except Exception as e:
                logger.error(f"Unexpected error for appointment {appointment_id}: {e}", exc_info=True)
                result = ReminderSendResult(success=False, error=str(e) or "Unknown error")
            if result.success:
                batch.sent += 1
            else:
                batch.failed += 1
            batch.results.append(AppointmentReminderOutcome(
                appointment_id=appointment_id,
                type=type,
                success=result.success,
                reminder_id=result.reminder_id,
                error=result.error,
            ))

        logger.info(f"Reminder batch finished: {batch.sent} sent, {batch.failed} failed, {batch.total} total")
        return batch

    def select_channel(self, customer: CustomerDto) -> str:
        preferred = self.default_channel if self.default_channel in REMINDER_TYPES else EMAIL
        other = SMS if preferred == EMAIL else EMAIL
        if self._usable(customer, preferred):
            return preferred
        if self._usable(customer, other):
            return other
        # Fails fast on the recipient checks and is recorded
        return preferred

    def _usable(self, customer: CustomerDto, type: str) -> bool:
        return type in self.channels and bool(_contact_for(customer, type)) and _consent_for(customer, type)

    def confirmation_link(self, appointment_id: str, token: str) -> str:
        return f"{self.frontend_url.rstrip('/')}/confirm-appointment/{appointment_id}/{token}"

    def _build_message(self, details: AppointmentDetails, token: str, type: str) -> ReminderMessage:
        appointment = details.appointment
        ics_content = None
        if type == EMAIL and self.ics_builder is not None:
            try:
                ics_content = self.ics_builder(details, self.organizer_email, self.timezone_name)
            except Exception as e:
                logger.warning(f"Could not build calendar attachment for appointment {appointment.id}: {e}")
        return ReminderMessage(
            appointment_id=appointment.id,
            customer_name=details.customer.full_name,
            customer_email=details.customer.email,
            appointment_date=format_appointment_date(appointment.date),
            appointment_time=appointment.start_time,
            service_name=details.service.name,
            staff_name=details.staff.full_name,
            confirmation_link=self.confirmation_link(appointment.id, token),
            ics_content=ics_content,
        )

    def _record_success(self, appointment_id: str, type: str, result: SendResult) -> ReminderSendResult:
        now = self.clock()
        try:
            reminder = self.reminders.create(appointment_id, type, scheduled_for=now, sent=True, sent_at=now)
            self.appointments.mark_reminder_sent(appointment_id)
        except Exception as e:
            # The message is out; the appointment stays due and may be reminded again
            logger.error(f"Reminder sent for appointment {appointment_id} but not recorded: {e}", exc_info=True)
            return ReminderSendResult(success=False, error=f"Reminder sent but not recorded: {e}")
        logger.info(f"Reminder {reminder.id} ({type}) sent for appointment {appointment_id}, message id {result.message_id}")
        return ReminderSendResult(success=True, reminder_id=reminder.id)

    def _record_failure(self, appointment_id: str, type: str, error: str) -> ReminderSendResult:
        now = self.clock()
        try:
            reminder = self.reminders.create(appointment_id, type, scheduled_for=now, sent=False, error_message=error)
        except Exception as e:
            logger.error(f"Could not record failed reminder for appointment {appointment_id}: {e}", exc_info=True)
            return ReminderSendResult(success=False, error=error)
        logger.warning(f"Reminder ({type}) failed for appointment {appointment_id}: {error}")
        return ReminderSendResult(success=False, reminder_id=reminder.id, error=error)
