from dataclasses import dataclass
from typing import List, Optional, Protocol
from datetime import datetime, date


@dataclass
class CustomerDto:
    id: str
    first_name: str
    last_name: str
    email: Optional[str]
    phone: Optional[str]
    email_reminder_consent: bool
    sms_reminder_consent: bool

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass
class ServiceDto:
    id: str
    name: str
    duration: int


@dataclass
class StaffDto:
    id: str
    first_name: str
    last_name: str

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass
class AppointmentDto:
    id: str
    customer_id: str
    service_id: str
    staff_id: str
    date: date
    start_time: str
    end_time: str
    status: str
    reminder_sent: bool
    confirmation_token_hash: Optional[str]
    token_expires_at: Optional[datetime]
    confirmed_at: Optional[datetime]


@dataclass
class AppointmentDetails:
    """An appointment joined with the customer, service and staff member."""
    appointment: AppointmentDto
    customer: CustomerDto
    service: ServiceDto
    staff: StaffDto


class AppointmentsRepository(Protocol):
    def get_by_id(self, appointment_id: str) -> Optional[AppointmentDto]:
        ...

    def get_details(self, appointment_id: str) -> Optional[AppointmentDetails]:
        ...

    def find_due(self, target_date: date, statuses: List[str]) -> List[AppointmentDetails]:
        """Appointments on target_date, in one of statuses, with reminder_sent false."""
        ...

    def set_confirmation_token(self, appointment_id: str, token_hash: Optional[str], expires_at: Optional[datetime]) -> None:
        """Write both token fields together (both values or both None)."""
        ...

    def mark_reminder_sent(self, appointment_id: str) -> None:
        ...

    def mark_confirmed(self, appointment_id: str, confirmed_at: datetime, token_hash: str) -> Optional[AppointmentDto]:
        """Set status=confirmed and confirmed_at, clearing both token fields, in one commit.

        Only applies while the stored hash is still token_hash; returns None when
        another request consumed or rotated the token first.
        """
        ...
