from dataclasses import replace
from datetime import date, datetime, timedelta
from typing import Optional

import pytest
from sqlmodel import Session, SQLModel, create_engine

from sphyra.application.ports.appointments_repo import (
    AppointmentDetails,
    AppointmentDto,
    CustomerDto,
    ServiceDto,
    StaffDto,
)
from sphyra.application.services.token_service import make_token_hasher


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeAppointmentsRepo:
    def __init__(self):
        self.details = {}
        self.token_writes = 0
        self.confirm_calls = 0

    def add(self, details: AppointmentDetails) -> AppointmentDetails:
        self.details[details.appointment.id] = details
        return details

    def appointment(self, appointment_id: str) -> AppointmentDto:
        return self.details[appointment_id].appointment

    def get_by_id(self, appointment_id: str):
        d = self.details.get(appointment_id)
        # Snapshot, like a row read from the database
        return replace(d.appointment) if d else None

    def get_details(self, appointment_id: str):
        return self.details.get(appointment_id)

    def find_due(self, target_date: date, statuses):
        return [
            d for d in self.details.values()
            if d.appointment.date == target_date
            and d.appointment.status in statuses
            and not d.appointment.reminder_sent
        ]

    def set_confirmation_token(self, appointment_id: str, token_hash, expires_at):
        a = self.details[appointment_id].appointment
        a.confirmation_token_hash = token_hash
        a.token_expires_at = expires_at
        self.token_writes += 1

    def mark_reminder_sent(self, appointment_id: str):
        self.details[appointment_id].appointment.reminder_sent = True

    def mark_confirmed(self, appointment_id: str, confirmed_at: datetime, token_hash: str):
        d = self.details.get(appointment_id)
        if not d or d.appointment.confirmation_token_hash != token_hash:
            return None
        self.confirm_calls += 1
        a = d.appointment
        a.status = "confirmed"
        a.confirmed_at = confirmed_at
        a.confirmation_token_hash = None
        a.token_expires_at = None
        return replace(a)


def build_details(
    appointment_id: str = "appt-1",
    day: date = date(2025, 12, 21),
    status: str = "scheduled",
    email: Optional[str] = "giulia.rossi@example.com",
    phone: Optional[str] = "+393331234567",
    email_consent: bool = True,
    sms_consent: bool = True,
    reminder_sent: bool = False,
) -> AppointmentDetails:
    return AppointmentDetails(
        appointment=AppointmentDto(
            id=appointment_id,
            customer_id=f"cust-{appointment_id}",
            service_id="svc-1",
            staff_id="staff-1",
            date=day,
            start_time="15:30",
            end_time="16:30",
            status=status,
            reminder_sent=reminder_sent,
            confirmation_token_hash=None,
            token_expires_at=None,
            confirmed_at=None,
        ),
        customer=CustomerDto(
            id=f"cust-{appointment_id}",
            first_name="Giulia",
            last_name="Rossi",
            email=email,
            phone=phone,
            email_reminder_consent=email_consent,
            sms_reminder_consent=sms_consent,
        ),
        service=ServiceDto(id="svc-1", name="Massaggio Rilassante", duration=60),
        staff=StaffDto(id="staff-1", first_name="Marco", last_name="Bianchi"),
    )


@pytest.fixture
def clock():
    # 08:00 UTC is 09:00 in Rome in December
    return FakeClock(datetime(2025, 12, 20, 8, 0, 0))


@pytest.fixture(scope="session")
def hasher():
    return make_token_hasher(rounds=4)


@pytest.fixture
def appointments_repo():
    return FakeAppointmentsRepo()


@pytest.fixture
def make_details():
    return build_details


@pytest.fixture
def engine(tmp_path):
    from sphyra import db  # noqa: F401
    eng = create_engine(f"sqlite:///{tmp_path / 'test.db'}", connect_args={"check_same_thread": False})
    SQLModel.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as s:
        yield s


@pytest.fixture
def seed_appointment(engine):
    """Insert a customer, service, staff member and appointment; returns the appointment id."""
    from sphyra.db.models import Appointment, Customer, Service, Staff

    def seed(day: date, status: str = "scheduled", **customer_fields) -> str:
        customer_data = dict(
            first_name="Giulia",
            last_name="Rossi",
            email="giulia.rossi@example.com",
            phone="+393331234567",
            email_reminder_consent=True,
            sms_reminder_consent=True,
        )
        customer_data.update(customer_fields)
        with Session(engine) as s:
            customer = Customer(**customer_data)
            service = Service(name="Massaggio Rilassante", duration=60, price=50.0)
            staff = Staff(first_name="Marco", last_name="Bianchi")
            s.add(customer)
            s.add(service)
            s.add(staff)
            s.commit()
            appointment = Appointment(
                customer_id=customer.id,
                service_id=service.id,
                staff_id=staff.id,
                date=day,
                start_time="15:30",
                end_time="16:30",
                status=status,
            )
            s.add(appointment)
            s.commit()
            return appointment.id

    return seed
