import logging
from datetime import date, datetime
from typing import List, Optional
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from .....db.models import Appointment, Customer, Service, Staff
from .....exceptions import StorageError
from .....application.ports.appointments_repo import (
    AppointmentsRepository,
    AppointmentDto,
    AppointmentDetails,
    CustomerDto,
    ServiceDto,
    StaffDto,
)

logger = logging.getLogger(__name__)


class SqlAppointmentsRepository(AppointmentsRepository):
    def __init__(self, session: Session):
        self.session = session

    def _appt_to_dto(self, a: Appointment) -> AppointmentDto:
        return AppointmentDto(
            id=a.id,
            customer_id=a.customer_id,
            service_id=a.service_id,
            staff_id=a.staff_id,
            date=a.date,
            start_time=a.start_time,
            end_time=a.end_time,
            status=a.status,
            reminder_sent=bool(a.reminder_sent),
            confirmation_token_hash=a.confirmation_token_hash,
            token_expires_at=a.token_expires_at,
            confirmed_at=a.confirmed_at,
        )

    def _details_to_dto(self, a: Appointment, c: Customer, s: Service, st: Staff) -> AppointmentDetails:
        return AppointmentDetails(
            appointment=self._appt_to_dto(a),
            customer=CustomerDto(
                id=c.id,
                first_name=c.first_name,
                last_name=c.last_name,
                email=c.email,
                phone=c.phone,
                email_reminder_consent=bool(c.email_reminder_consent),
                sms_reminder_consent=bool(c.sms_reminder_consent),
            ),
            service=ServiceDto(id=s.id, name=s.name, duration=s.duration),
            staff=StaffDto(id=st.id, first_name=st.first_name, last_name=st.last_name),
        )

    def _details_query(self):
        return (
            select(Appointment, Customer, Service, Staff)
            .join(Customer, Appointment.customer_id == Customer.id)
            .join(Service, Appointment.service_id == Service.id)
            .join(Staff, Appointment.staff_id == Staff.id)
        )

    def _get(self, appointment_id: str) -> Optional[Appointment]:
        return self.session.exec(select(Appointment).where(Appointment.id == appointment_id)).first()

    def get_by_id(self, appointment_id: str) -> Optional[AppointmentDto]:
        a = self._get(appointment_id)
        return self._appt_to_dto(a) if a else None

    def get_details(self, appointment_id: str) -> Optional[AppointmentDetails]:
        row = self.session.exec(self._details_query().where(Appointment.id == appointment_id)).first()
        return self._details_to_dto(*row) if row else None

    def find_due(self, target_date: date, statuses: List[str]) -> List[AppointmentDetails]:
        rows = self.session.exec(
            self._details_query()
            .where(Appointment.date == target_date)
            .where(Appointment.status.in_(statuses))
            .where(Appointment.reminder_sent == False)  # noqa: E712
            .order_by(Appointment.start_time)
        ).all()
        return [self._details_to_dto(*r) for r in rows]

    def _commit(self, action: str) -> None:
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            # Leave the session usable for the next appointment in a batch
            self.session.rollback()
            logger.error(f"Error {action}: {e}")
            raise StorageError(f"Error {action}") from e

    def set_confirmation_token(self, appointment_id: str, token_hash: Optional[str], expires_at: Optional[datetime]) -> None:
        a = self._get(appointment_id)
        if not a:
            return
        a.confirmation_token_hash = token_hash
        a.token_expires_at = expires_at
        a.updated_at = datetime.utcnow()
        self.session.add(a)
        self._commit(f"saving confirmation token for appointment {appointment_id}")

    def mark_reminder_sent(self, appointment_id: str) -> None:
        a = self._get(appointment_id)
        if not a:
            return
        a.reminder_sent = True
        a.updated_at = datetime.utcnow()
        self.session.add(a)
        self._commit(f"marking reminder sent for appointment {appointment_id}")

    def mark_confirmed(self, appointment_id: str, confirmed_at: datetime, token_hash: str) -> Optional[AppointmentDto]:
        # Compare-and-set on the verified hash: of two concurrent confirms only one matches
        statement = (
            update(Appointment)
            .where(Appointment.id == appointment_id)
            .where(Appointment.confirmation_token_hash == token_hash)
            .values(
                status="confirmed",
                confirmed_at=confirmed_at,
                confirmation_token_hash=None,
                token_expires_at=None,
                updated_at=datetime.utcnow(),
            )
        )
        try:
            result = self.session.execute(statement)
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Error confirming appointment {appointment_id}: {e}")
            raise StorageError(f"Error confirming appointment {appointment_id}") from e
        self._commit(f"confirming appointment {appointment_id}")
        if result.rowcount != 1:
            return None
        a = self._get(appointment_id)
        return self._appt_to_dto(a) if a else None
