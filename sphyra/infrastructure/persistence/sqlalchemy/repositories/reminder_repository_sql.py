import logging
from datetime import datetime
from typing import List, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from .....db.models import Reminder
from .....exceptions import StorageError
from .....application.ports.reminder_repo import ReminderRepository, ReminderDto

logger = logging.getLogger(__name__)


class SqlReminderRepository(ReminderRepository):
    def __init__(self, session: Session):
        self.session = session

    def _to_dto(self, r: Reminder) -> ReminderDto:
        return ReminderDto(
            id=r.id,
            appointment_id=r.appointment_id,
            type=r.type,
            scheduled_for=r.scheduled_for,
            sent=bool(r.sent),
            sent_at=r.sent_at,
            error_message=r.error_message,
        )

    def create(self, appointment_id: str, type: str, scheduled_for: datetime, sent: bool, sent_at: Optional[datetime] = None, error_message: Optional[str] = None) -> ReminderDto:
        reminder = Reminder(
            appointment_id=appointment_id,
            type=type,
            scheduled_for=scheduled_for,
            sent=sent,
            sent_at=sent_at,
            error_message=error_message,
        )
        try:
            self.session.add(reminder)
            self.session.commit()
            self.session.refresh(reminder)
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Error saving {type} reminder for appointment {appointment_id}: {e}")
            raise StorageError(f"Error saving reminder for appointment {appointment_id}") from e
        return self._to_dto(reminder)

    def list(self, appointment_id: Optional[str] = None, limit: int = 100) -> List[ReminderDto]:
        query = select(Reminder)
        if appointment_id:
            query = query.where(Reminder.appointment_id == appointment_id)
        rows = self.session.exec(query.order_by(Reminder.created_at.desc()).limit(limit)).all()
        return [self._to_dto(r) for r in rows]
