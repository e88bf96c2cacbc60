from dataclasses import dataclass
from typing import List, Optional, Protocol
from datetime import datetime


@dataclass
class ReminderDto:
    id: str
    appointment_id: str
    type: str
    scheduled_for: datetime
    sent: bool
    sent_at: Optional[datetime]
    error_message: Optional[str]


class ReminderRepository(Protocol):
    def create(self, appointment_id: str, type: str, scheduled_for: datetime, sent: bool, sent_at: Optional[datetime] = None, error_message: Optional[str] = None) -> ReminderDto:
        ...

    def list(self, appointment_id: Optional[str] = None, limit: int = 100) -> List[ReminderDto]:
        ...
