# sphyra/db/models/reminders/reminder.py
from typing import Optional
from sqlmodel import SQLModel, Field
from datetime import datetime
import uuid

class Reminder(SQLModel, table=True):
    __tablename__ = "reminders"
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    appointment_id: str = Field(foreign_key="appointments.id", index=True)
    type: str = Field(max_length=10)  # email | sms
    scheduled_for: datetime
    sent: bool = Field(default=False)
    sent_at: Optional[datetime] = Field(default=None)
    error_message: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.utcnow)
