# sphyra/db/models/studio/appointment.py
import datetime as dt
from typing import Optional
from sqlmodel import SQLModel, Field
import uuid

class Appointment(SQLModel, table=True):
    __tablename__ = "appointments"
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    customer_id: str = Field(foreign_key="customers.id", index=True)
    service_id: str = Field(foreign_key="services.id")
    staff_id: str = Field(foreign_key="staff.id")
    date: dt.date = Field(index=True)
    start_time: str  # HH:MM
    end_time: str  # HH:MM
    status: str = Field(default="scheduled", index=True)
    reminder_sent: bool = Field(default=False)
    # Only the bcrypt hash of the confirmation token is stored
    confirmation_token_hash: Optional[str] = Field(default=None)
    token_expires_at: Optional[dt.datetime] = Field(default=None)
    confirmed_at: Optional[dt.datetime] = Field(default=None)
    created_at: dt.datetime = Field(default_factory=dt.datetime.utcnow)
    updated_at: dt.datetime = Field(default_factory=dt.datetime.utcnow)
