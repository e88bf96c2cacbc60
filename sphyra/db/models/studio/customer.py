# sphyra/db/models/studio/customer.py
from sqlmodel import SQLModel, Field
from datetime import datetime
from typing import Optional
import uuid

class Customer(SQLModel, table=True):
    __tablename__ = "customers"
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    first_name: str = Field(max_length=100)
    last_name: str = Field(max_length=100)
    email: Optional[str] = Field(default=None, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=30)
    # GDPR opt-in per reminder channel
    email_reminder_consent: bool = Field(default=False)
    sms_reminder_consent: bool = Field(default=False)
    created_at: datetime = Field(default_factory=datetime.utcnow)
