# sphyra/schemas/settings/reminder_settings.py
from pydantic import BaseModel, Field
from typing import Optional

class ReminderSettings(BaseModel):
    reminderSendHour: int = Field(ge=0, le=23)
    reminderSendMinute: int = Field(ge=0, le=59)
    reminderDaysBefore: int = Field(ge=1)
    enableAutoReminders: bool

class UpdateReminderSettingsRequest(BaseModel):
    reminderSendHour: Optional[int] = Field(default=None, ge=0, le=23)
    reminderSendMinute: Optional[int] = Field(default=None, ge=0, le=59)
    reminderDaysBefore: Optional[int] = Field(default=None, ge=1)
    enableAutoReminders: Optional[bool] = None
