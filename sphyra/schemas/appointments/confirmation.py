# sphyra/schemas/appointments/confirmation.py
from pydantic import BaseModel
from typing import Optional
import datetime as dt

class ConfirmAppointmentRequest(BaseModel):
    token: Optional[str] = None

class ConfirmedAppointmentResponse(BaseModel):
    id: str
    date: dt.date
    startTime: str
    endTime: str
    status: str
    confirmedAt: Optional[dt.datetime] = None

    @classmethod
    def from_dto(cls, a) -> "ConfirmedAppointmentResponse":
        return cls(
            id=a.id,
            date=a.date,
            startTime=a.start_time,
            endTime=a.end_time,
            status=a.status,
            confirmedAt=a.confirmed_at,
        )
