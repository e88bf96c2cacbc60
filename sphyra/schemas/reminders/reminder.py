# sphyra/schemas/reminders/reminder.py
from pydantic import BaseModel
from typing import List, Optional
import datetime as dt

class ReminderResponse(BaseModel):
    id: str
    appointmentId: str
    type: str
    scheduledFor: dt.datetime
    sent: bool
    sentAt: Optional[dt.datetime] = None
    errorMessage: Optional[str] = None

    @classmethod
    def from_dto(cls, r) -> "ReminderResponse":
        return cls(
            id=r.id,
            appointmentId=r.appointment_id,
            type=r.type,
            scheduledFor=r.scheduled_for,
            sent=r.sent,
            sentAt=r.sent_at,
            errorMessage=r.error_message,
        )

class DueAppointmentResponse(BaseModel):
    id: str
    date: dt.date
    startTime: str
    status: str
    customerName: str
    customerEmail: Optional[str] = None
    customerPhone: Optional[str] = None
    emailReminderConsent: bool
    smsReminderConsent: bool
    serviceName: str
    staffName: str

    @classmethod
    def from_details(cls, d) -> "DueAppointmentResponse":
        return cls(
            id=d.appointment.id,
            date=d.appointment.date,
            startTime=d.appointment.start_time,
            status=d.appointment.status,
            customerName=d.customer.full_name,
            customerEmail=d.customer.email,
            customerPhone=d.customer.phone,
            emailReminderConsent=d.customer.email_reminder_consent,
            smsReminderConsent=d.customer.sms_reminder_consent,
            serviceName=d.service.name,
            staffName=d.staff.full_name,
        )

class ReminderOutcomeResponse(BaseModel):
    appointmentId: str
    type: str
    success: bool
    reminderId: Optional[str] = None
    error: Optional[str] = None

class ReminderBatchResponse(BaseModel):
    total: int
    sent: int
    failed: int
    results: List[ReminderOutcomeResponse] = []

    @classmethod
    def from_batch(cls, batch) -> "ReminderBatchResponse":
        return cls(
            total=batch.total,
            sent=batch.sent,
            failed=batch.failed,
            results=[
                ReminderOutcomeResponse(
                    appointmentId=r.appointment_id,
                    type=r.type,
                    success=r.success,
                    reminderId=r.reminder_id,
                    error=r.error,
                )
                for r in batch.results
            ],
        )

class SendTestEmailRequest(BaseModel):
    email: str

class ChannelStatus(BaseModel):
    configured: bool
    reachable: Optional[bool] = None
    error: Optional[str] = None

class ChannelsStatusResponse(BaseModel):
    email: ChannelStatus
    sms: ChannelStatus
