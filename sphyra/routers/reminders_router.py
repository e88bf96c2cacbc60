from typing import Optional
from fastapi import APIRouter, Depends, Query
import logging

from ..application.services.reminder_orchestrator import EMAIL, REMINDER_TYPES, ReminderOrchestrator
from ..bootstrap import ReminderRuntime
from ..dependencies import get_orchestrator, get_reminder_repo, get_runtime
from ..exceptions import APIException, create_success_response
from ..infrastructure.persistence.sqlalchemy.repositories.reminder_repository_sql import SqlReminderRepository
from ..schemas.reminders.reminder import (
    ChannelStatus,
    ChannelsStatusResponse,
    DueAppointmentResponse,
    ReminderBatchResponse,
    ReminderResponse,
    SendTestEmailRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reminders", tags=["Reminders"])


@router.post("/send/{appointment_id}")
def send_reminder(
    appointment_id: str,
    type: str = Query(default=EMAIL),
    orchestrator: ReminderOrchestrator = Depends(get_orchestrator),
):
    if type not in REMINDER_TYPES:
        raise APIException(status_code=400, detail=f"Invalid reminder type. Must be one of: {list(REMINDER_TYPES)}")
    result = orchestrator.send_reminder_for_appointment(appointment_id, type)
    if not result.success:
        status_code = 404 if result.error == "Appointment not found" else 400
        raise APIException(status_code=status_code, detail=result.error or "Failed to send reminder")
    return create_success_response({"reminderId": result.reminder_id}, message="Reminder sent successfully")


@router.post("/send-all")
def send_all_reminders(runtime: ReminderRuntime = Depends(get_runtime)):
    try:
        batch = runtime.scheduler.trigger_now()
    except Exception as e:
        logger.error(f"Error sending due reminders: {str(e)}", exc_info=True)
        raise APIException(status_code=500, detail="Failed to send reminders")
    return create_success_response(
        ReminderBatchResponse.from_batch(batch).model_dump(),
        message=f"Sent {batch.sent} reminders, {batch.failed} failed",
    )


@router.get("/appointments-needing-reminders")
def appointments_needing_reminders(orchestrator: ReminderOrchestrator = Depends(get_orchestrator)):
    try:
        due = orchestrator.get_appointments_needing_reminders()
    except Exception as e:
        logger.error(f"Error listing appointments needing reminders: {str(e)}")
        raise APIException(status_code=500, detail="Failed to load appointments needing reminders")
    return create_success_response([DueAppointmentResponse.from_details(d).model_dump(mode="json") for d in due])


@router.get("")
def list_reminders(
    appointment_id: Optional[str] = None,
    limit: int = Query(default=100, ge=1, le=500),
    repo: SqlReminderRepository = Depends(get_reminder_repo),
):
    reminders = repo.list(appointment_id=appointment_id, limit=limit)
    return create_success_response([ReminderResponse.from_dto(r).model_dump(mode="json") for r in reminders])


@router.get("/channels/status")
def channels_status(runtime: ReminderRuntime = Depends(get_runtime)):
    sms = ChannelStatus(configured=runtime.sms.configured)
    if runtime.sms.configured:
        probe = runtime.sms.test_gateway()
        sms.reachable = probe.success
        sms.error = probe.error
    status = ChannelsStatusResponse(email=ChannelStatus(configured=runtime.email.configured), sms=sms)
    return create_success_response(status.model_dump())


@router.post("/test-email")
def send_test_email(body: SendTestEmailRequest, runtime: ReminderRuntime = Depends(get_runtime)):
    result = runtime.email.send_test_email(body.email)
    if not result.success:
        raise APIException(status_code=400, detail=result.error or "Failed to send test email")
    return create_success_response({"messageId": result.message_id}, message="Test email sent successfully")
