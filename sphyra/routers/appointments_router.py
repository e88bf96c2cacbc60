from urllib.parse import quote
from fastapi import APIRouter, Depends
from fastapi.responses import RedirectResponse, Response
import logging

from ..application.services.confirmation_service import NOT_FOUND, ConfirmationFlow
from ..bootstrap import ReminderRuntime
from ..dependencies import get_appointments_repo, get_confirmation_flow, get_runtime
from ..exceptions import APIException, create_success_response
from ..infrastructure.calendar.ics import generate_ics
from ..infrastructure.persistence.sqlalchemy.repositories.appointments_repository_sql import SqlAppointmentsRepository
from ..schemas.appointments.confirmation import ConfirmAppointmentRequest, ConfirmedAppointmentResponse

logger = logging.getLogger(__name__)

# Public: the hashed one-time token is the credential
router = APIRouter(prefix="/appointments", tags=["Appointments"])


@router.post("/{appointment_id}/confirm")
def confirm_appointment(
    appointment_id: str,
    body: ConfirmAppointmentRequest,
    flow: ConfirmationFlow = Depends(get_confirmation_flow),
):
    if not body.token:
        raise APIException(status_code=400, detail="Confirmation token is required")
    try:
        result = flow.confirm(appointment_id, body.token)
    except Exception as e:
        logger.error(f"Error confirming appointment {appointment_id}: {str(e)}", exc_info=True)
        raise APIException(status_code=500, detail="Failed to confirm appointment")

    if not result.success:
        status_code = 404 if result.error_kind == NOT_FOUND else 400
        raise APIException(status_code=status_code, detail=result.error or "Failed to confirm appointment")
    data = None
    if result.appointment is not None:
        data = ConfirmedAppointmentResponse.from_dto(result.appointment).model_dump(mode="json")
    return create_success_response(data, message=result.message)


@router.get("/{appointment_id}/confirm/{token}")
def confirm_appointment_link(
    appointment_id: str,
    token: str,
    flow: ConfirmationFlow = Depends(get_confirmation_flow),
    runtime: ReminderRuntime = Depends(get_runtime),
):
    frontend_url = runtime.config.FRONTEND_URL.rstrip("/")
    try:
        result = flow.confirm(appointment_id, token)
    except Exception as e:
        logger.error(f"Error confirming appointment {appointment_id} from link: {str(e)}", exc_info=True)
        return RedirectResponse(f"{frontend_url}/confirm-appointment/error?message={quote('An error occurred')}")

    if not result.success:
        message = quote(result.error or "Invalid token")
        return RedirectResponse(f"{frontend_url}/confirm-appointment/error?message={message}")
    return RedirectResponse(f"{frontend_url}/confirm-appointment/success?appointmentId={quote(appointment_id)}")


@router.get("/{appointment_id}/calendar.ics")
def download_calendar(
    appointment_id: str,
    repo: SqlAppointmentsRepository = Depends(get_appointments_repo),
    runtime: ReminderRuntime = Depends(get_runtime),
):
    details = repo.get_details(appointment_id)
    if not details:
        raise APIException(status_code=404, detail="Appointment not found")
    try:
        content = generate_ics(details, runtime.config.EMAIL_FROM_ADDRESS, runtime.config.REMINDER_TIMEZONE)
    except Exception as e:
        logger.error(f"Error generating calendar for appointment {appointment_id}: {str(e)}")
        raise APIException(status_code=500, detail="Failed to generate calendar file")
    return Response(
        content=content,
        media_type="text/calendar; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="appuntamento-{appointment_id}.ics"'},
    )
