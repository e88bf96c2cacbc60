import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from ..ports.appointments_repo import AppointmentDto, AppointmentsRepository
from .token_service import TokenService, mask_token
from ...exceptions import (
    TokenExpired,
    TokenFormatInvalid,
    TokenMismatch,
    TokenMissing,
    TokenVerificationError,
)

logger = logging.getLogger(__name__)

NOT_FOUND = "not_found"

CONFIRMED_MESSAGE = "Appointment confirmed successfully"
ALREADY_CONFIRMED_MESSAGE = "Appointment already confirmed"
APPOINTMENT_NOT_FOUND_ERROR = "Appointment not found"

# Expired and mismatched tokens share one message so a guesser learns nothing
_ERROR_MESSAGES = {
    TokenFormatInvalid.kind: "Invalid confirmation token format",
    TokenMissing.kind: "No confirmation token found for this appointment",
    TokenExpired.kind: "Could not confirm the appointment. The link is invalid or has expired, please contact us.",
    TokenMismatch.kind: "Could not confirm the appointment. The link is invalid or has expired, please contact us.",
}


@dataclass
class ConfirmationResult:
    success: bool
    appointment: Optional[AppointmentDto] = None
    message: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None


@dataclass
class ConfirmationFlow:
    repo: AppointmentsRepository
    tokens: TokenService
    clock: Callable[[], datetime] = field(default=datetime.utcnow)

    def confirm(self, appointment_id: str, presented_token: str) -> ConfirmationResult:
        appointment = self.repo.get_by_id(appointment_id)
        if appointment is None:
            return ConfirmationResult(success=False, error=APPOINTMENT_NOT_FOUND_ERROR, error_kind=NOT_FOUND)

        try:
            self.tokens.verify(appointment, presented_token)
        except TokenMissing as e:
            # A used token is cleared on confirmation; a repeat click is not an error
            if appointment.status == "confirmed":
                return self._already_confirmed(appointment)
            return self._failure(appointment_id, presented_token, e)
        except TokenVerificationError as e:
            return self._failure(appointment_id, presented_token, e)

        if appointment.status == "confirmed":
            return self._already_confirmed(appointment)

        # Applies only while the verified hash is still stored
        updated = self.repo.mark_confirmed(appointment_id, self.clock(), appointment.confirmation_token_hash)
        if updated is None:
            return self._concurrent_change(appointment_id, presented_token)
        logger.info(f"Appointment {appointment_id} confirmed by customer")
        return ConfirmationResult(success=True, appointment=updated, message=CONFIRMED_MESSAGE)

    def _concurrent_change(self, appointment_id: str, presented_token: str) -> ConfirmationResult:
        current = self.repo.get_by_id(appointment_id)
        if current is None:
            return ConfirmationResult(success=False, error=APPOINTMENT_NOT_FOUND_ERROR, error_kind=NOT_FOUND)
        if current.status == "confirmed":
            return self._already_confirmed(current)
        if current.confirmation_token_hash is None:
            return self._failure(appointment_id, presented_token, TokenMissing("Confirmation token was cleared"))
        return self._failure(appointment_id, presented_token, TokenMismatch("Confirmation token was rotated"))

    def _already_confirmed(self, appointment: AppointmentDto) -> ConfirmationResult:
        # No appointment body: the presented token is not checked on this path
        logger.info(f"Appointment {appointment.id} was already confirmed")
        return ConfirmationResult(success=True, message=ALREADY_CONFIRMED_MESSAGE)

    def _failure(self, appointment_id: str, presented_token: str, error: TokenVerificationError) -> ConfirmationResult:
        logger.warning(f"Confirmation failed for appointment {appointment_id} ({error.kind}), token {mask_token(presented_token)}")
        return ConfirmationResult(
            success=False,
            error=_ERROR_MESSAGES.get(error.kind, str(error)),
            error_kind=error.kind,
        )
