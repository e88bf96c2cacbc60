from fastapi import Depends, HTTPException, Request
from sqlmodel import Session

from .application.services.confirmation_service import ConfirmationFlow
from .application.services.reminder_orchestrator import ReminderOrchestrator
from .bootstrap import ReminderRuntime
from .infrastructure.persistence.sqlalchemy.repositories.appointments_repository_sql import SqlAppointmentsRepository
from .infrastructure.persistence.sqlalchemy.repositories.reminder_repository_sql import SqlReminderRepository


def get_runtime(request: Request) -> ReminderRuntime:
    runtime = getattr(request.app.state, "reminders", None)
    if runtime is None:
        raise HTTPException(status_code=503, detail="Reminder service is not initialized")
    return runtime


def get_session(runtime: ReminderRuntime = Depends(get_runtime)):
    with Session(runtime.engine) as session:
        yield session


def get_orchestrator(
    session: Session = Depends(get_session),
    runtime: ReminderRuntime = Depends(get_runtime),
) -> ReminderOrchestrator:
    return runtime.orchestrator(session)


def get_confirmation_flow(
    session: Session = Depends(get_session),
    runtime: ReminderRuntime = Depends(get_runtime),
) -> ConfirmationFlow:
    return runtime.confirmation_flow(session)


def get_appointments_repo(session: Session = Depends(get_session)) -> SqlAppointmentsRepository:
    return SqlAppointmentsRepository(session)


def get_reminder_repo(session: Session = Depends(get_session)) -> SqlReminderRepository:
    return SqlReminderRepository(session)
