from datetime import datetime
from fastapi import APIRouter, Depends
import logging

from ..application.services.settings_cache import REMINDER_SETTING_KEYS, parse_reminder_settings
from ..bootstrap import ReminderRuntime
from ..dependencies import get_runtime
from ..exceptions import APIException, create_success_response
from ..schemas.settings.reminder_settings import ReminderSettings, UpdateReminderSettingsRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/settings", tags=["Settings"])


def _current(runtime: ReminderRuntime) -> ReminderSettings:
    # Straight from the store, not the scheduler's cache
    values = parse_reminder_settings(runtime.settings_cache.store.get_values(REMINDER_SETTING_KEYS), datetime.utcnow())
    return ReminderSettings(
        reminderSendHour=values.reminder_hour,
        reminderSendMinute=values.reminder_minute,
        reminderDaysBefore=values.reminder_days_before,
        enableAutoReminders=values.enable_auto_reminders,
    )


@router.get("/reminders")
def get_reminder_settings(runtime: ReminderRuntime = Depends(get_runtime)):
    try:
        return create_success_response(_current(runtime).model_dump())
    except Exception as e:
        logger.error(f"Error retrieving reminder settings: {str(e)}")
        raise APIException(status_code=500, detail="Failed to retrieve reminder settings")


@router.put("/reminders")
def update_reminder_settings(body: UpdateReminderSettingsRequest, runtime: ReminderRuntime = Depends(get_runtime)):
    changes = body.model_dump(exclude_none=True)
    try:
        if changes:
            runtime.settings_cache.store.set_values(changes)
            runtime.settings_cache.force_refresh()
            logger.info(f"Reminder settings updated: {sorted(changes)}")
        return create_success_response(_current(runtime).model_dump(), message="Reminder settings updated")
    except Exception as e:
        logger.error(f"Error updating reminder settings: {str(e)}")
        raise APIException(status_code=500, detail="Failed to update reminder settings")
