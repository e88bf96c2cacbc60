import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from ..ports.settings_repo import SettingsRepository

logger = logging.getLogger(__name__)

REMINDER_HOUR_KEY = "reminderSendHour"
REMINDER_MINUTE_KEY = "reminderSendMinute"
REMINDER_DAYS_BEFORE_KEY = "reminderDaysBefore"
ENABLE_AUTO_REMINDERS_KEY = "enableAutoReminders"

REMINDER_SETTING_KEYS = (
    REMINDER_HOUR_KEY,
    REMINDER_MINUTE_KEY,
    REMINDER_DAYS_BEFORE_KEY,
    ENABLE_AUTO_REMINDERS_KEY,
)

DEFAULT_REMINDER_HOUR = 10
DEFAULT_REMINDER_MINUTE = 0
DEFAULT_REMINDER_DAYS_BEFORE = 1
DEFAULT_ENABLE_AUTO_REMINDERS = True


@dataclass(frozen=True)
class CachedSettings:
    reminder_hour: int
    reminder_minute: int
    enable_auto_reminders: bool
    reminder_days_before: int
    last_refreshed: datetime


def _int_in_range(value: Any, low: int, high: Optional[int], default: int) -> int:
    # bool is an int subclass; a stored true/false is not a valid hour
    if isinstance(value, bool) or not isinstance(value, int):
        return default
    if value < low or (high is not None and value > high):
        return default
    return value


def parse_reminder_settings(raw: Dict[str, Any], now: datetime) -> CachedSettings:
    """Build settings from raw store values, substituting defaults for missing or malformed keys."""
    enabled = raw.get(ENABLE_AUTO_REMINDERS_KEY)
    return CachedSettings(
        reminder_hour=_int_in_range(raw.get(REMINDER_HOUR_KEY), 0, 23, DEFAULT_REMINDER_HOUR),
        reminder_minute=_int_in_range(raw.get(REMINDER_MINUTE_KEY), 0, 59, DEFAULT_REMINDER_MINUTE),
        enable_auto_reminders=enabled if isinstance(enabled, bool) else DEFAULT_ENABLE_AUTO_REMINDERS,
        reminder_days_before=_int_in_range(raw.get(REMINDER_DAYS_BEFORE_KEY), 1, None, DEFAULT_REMINDER_DAYS_BEFORE),
        last_refreshed=now,
    )


class SettingsCache:
    """Reminder timing settings with a TTL, so scheduler ticks rarely hit the store."""

    def __init__(
        self,
        store: SettingsRepository,
        ttl: timedelta = timedelta(minutes=10),
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self.store = store
        self.ttl = ttl
        self._clock = clock
        self._cached: Optional[CachedSettings] = None
        self._lock = threading.Lock()

    def get(self) -> CachedSettings:
        now = self._clock()
        with self._lock:
            cached = self._cached
            if cached is not None and now - cached.last_refreshed < self.ttl:
                return cached
            try:
                raw = self.store.get_values(REMINDER_SETTING_KEYS)
            except Exception as e:
                # Not cached: the next tick retries the store
                logger.warning(f"Could not load reminder settings, using defaults: {e}")
                return parse_reminder_settings({}, now)
            self._cached = parse_reminder_settings(raw, now)
            logger.debug(f"Reminder settings refreshed: {self._cached}")
            return self._cached

    def force_refresh(self) -> None:
        with self._lock:
            self._cached = None
        logger.info("Reminder settings cache invalidated")

