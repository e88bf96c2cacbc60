# Models package (re-export feature modules for stable imports)
from .studio.customer import Customer
from .studio.staff import Staff
from .studio.service import Service
from .studio.appointment import Appointment
from .reminders.reminder import Reminder
from .reminders.cron_lock import CronLock
from .settings.setting import Setting

__all__ = [
    "Customer",
    "Staff",
    "Service",
    "Appointment",
    "Reminder",
    "CronLock",
    "Setting",
]
