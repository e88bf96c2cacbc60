# Schemas package (re-export feature modules for stable imports)
from .appointments.confirmation import *
from .reminders.reminder import *
from .settings.reminder_settings import *
