# Routers package
from . import appointments_router
from . import reminders_router
from . import settings_router

__all__ = [
    "appointments_router",
    "reminders_router",
    "settings_router",
]
