from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional
import logging

import httpx
from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.engine import Engine

# Load environment variables as early as possible
load_dotenv()

from .application.ports.notification_channel import EmailProvider
from .bootstrap import build_runtime
from .config import Settings, settings
from .database import create_db_and_tables, engine as default_engine
from .exceptions import http_exception_handler
from .middleware import ErrorHandlingMiddleware, LoggingMiddleware, SecurityMiddleware
from .routers import appointments_router, reminders_router, settings_router

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format=settings.LOG_FORMAT
)
logger = logging.getLogger(__name__)


def create_app(
    config: Optional[Settings] = None,
    engine: Optional[Engine] = None,
    email_provider: Optional[EmailProvider] = None,
    sms_client: Optional[httpx.Client] = None,
) -> FastAPI:
    config = config or settings
    engine = engine or default_engine

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        logger.info(f"Starting {config.APP_NAME}...")
        app.state.db_init_ok = True
        app.state.db_init_error = None
        try:
            create_db_and_tables(engine)
            logger.info("Database initialized successfully")
        except Exception as e:
            # Do not crash the app; report via health endpoint
            app.state.db_init_ok = False
            app.state.db_init_error = str(e)
            logger.exception("Database initialization failed")

        runtime = build_runtime(engine, config, email_provider=email_provider, sms_client=sms_client)
        app.state.reminders = runtime
        if config.REMINDER_SCHEDULER_ENABLED and app.state.db_init_ok:
            runtime.scheduler.start()
        else:
            logger.info("Reminder scheduler not started (disabled or database unavailable)")
        yield
        # Shutdown
        logger.info(f"Shutting down {config.APP_NAME}...")
        runtime.close()

    app = FastAPI(
        title=config.APP_NAME,
        version=config.APP_VERSION,
        debug=config.DEBUG,
        lifespan=lifespan,
        docs_url=("/docs" if config.DOCS_ENABLED else None),
        redoc_url=("/redoc" if config.DOCS_ENABLED else None),
        openapi_url=("/openapi.json" if config.DOCS_ENABLED else None)
    )

    app.add_exception_handler(HTTPException, http_exception_handler)

    app.add_middleware(ErrorHandlingMiddleware)
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(SecurityMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(appointments_router.router, prefix="/api")
    app.include_router(reminders_router.router, prefix="/api")
    app.include_router(settings_router.router, prefix="/api")

    @app.get("/health")
    def health_check():
        runtime = getattr(app.state, "reminders", None)
        scheduler = runtime.scheduler if runtime else None
        next_run = scheduler.next_run_time() if scheduler else None
        return {
            "status": "healthy" if getattr(app.state, "db_init_ok", True) else "degraded",
            "service": config.APP_NAME,
            "version": config.APP_VERSION,
            "timestamp": datetime.utcnow().isoformat(),
            "database": {
                "ok": getattr(app.state, "db_init_ok", True),
                "error": getattr(app.state, "db_init_error", None)
            },
            "scheduler": {
                "enabled": config.REMINDER_SCHEDULER_ENABLED,
                "running": bool(scheduler and scheduler.running),
                "state": scheduler.state.value if scheduler else None,
                "nextRunTime": next_run.isoformat() if next_run else None,
                "instanceId": config.instance_id,
            },
            "channels": {
                "email": bool(runtime and runtime.email.configured),
                "sms": bool(runtime and runtime.sms.configured),
            },
        }

    return app


app = create_app()
