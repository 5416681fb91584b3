from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from typing import Optional
from zoneinfo import ZoneInfo
import logging

from hospital_booking.config.settings import Settings, settings as default_settings
from hospital_booking.core.errors import BookingError, CompensationError, ValidationError
from hospital_booking.core.middleware import verify_token_middleware
from hospital_booking.db.base import create_tables, get_engine, get_session_factory
from hospital_booking.payments.processors import DeclineDecider
from hospital_booking.payments.registry import build_processor_registry
from hospital_booking.routes.appointment.router import router as appointment_router
from hospital_booking.routes.payment.router import router as payment_router
from hospital_booking.routes.provider.router import router as provider_router
from hospital_booking.scheduling.slots import SlotAvailabilityEngine
from hospital_booking.services.availability import Clock, utc_now
from hospital_booking.services.locks import ProviderLockRegistry
from hospital_booking.services.notifier import LoggingNotifier, Notifier

# -------------------------------------------------------------------------------------
# Logging
# -------------------------------------------------------------------------------------
logging.basicConfig(
    level=default_settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

REQUEST_LOCATIONS = {"body", "query", "path", "header", "cookie"}


def create_app(
    settings: Optional[Settings] = None,
    decline_decider: Optional[DeclineDecider] = None,
    notifier: Optional[Notifier] = None,
    clock: Optional[Clock] = None,
) -> FastAPI:
    """Build the booking API. Collaborators can be swapped for tests."""
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application start-up & shutdown hooks."""
        # ------------------------------------------------------------------ start‑up -----
        logger.info("Application startup …")

        engine = None
        try:
            logger.info("Initializing Database Engine...")
            engine = await get_engine(settings.database_url)
            app.state.engine = engine
            app.state.session_factory = await get_session_factory(engine)
            logger.info("DB engine and session factory ready.")

            if settings.create_tables_on_startup:
                await create_tables(engine)
                logger.info("Database tables created.")
        except Exception as e:
            logger.critical(
                f"CRITICAL ERROR DURING STARTUP INITIALIZATIONS: {e}", exc_info=True
            )
            if engine:  # Attempt to clean up engine if it was created
                await engine.dispose()
            raise

        # --- BOOKING CORE ---
        app.state.settings = settings
        app.state.slot_engine = SlotAvailabilityEngine(clinic_tz=ZoneInfo(settings.clinic_timezone))
        app.state.payment_processors = build_processor_registry(settings, decline_decider)
        app.state.provider_locks = ProviderLockRegistry()
        app.state.notifier = notifier or LoggingNotifier()
        app.state.clock = clock or utc_now
        logger.info(
            f"Booking core ready (timezone={settings.clinic_timezone}, "
            f"compensation={settings.compensation_mode}, settlement timeout={settings.settlement_timeout_seconds}s)"
        )

        # ------------------------------------------------ give control back
        yield

        # ------------------------------------------------ shutdown --------
        logger.info("Application shutdown …")
        try:
            await engine.dispose()
            logger.info("DB engine disposed")
        except Exception:
            logger.exception("Error disposing DB engine")

        logger.info("Shutdown complete")

    app = FastAPI(title="Hospital Booking Service", lifespan=lifespan)

    # CORS -------------------------------------------------------------------------------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[str(o) for o in settings.cors_origins],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(verify_token_middleware)

    # Errors ----------------------------------------------------------------------------
    @app.exception_handler(BookingError)
    async def booking_error_handler(request: Request, exc: BookingError):
        if isinstance(exc, CompensationError):
            logger.critical(
                f"{request.method} {request.url.path} left appointment {exc.appointment_id} "
                f"inconsistent: {exc.message}"
            )
        else:
            logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        # Schema errors share the BookingError body; keys are dotted wire paths
        fields = {}
        for error in exc.errors():
            loc = [str(part) for part in error.get("loc", ())]
            if loc and loc[0] in REQUEST_LOCATIONS:
                loc = loc[1:]
            fields[".".join(loc) or "body"] = error.get("msg", "Invalid value")
        return await booking_error_handler(request, ValidationError("Request validation failed", fields=fields))

    # ----------------------------------------------------------------- health‑check -----
    @app.get("/health")
    async def health_check():
        return {"status": "ok"}

    app.include_router(appointment_router)
    app.include_router(provider_router)
    app.include_router(payment_router)
    return app


app = create_app()
