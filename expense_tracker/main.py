from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy import text
from starlette.middleware.cors import CORSMiddleware

from expense_tracker.core.config import settings, app_logger
from expense_tracker.core.db import dispose_db, init_db
from expense_tracker.core.dependencies.auth import DBSession
from expense_tracker.core.exceptions.handlers import (
    app_exception_handler,
    authentication_exception_handler,
    database_exception_handler,
    exception_schema,
    otp_locked_exception_handler,
    rate_limit_exception_handler,
    request_validation_exception_handler,
    unhandled_exception_handler,
)
from expense_tracker.core.exceptions.types import (
    AppException,
    AuthenticationException,
    DatabaseException,
    OTPLockedException,
    RateLimitExceededException,
)
from expense_tracker.core.routers.auth import router as auth_router
from expense_tracker.core.routers.profile import router as profile_router
from expense_tracker.core.services.auth import LoginOrchestrator
from expense_tracker.core.services.notifications import NotificationDispatcher
from expense_tracker.core.services.template import Renderer
from expense_tracker.infrastructure.scheduler import initialize_scheduler, scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    app_logger.info("Starting application...")

    # Create tables
    app_logger.info("Initializing database...")
    await init_db()
    app_logger.info("Database initialized successfully.")

    # Initialize template renderer
    app_logger.info("Initializing template renderer...")
    Renderer.initialize()
    app_logger.info("Template renderer initialized successfully.")

    # Build notification channels and the login orchestrator once
    app_logger.info("Initializing auth services...")
    dispatcher = NotificationDispatcher.from_settings()
    app.state.auth_orchestrator = LoginOrchestrator(dispatcher)
    app_logger.info("Auth services initialized successfully.")

    # Start the scheduler (only if enabled)
    if settings.ENABLE_SCHEDULER:
        app_logger.info("Starting scheduler...")
        scheduler.start()
        app_logger.info("Scheduler started successfully.")
        initialize_scheduler()  # Schedule jobs after starting the scheduler
    else:
        app_logger.info("Scheduler disabled via ENABLE_SCHEDULER setting.")

    # Yield control back to the application
    yield

    # Cleanup on shutdown
    app_logger.info("Shutting down application...")

    if settings.ENABLE_SCHEDULER:
        app_logger.info("Stopping scheduler...")
        scheduler.shutdown()
        app_logger.info("Scheduler stopped successfully.")

    app_logger.info("Closing notification channels...")
    await dispatcher.aclose()

    app_logger.info("Closing database connections...")
    await dispose_db()
    app_logger.info("Shutdown complete.")


app = FastAPI(
    lifespan=lifespan,
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=settings.APP_DESCRIPTION,
    debug=settings.DEBUG,
    root_path=settings.ROOT_PATH,
    openapi_url="/openapi.json",
    docs_url="/docs",
    redoc_url="/redoc",
    responses=exception_schema,
)

# Register exception handlers (order matters - more specific first)
app.add_exception_handler(OTPLockedException, otp_locked_exception_handler)
app.add_exception_handler(RateLimitExceededException, rate_limit_exception_handler)
app.add_exception_handler(AuthenticationException, authentication_exception_handler)
app.add_exception_handler(DatabaseException, database_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
# Generic fallbacks
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ALLOW_ORIGINS,
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth_router, prefix="/auth", tags=["Authentication"])
app.include_router(profile_router, prefix="/profile", tags=["Profile"])


@app.get("/", include_in_schema=False)
async def root(request: Request):
    base_url = str(request.base_url).rstrip("/")
    return {
        "message": f"Welcome to {settings.APP_NAME} API",
        "documentations": {
            "swagger": f"{base_url}/docs",
            "redoc": f"{base_url}/redoc",
        },
        "version": settings.APP_VERSION,
    }


@app.head("/health", include_in_schema=False)
@app.get("/health")
async def health_check(session: DBSession):
    """
    Health check endpoint to verify if the API is running.

    Checks:
        - Database connectivity
    """
    health_status = {
        "status": "ok",
        "message": f"{settings.APP_NAME} API is running.",
        "checks": {"database": "ok"},
    }

    try:
        result = await session.execute(text("SELECT 1"))
        if result.scalar() != 1:
            health_status["checks"]["database"] = "unhealthy"
            health_status["status"] = "degraded"
    except Exception as e:
        app_logger.error(f"Database health check failed: {e}")
        health_status["checks"]["database"] = "unhealthy"
        health_status["status"] = "degraded"

    if health_status["status"] != "ok":
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=health_status
        )

    return health_status
