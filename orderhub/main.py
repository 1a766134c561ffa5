from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from orderhub.config import settings
from orderhub.api.v1.router import api_router
from orderhub.core.exceptions import OrderHubError
from orderhub.database import init_db, async_session_factory, get_db
from orderhub.jobs.scheduler import start_scheduler, shutdown_scheduler
from orderhub.services.notification_service import OrderNotifier
from orderhub.services.order_events import OrderEventBus


logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
    - Create missing tables
    - Start the order event bus
    - Start background scheduler

    Shutdown runs the same steps in reverse.
    """
    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    await init_db(app.state.session_factory.kw.get("bind"))

    app.state.event_bus.start()

    if settings.SCHEDULER_ENABLED:
        start_scheduler(app.state.session_factory)
        logger.info("Background scheduler started")

    yield

    # Shutdown
    shutdown_scheduler()
    app.state.event_bus.stop()
    logger.info("Shutting down...")


OPENAPI_TAGS = [
    {"name": "Orders", "description": "Order placement, splitting, assignment and the store-side lifecycle"},
    {"name": "Divisions", "description": "Completion verdicts for split orders"},
    {"name": "Stores", "description": "Store registry and store order dashboards"},
    {"name": "Notifications", "description": "In-app notifications for admins, stores and customers"},
]


def _with_cors_headers(request: Request, response: JSONResponse) -> JSONResponse:
    # Error responses bypass CORSMiddleware
    origin = request.headers.get("origin", "")
    if origin in settings.cors_origins_list or "*" in settings.cors_origins_list:
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Credentials"] = "true"
        response.headers["Access-Control-Allow-Methods"] = "*"
        response.headers["Access-Control-Allow-Headers"] = "*"
    return response


async def order_error_handler(request: Request, exc: OrderHubError):
    """Map domain errors to their HTTP status with a structured body."""
    if exc.status_code >= 500:
        logger.error(f"{exc.operation or request.url.path} failed: {exc.message} {exc.details}")
    else:
        logger.warning(f"{exc.operation or request.url.path}: {exc.message}")

    response = JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.message,
            "type": type(exc).__name__,
            "operation": exc.operation,
            "details": exc.details,
            "path": str(request.url.path),
        },
    )
    return _with_cors_headers(request, response)


async def global_exception_handler(request: Request, exc: Exception):
    """Unexpected errors: log the traceback, return a generic message."""
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    response = JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "type": type(exc).__name__,
            "path": str(request.url.path),
        },
    )
    return _with_cors_headers(request, response)


def create_app(session_factory: async_sessionmaker[AsyncSession] = None) -> FastAPI:
    """Build the application. Tests pass their own session factory."""
    factory = session_factory or async_session_factory

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_tags=OPENAPI_TAGS,
    )

    app.state.session_factory = factory

    # Notifications are written by a bus listener in their own session
    event_bus = OrderEventBus()
    notifier = OrderNotifier(factory)
    event_bus.subscribe(notifier.handle)
    app.state.event_bus = event_bus
    app.state.notifier = notifier

    if session_factory is not None:
        async def get_db_override():
            async with session_factory() as session:
                try:
                    yield session
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise

        app.dependency_overrides[get_db] = get_db_override

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(OrderHubError, order_error_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    # Include API router
    app.include_router(api_router)

    # Health check endpoint
    @app.get("/health", tags=["Health"])
    async def health_check():
        """Health check endpoint with database validation."""
        from datetime import datetime, timezone

        health_status = {
            "status": "healthy",
            "app": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "checks": {
                "database": "unknown",
                "event_bus": "running" if app.state.event_bus.running else "stopped",
            }
        }

        # Check database connectivity
        try:
            async with app.state.session_factory() as session:
                result = await session.execute(text("SELECT 1"))
                result.scalar()
                health_status["checks"]["database"] = "connected"
        except Exception as e:
            logger.error(f"Health check database error: {e}")
            health_status["status"] = "unhealthy"
            health_status["checks"]["database"] = f"error: {type(e).__name__}"

        # Return 503 if unhealthy
        if health_status["status"] == "unhealthy":
            return JSONResponse(status_code=503, content=health_status)

        return health_status

    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint."""
        return {
            "message": f"Welcome to {settings.APP_NAME}",
            "version": settings.APP_VERSION,
            "docs": "/docs",
            "redoc": "/redoc",
        }

    return app


app = create_app()
