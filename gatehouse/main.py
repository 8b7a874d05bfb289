"""Gatehouse - authentication and authorization API."""
import asyncio
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from gatehouse.config import get_settings
from gatehouse.logging import configure_logging, get_logger, set_correlation_id
from gatehouse.services.rate_limit import RateLimiter

settings = get_settings()
configure_logging(settings.log_level, json_output=settings.log_json)
logger = get_logger(__name__)


async def _sweep_loop(app: FastAPI) -> None:
    from gatehouse.services.maintenance import run_sweeps

    while True:
        await asyncio.sleep(settings.sweep_interval_seconds)
        try:
            await asyncio.to_thread(run_sweeps)
        except Exception:
            # Keep sweeping; the next pass retries
            logger.exception("sweep_failed")
        app.state.rate_limiter.prune(idle_seconds=settings.sweep_interval_seconds)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup: Create tables
    from gatehouse.database import Base, engine

    # Import all models so they're registered with Base
    from gatehouse import models  # noqa: F401

    Base.metadata.create_all(bind=engine)

    app.state.rate_limiter = RateLimiter(
        capacity=settings.rate_limit_capacity,
        refill_per_minute=settings.rate_limit_refill_per_minute,
    )
    sweeper = asyncio.create_task(_sweep_loop(app))
    logger.info("startup_complete", environment=settings.environment)

    yield

    # Shutdown
    sweeper.cancel()
    with suppress(asyncio.CancelledError):
        await sweeper


app = FastAPI(
    title=settings.app_name,
    description="Authentication, sessions and role-based access control",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)


@app.middleware("http")
async def add_correlation_id(request: Request, call_next):
    """Tag each request's logs with X-Request-ID, generating one if absent."""
    correlation_id = set_correlation_id(request.headers.get("X-Request-ID"))
    response = await call_next(request)
    response.headers["X-Request-ID"] = correlation_id
    return response


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "app": settings.app_name}


# Import and include routers
from gatehouse.api import auth, users  # noqa: E402
from gatehouse.api.error_handling import register_exception_handlers  # noqa: E402

register_exception_handlers(app)
app.include_router(auth.router, prefix="/api")
app.include_router(users.router, prefix="/api")
