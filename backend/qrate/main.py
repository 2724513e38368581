"""
QRate Request API - Main Application Entry Point

Backend for live-event music curation:
- Guest preference intake and crowd-level song rankings
- Song requests with per-guest quotas and duplicate rejection
- One-vote-per-guest voting with atomic tallies
- Next-track recommendation from the live queue
- Relational primary store with a Redis key-value fallback
"""

from contextlib import asynccontextmanager
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from qrate.core.config import get_settings
from qrate.core.logging import setup_logging, get_logger
from qrate.core.metrics import metrics_endpoint
from qrate.api.deps import get_gateway
from qrate.api.router import api_router
from qrate.api.middleware import RequestLoggingMiddleware
from qrate.db.session import build_engine, build_session_factory, create_tables
from qrate.infrastructure.redis_client import RedisClient
from qrate.services.fallback_store import FallbackStore
from qrate.services.gateway_factory import build_gateway
from qrate.services.interfaces.store import StorageUnavailableError

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()
    logger = get_logger(__name__)

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
    )

    engine = build_engine()
    if settings.DB_AUTO_CREATE:
        await create_tables(engine)

    app.state.gateway = build_gateway(build_session_factory(engine), RedisClient.get_client())
    stores = await app.state.gateway.health()
    logger.info("gateway_ready", **stores)

    yield

    # Cleanup
    await RedisClient.close()
    await engine.dispose()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Event music curation API: preferences, song requests, voting and next-track picks",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Guests join from their phones via the event link
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Custom middleware
app.add_middleware(RequestLoggingMiddleware)

# Routes
app.include_router(api_router)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=422,
        content={"error": f"{location}: {message}" if location else message},
    )


@app.exception_handler(StorageUnavailableError)
async def storage_unavailable_handler(request: Request, exc: StorageUnavailableError):
    get_logger(__name__).error("storage_unavailable", operation=exc.operation)
    return JSONResponse(status_code=503, content={"error": "Storage unavailable"})


@app.get("/health", tags=["Health"])
async def health_check(gateway: FallbackStore = Depends(get_gateway)):
    """Health check endpoint for Docker and load balancers."""
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "stores": await gateway.health(),
    }


@app.get("/metrics", include_in_schema=False)
def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
