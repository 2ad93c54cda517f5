"""Ajira Online API - FastAPI application."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from . import __version__
from .config import get_settings
from .database import USERS_TABLE, get_supabase_client
from .errors import AjiraError
from .logging_config import configure_logging, get_logger
from .rate_limit import limiter
from .routes import (
    ai_router,
    auth_router,
    blog_router,
    cars_router,
    categories_router,
    chat_router,
    cron_router,
    hotels_router,
    jobs_router,
    loyalty_router,
    orders_router,
    payments_router,
    payouts_router,
    products_router,
    proposals_router,
    reviews_router,
    settings_router,
    tours_router,
    transfers_router,
)

logger = get_logger("ajira.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    settings = get_settings()
    configure_logging(settings.log_level)
    logger.info(f"Starting Ajira Online API (debug={settings.debug})")
    yield
    logger.info("Shutting down Ajira Online API")


app = FastAPI(
    title="Ajira Online API",
    description="Marketplace backend: freelance jobs, shop, bookings and loyalty",
    version=__version__,
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(AjiraError)
async def ajira_error_handler(request: Request, exc: AjiraError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"{request.method} {request.url.path} failed: {type(exc).__name__}")
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# CORS middleware
settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth_router)
app.include_router(categories_router)
app.include_router(blog_router)
app.include_router(jobs_router)
app.include_router(proposals_router)
app.include_router(products_router)
app.include_router(orders_router)
app.include_router(payouts_router)
app.include_router(payments_router)
app.include_router(cars_router)
app.include_router(hotels_router)
app.include_router(tours_router)
app.include_router(transfers_router)
app.include_router(reviews_router)
app.include_router(loyalty_router)
app.include_router(cron_router)
app.include_router(chat_router)
app.include_router(ai_router)
app.include_router(settings_router)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "service": "ajira-api",
        "version": __version__,
        "status": "ok",
    }


@app.get("/health")
async def health():
    """Detailed health check with actual database verification."""
    db_status = "disconnected"
    try:
        db = get_supabase_client()
        db.table(USERS_TABLE).select("id").limit(1).execute()
        db_status = "connected"
    except Exception as e:
        db_status = f"error: {str(e)[:50]}"

    overall_status = "healthy" if db_status == "connected" else "degraded"

    return {
        "status": overall_status,
        "database": db_status,
    }
