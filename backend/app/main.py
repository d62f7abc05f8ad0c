"""Jobshare Backend API - FastAPI application."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

import jobshare

from .config import get_settings
from .exceptions import setup_exception_handlers
from .logging_config import configure_logging, get_logger
from .rate_limit import limiter
from .routes import directory_router, jobs_router, partnerships_router, share_requests_router

API_PREFIX = "/api/v1"

logger = get_logger("jobshare.api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    settings = get_settings()
    configure_logging(settings.debug)
    logger.info(f"Starting Jobshare API {jobshare.__version__} (debug={settings.debug})")
    yield
    logger.info("Shutting down Jobshare API")


app = FastAPI(
    title="Jobshare API",
    description="Job hand-offs between partner companies",
    version=jobshare.__version__,
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Sharing errors -> {"detail", "code"}
setup_exception_handlers(app)

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(partnerships_router, prefix=API_PREFIX)
app.include_router(share_requests_router, prefix=API_PREFIX)
app.include_router(jobs_router, prefix=API_PREFIX)
app.include_router(directory_router, prefix=API_PREFIX)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "service": "jobshare-backend",
        "version": jobshare.__version__,
        "status": "ok",
    }


@app.get("/health")
async def health():
    """Health check that touches the document store."""
    from jobshare.storage import COMPANIES

    from .database import get_store

    db_status = "disconnected"
    try:
        get_store().query(COMPANIES, id="__health__")
        db_status = "connected"
    except Exception as e:
        db_status = f"error: {str(e)[:50]}"

    return {
        "status": "healthy" if db_status == "connected" else "degraded",
        "database": db_status,
    }
