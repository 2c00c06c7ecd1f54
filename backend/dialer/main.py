"""
FastAPI Application Entry Point
"""
import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from dialer.api.v1.routes import api_router
from dialer.core.config import get_settings
from dialer.infrastructure.storage.database import db_health, init_db

load_dotenv()

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan - startup and shutdown events.

    Startup:
    - Warns about missing callback / auth configuration
    - Creates tables when DB_CREATE_ALL is set (development)
    """
    logger.info("Starting Outbound Dialer...")

    strict_validation = settings.environment == "production"

    if not settings.public_base_url:
        logger.warning("PUBLIC_BASE_URL is not set - dispatch endpoints will refuse to place calls")
    if not settings.jwt_secret:
        if strict_validation:
            raise RuntimeError("JWT_SECRET is required in production")
        logger.warning("JWT_SECRET is not set - authenticated endpoints will reject every request")

    if settings.db_create_all:
        init_db()
        logger.info("Database tables created")

    logger.info("Outbound Dialer started successfully")

    yield  # Application is running

    logger.info("Outbound Dialer shutdown complete")


app = FastAPI(
    title="Outbound Dialer",
    description="Multi-tenant outbound call dispatch queue",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(api_router, prefix=settings.api_prefix)


@app.get("/")
async def root():
    return {"message": "Outbound Dialer API", "status": "running"}


@app.get("/health")
async def health_check():
    """
    Health check endpoint.

    Returns basic health status and database connectivity.
    """
    database = db_health()
    return {
        "status": "healthy" if database["ok"] else "degraded",
        "database": database,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
