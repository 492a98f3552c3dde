"""
AAng Logistics Auth API

Main entry point for the authentication and session service.
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Common library imports
from common.database import MongoDB
from common.utils import success_response

# App-specific imports
from aang.config import settings
from aang.error_handlers import register_exception_handlers
from aang.models import ALL_DOCUMENT_MODELS
from aang.routers import auth_router, auth_pin_router

# Import service initialization
from aang.auth.dependencies import init_auth_services

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# =============================================================================
# Database Instance
# =============================================================================
main_db = MongoDB()


# =============================================================================
# Application Lifespan
# =============================================================================
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    Connects the database, builds indexes and initializes the auth services.
    """
    logger.info("Starting AAng Auth API...")

    settings.validate_required()

    await main_db.connect(
        uri=settings.MONGODB_URI,
        database_name=settings.MONGODB_DATABASE,
        document_models=ALL_DOCUMENT_MODELS,
    )
    logger.info(f"Connected to database: {settings.MONGODB_DATABASE}")

    init_auth_services(db=main_db.db, settings=settings)
    logger.info("Auth services initialized")

    yield

    logger.info("Shutting down AAng Auth API...")
    await main_db.disconnect()


# =============================================================================
# FastAPI Application
# =============================================================================
app = FastAPI(
    title="AAng Logistics Auth API",
    description="Authentication and session lifecycle",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.is_development() else None,
    redoc_url="/redoc" if settings.is_development() else None,
)

# =============================================================================
# CORS Middleware
# =============================================================================
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# =============================================================================
# Include Routers
# =============================================================================
app.include_router(auth_router, prefix=settings.API_PREFIX, tags=["Authentication"])
app.include_router(auth_pin_router, prefix=settings.API_PREFIX, tags=["AuthPin"])


# =============================================================================
# Health Check Endpoint
# =============================================================================
@app.get("/health", tags=["Health"])
async def health():
    """
    Health check endpoint.

    Returns the status of the API and database connection.
    """
    database_ok = await main_db.ping() if main_db.is_connected else False
    return success_response({
        "status": "ok" if database_ok else "degraded",
        "version": "1.0.0",
        "database": database_ok,
    })


# =============================================================================
# Run with Uvicorn
# =============================================================================
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.is_development(),
    )
