# bakery_orders/main.py
"""
Bakery Branch Ordering API - Main API Entry Point
"""
from contextlib import asynccontextmanager

import uvicorn
from fastapi import Depends, FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from sqlalchemy.orm import Session

from .api.v1.endpoints import auth, branches, centers, orders, products, profile, users
from .config.database import check_database_health, cleanup_database, get_db, init_database
from .config.logging import get_logger, setup_logging
from .config.settings import get_settings
from .core.exceptions import (
    BaseCustomException,
    custom_exception_handler,
    request_validation_exception_handler,
)
from .core.middleware import LoggingMiddleware

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    setup_logging()
    logger.info(f"Starting {settings.APP_NAME} v{settings.VERSION}...")
    init_database()

    yield

    logger.info(f"Shutting down {settings.APP_NAME}...")
    cleanup_database()


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        description="Branch ordering, pricing and approval backend for a bakery network",
        version=settings.VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )

    # Add middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(LoggingMiddleware)

    # Add exception handlers
    app.add_exception_handler(BaseCustomException, custom_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)

    # Include routers
    app.include_router(auth.router, prefix="/api/v1/auth", tags=["Authentication"])
    app.include_router(products.router, prefix="/api/v1/products", tags=["Products"])
    app.include_router(branches.router, prefix="/api/v1/branches", tags=["Branches"])
    app.include_router(centers.router, prefix="/api/v1/centers", tags=["Centers"])
    app.include_router(orders.router, prefix="/api/v1/orders", tags=["Orders"])
    app.include_router(users.router, prefix="/api/v1/users", tags=["Users"])
    app.include_router(profile.router, prefix="/api/v1/profile", tags=["Profile"])

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {
            "message": settings.APP_NAME,
            "version": settings.VERSION,
            "status": "operational"
        }

    @app.get("/health")
    async def health_check(db: Session = Depends(get_db)):
        """Health check endpoint"""
        healthy = check_database_health(db)
        return {
            "status": "healthy" if healthy else "degraded",
            "database": "ok" if healthy else "unavailable",
            "version": settings.VERSION
        }

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "bakery_orders.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.DEBUG
    )
