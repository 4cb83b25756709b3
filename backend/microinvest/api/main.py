"""
FastAPI application entry point.

Main API server for the MicroInvest simulation platform.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm.exc import StaleDataError

from microinvest.core.config import settings
from microinvest.core.database import AsyncSessionLocal, close_db
from microinvest.core.exceptions import ConcurrentModificationError, MicroInvestError
from microinvest.core.logging import setup_logging
from microinvest.services.account_service import bootstrap_admin

# Setup logging
setup_logging()
logger = logging.getLogger(__name__)

# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Micro-Investing Simulation - virtual portfolios, paper trading and learning",
    debug=settings.DEBUG,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(MicroInvestError)
async def domain_error_handler(request: Request, exc: MicroInvestError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})


@app.exception_handler(StaleDataError)
async def stale_data_handler(request: Request, exc: StaleDataError) -> JSONResponse:
    logger.warning(f"Concurrent update on {request.url.path}: {exc}")
    error = ConcurrentModificationError("The record was modified by another request; please retry")
    return JSONResponse(status_code=error.status_code, content={"error": error.to_dict()})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"error": {"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}}},
    )


@app.on_event("startup")
async def startup() -> None:
    """Run on application startup."""
    # Schema is managed by Alembic
    async with AsyncSessionLocal() as session:
        await bootstrap_admin(session)


@app.on_event("shutdown")
async def shutdown() -> None:
    """Run on application shutdown."""
    await close_db()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
    }


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "message": f"Welcome to {settings.APP_NAME} API",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }


from microinvest.api.users import router as users_router
from microinvest.api.portfolios import router as portfolios_router
from microinvest.api.positions import router as positions_router
from microinvest.api.orders import router as orders_router
from microinvest.api.transactions import router as transactions_router
from microinvest.api.securities import router as securities_router
from microinvest.api.watchlists import router as watchlists_router
from microinvest.api.dividends import router as dividends_router
from microinvest.api.learning import router as learning_router
from microinvest.api.achievements import router as achievements_router
from microinvest.api.audit import router as audit_router
from microinvest.api.admin import router as admin_router

app.include_router(users_router, prefix="/api/v1/users", tags=["users"])
app.include_router(portfolios_router, prefix="/api/v1/portfolios", tags=["portfolios"])
app.include_router(positions_router, prefix="/api/v1/portfolios", tags=["positions"])
app.include_router(orders_router, prefix="/api/v1/orders", tags=["orders"])
app.include_router(transactions_router, prefix="/api/v1/transactions", tags=["transactions"])
app.include_router(securities_router, prefix="/api/v1/securities", tags=["securities"])
app.include_router(watchlists_router, prefix="/api/v1/watchlists", tags=["watchlists"])
app.include_router(dividends_router, prefix="/api/v1/dividends", tags=["dividends"])
app.include_router(learning_router, prefix="/api/v1/learning", tags=["learning"])
app.include_router(achievements_router, prefix="/api/v1/achievements", tags=["achievements"])
app.include_router(audit_router, prefix="/api/v1/audit", tags=["audit"])
app.include_router(admin_router, prefix="/api/v1/admin", tags=["admin"])
