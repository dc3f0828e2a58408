"""
FastAPI application entry point.
Configures routes, error mapping, and lifecycle events.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from hundi.config import settings
from hundi.database import close_db
from hundi.errors import (
    AmountNotAllowed,
    AmountRequired,
    DefaultGroupMissing,
    DonationNotFound,
    DonorNotFound,
    DuplicateCycleRecord,
    DuplicateHundiNumber,
    GroupNotFound,
    HundiError,
    InactiveDonor,
    InvalidStatusTransition,
    NotesRequired,
    RepositoryFailure,
)
from hundi.logging_config import configure_logging

from hundi.api.donors import router as donors_router
from hundi.api.donations import router as donations_router
from hundi.api.jobs import router as jobs_router

logger = logging.getLogger(__name__)

# Engine errors -> HTTP status
ERROR_STATUS_CODES = {
    DonorNotFound: 404,
    DonationNotFound: 404,
    GroupNotFound: 404,
    DuplicateCycleRecord: 409,
    DuplicateHundiNumber: 409,
    DefaultGroupMissing: 409,
    InactiveDonor: 422,
    InvalidStatusTransition: 422,
    AmountRequired: 422,
    AmountNotAllowed: 422,
    NotesRequired: 422,
    RepositoryFailure: 503,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifecycle manager."""
    configure_logging()
    logger.info("Starting up hundi...")
    
    yield
    
    await close_db()
    logger.info("Shutting down...")


app = FastAPI(
    title="Hundi",
    description="Monthly hundi collection tracking",
    version="1.0.0",
    lifespan=lifespan,
    debug=settings.debug,
)


@app.exception_handler(HundiError)
async def hundi_exception_handler(request: Request, exc: HundiError):
    status_code = ERROR_STATUS_CODES.get(type(exc), 400)
    
    if isinstance(exc, RepositoryFailure):
        logger.error(f"Repository failure on {request.url.path}: {exc}", exc_info=exc)
        message = "Temporary storage failure. Please try again."
    else:
        message = str(exc)
    
    return JSONResponse(
        status_code=status_code,
        content={"status": "error", "code": exc.code, "message": message},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Global exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"status": "error", "message": "Internal Server Error"},
    )


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "app": settings.app_name,
        "env": settings.app_env,
    }


app.include_router(donors_router, tags=["donors"])
app.include_router(donations_router, tags=["donations"])
app.include_router(jobs_router, tags=["jobs"])
