"""
Learner Conversion Pipeline API - Main Application.

FastAPI application with CORS enabled for the back-office frontend.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api import __version__
from api.dependencies import get_settings
from domain.errors import (
    ConcurrencyConflictError,
    InvalidArgumentError,
    InvalidStateError,
    NotFoundError,
    PipelineError,
    ValidationError,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Settings are read on startup, not at import
    logging.basicConfig(
        level=get_settings().log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    yield


# Create FastAPI application
app = FastAPI(
    title="Learner Conversion Pipeline API",
    description="REST API driving training prospects from first contact to billable enrollment",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# Configure CORS - Allow all origins for development
# TODO: Restrict origins to the back-office host once it has a fixed domain
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Most specific class first: IllegalTransitionError is an InvalidStateError
_STATUS_BY_ERROR = (
    (NotFoundError, 404),
    (InvalidStateError, 409),
    (ConcurrencyConflictError, 409),
    (ValidationError, 422),
    (InvalidArgumentError, 400),
)


def status_code_for(exc: PipelineError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 400


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError):
    """Render a rejected operation as {kind, reason, current}."""
    return JSONResponse(status_code=status_code_for(exc), content=exc.to_dict())


@app.get("/health", tags=["Health"])
def health_check():
    """
    Health check endpoint.

    Returns the API status and version.
    """
    return {
        "status": "healthy",
        "version": __version__,
        "service": "learner-conversion-pipeline-api"
    }


@app.get("/", tags=["Root"])
def root():
    """
    Root endpoint with API information.
    """
    return {
        "message": "Learner Conversion Pipeline API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health"
    }


# Import and include routers
from api.routers import funding, leads

app.include_router(leads.router, prefix="/api/v1", tags=["Leads"])
app.include_router(funding.router, prefix="/api/v1", tags=["Funding Compliance"])
