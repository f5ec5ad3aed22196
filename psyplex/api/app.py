"""PsyPlex FastAPI Application - Main Entry Point

Practice records API for the PsyPlex front end.
"""

import os

import structlog
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from psyplex.api.practice import router as practice_router

logger = structlog.get_logger(__name__)

# Create FastAPI app with environment-aware configuration
app = FastAPI(
    title="PsyPlex - Practice Records",
    version="0.1.0",
    description="Therapy practice records with row-level ownership",
    docs_url="/docs" if os.environ.get("PSYPLEX_ENV") != "production" else None,
    redoc_url="/redoc" if os.environ.get("PSYPLEX_ENV") != "production" else None,
)


# =============================================================================
# Health Checks
# =============================================================================

@app.get("/health")
async def health_check():
    """Health check endpoint for the load balancer"""
    return {
        "status": "healthy",
        "service": "psyplex",
        "version": "0.1.0",
    }


@app.get("/healthz")
async def healthz():
    """Kubernetes-style health check"""
    return {"status": "ok"}


# =============================================================================
# Error Handlers
# =============================================================================

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request, exc):
    """Return structured validation errors without echoing submitted values"""
    return JSONResponse(
        status_code=422,
        content={
            "detail": "Invalid request",
            "type": "validation_error",
            "fields": [".".join(str(part) for part in err["loc"]) for err in exc.errors()],
        },
    )


# =============================================================================
# API Routers
# =============================================================================

app.include_router(practice_router)


# =============================================================================
# Startup/Shutdown Events
# =============================================================================

@app.on_event("startup")
async def startup_event():
    """Initialize application resources"""
    logger.info(
        "api_starting",
        privileged_configured=os.environ.get("PRIVILEGED_DATABASE_URL") is not None,
    )


@app.on_event("shutdown")
async def shutdown_event():
    """Clean up application resources"""
    logger.info("api_stopping")


# =============================================================================
# Root Endpoint
# =============================================================================

@app.get("/")
async def root():
    """API root endpoint"""
    return {
        "service": "psyplex",
        "description": "Therapy practice records",
        "version": "0.1.0",
        "docs": "/docs" if os.environ.get("PSYPLEX_ENV") != "production" else None,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000, workers=2)
