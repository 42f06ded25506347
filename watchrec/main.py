"""
=============================================================================
WATCHREC - Movie/TV recommendation ensemble API
=============================================================================
  - Eight independent scoring algorithms run concurrently per request
  - Dedup, cooldown filtering and confidence estimation across algorithms
  - Cold-start fallback to TMDB trending / popular
  - Outcome tracking feeding per-algorithm acceptance and health
=============================================================================
"""
from datetime import datetime, timezone

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from .config import settings
from .dependencies import init_resources, close_resources
from .exceptions import (
    DataStoreUnavailable,
    data_store_exception_handler,
    global_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from .limiter import limiter
from .logging_config import setup_logging
from .middleware import RequestTrackingMiddleware
from .routers import admin_router, event_router, metrics_router, recommendation_router

VERSION = "1.0.0"

setup_logging(settings.LOG_LEVEL)

app = FastAPI(
    title="WatchRec API",
    description="Multi-algorithm movie and TV recommendations with outcome tracking",
    version=VERSION
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_exception_handler(DataStoreUnavailable, data_store_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

app.add_middleware(RequestTrackingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(recommendation_router.router, tags=["recommendations"])
app.include_router(event_router.router, tags=["outcomes"])
app.include_router(metrics_router.router, tags=["metrics"])
app.include_router(admin_router.router, tags=["admin"])


@app.on_event("startup")
async def startup():
    await init_resources()


@app.on_event("shutdown")
async def shutdown():
    await close_resources()


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": VERSION
    }
