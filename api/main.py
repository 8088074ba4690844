"""Storefront API: FastAPI entry point.

Registers middleware, routers, exception handlers and lifecycle hooks.
"""

import os
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.middleware import RateLimitMiddleware
from core.database import close_db
from core.logging import configure_logging
from core.resilience import RateLimiter
from storefront.errors import StorefrontError
from storefront.router import STORE_CONFIG, router as storefront_router

# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

CORS_ORIGINS = os.getenv(
    "CORS_ORIGINS", "http://localhost:3000,http://localhost:3001"
).split(",")
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
LOG_JSON = os.getenv("LOG_JSON", "true").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup/shutdown hooks."""
    configure_logging(json=LOG_JSON, level=LOG_LEVEL)
    logger.info("storefront_api_started", debug=DEBUG)
    yield
    logger.info("storefront_api_stopping")
    await close_db()


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Storefront",
    description="Bookstore cart and checkout API",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Checkout rate limiting
app.add_middleware(
    RateLimitMiddleware,
    limiter=RateLimiter(
        max_requests=STORE_CONFIG.rate_limit.max_requests,
        window_seconds=STORE_CONFIG.rate_limit.window_seconds,
        max_tracked_keys=STORE_CONFIG.rate_limit.max_tracked_keys,
    ),
)


# ---------------------------------------------------------------------------
# Error handlers
# ---------------------------------------------------------------------------

@app.exception_handler(StorefrontError)
async def storefront_error_handler(request: Request, exc: StorefrontError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.message},
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return JSONResponse(status_code=400, content={"success": False, "error": message})


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

app.include_router(storefront_router, prefix="/api/storefront", tags=["Storefront"])


# ---------------------------------------------------------------------------
# Health & root
# ---------------------------------------------------------------------------

@app.get("/health")
async def health():
    return {"status": "healthy", "version": "0.1.0"}


@app.get("/")
async def root():
    return {
        "name": "Storefront",
        "version": "0.1.0",
        "docs": "/docs",
    }
