"""
Storefront Fulfillment API
FastAPI application entry point

- Shiprocket fulfillment routes under /api
- ShippingError rendered as {"ok": false, "error": {...}}
- Missing carrier settings logged at startup; the app still boots
- Carrier HTTP client closed on shutdown
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.routes import shipments
from app.core.config import settings, shipping_config_warnings
from app.core.database import AsyncSessionLocal
from app.core.exceptions import CarrierBackoffError, CarrierLockoutError, ShippingError
from app.core.logging_config import configure_logging
from app.modules.shipping.client import close_shiprocket_client

# Import models to register them with SQLAlchemy
from app.models import User, Order, OrderItem  # noqa: F401

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()

    warnings = shipping_config_warnings(settings)
    if warnings:
        logger.warning(
            f"[SHIPROCKET] Shipping features degraded: {'; '.join(warnings)}. "
            "Fulfillment routes will fail until these are set."
        )
    else:
        logger.info(f"[SHIPROCKET] Configured for {settings.SHIPROCKET_BASE_URL}, pickup '{settings.SHIPROCKET_PICKUP_LOCATION}'")

    yield

    # Close HTTP clients to prevent connection leaks
    await close_shiprocket_client()
    logger.info("Shiprocket HTTP client closed")


app = FastAPI(
    lifespan=lifespan,
    title=settings.APP_NAME,
    description="Carrier fulfillment API: serviceability, shipment creation, AWB, pickup, documents, tracking.",
    version="1.0.0",
)


@app.exception_handler(ShippingError)
async def shipping_error_handler(request: Request, exc: ShippingError):
    level = logging.ERROR if exc.severity in ("P0", "P1") else logging.WARNING
    logger.log(level, f"[SHIPPING_ERROR] {request.method} {request.url.path}: {exc!r}")

    headers = {}
    if isinstance(exc, (CarrierBackoffError, CarrierLockoutError)) and exc.retry_after_seconds:
        headers["Retry-After"] = str(exc.retry_after_seconds)

    return JSONResponse(
        status_code=exc.http_status,
        content={"ok": False, "error": exc.to_dict()},
        headers=headers,
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content={
            "ok": False,
            "error": {
                "error_type": "RequestValidationError",
                "code": "REQUEST_INVALID",
                "message": "Request parameters are invalid",
                "details": {"errors": jsonable_encoder(exc.errors())},
            },
        },
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "ok": False,
            "error": {
                "error_type": "HTTPException",
                "code": f"HTTP_{exc.status_code}",
                "message": str(exc.detail),
                "details": {},
            },
        },
        headers=getattr(exc, "headers", None),
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(shipments.router, prefix="/api", tags=["Shipments"])


@app.get("/", tags=["Health"])
async def root():
    return {
        "message": settings.APP_NAME,
        "version": "1.0.0",
        "status": "operational"
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check with DB ping. Returns 503 if the database is unreachable."""
    health_status = {
        "status": "healthy",
        "database": "unknown",
        "shiprocket_configured": settings.shiprocket_configured,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    try:
        async with AsyncSessionLocal() as db:
            await db.execute(text("SELECT 1"))
        health_status["database"] = "connected"
    except Exception as e:
        health_status["database"] = f"error: {type(e).__name__}: {str(e)[:100]}"
        health_status["status"] = "unhealthy"
        return JSONResponse(status_code=503, content=health_status)

    return health_status
