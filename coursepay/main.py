# Standard library imports
from contextlib import asynccontextmanager

# Third-party imports
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

# Local imports
from coursepay.api.v1.routes.router import router as api_v1_router
from coursepay.core.config import settings
from coursepay.core.logging_config import get_logger
from coursepay.core.response import error_response, success_response, validation_error_response
from coursepay.db.deps import AsyncSessionLocal
from coursepay.services.payments.gateway_set import build_gateway_set
from coursepay.services.payments.payment_service import PaymentService
from coursepay.services.payments.subscription_service import SubscriptionService
from coursepay.services.payments.wallet_bridge import WalletLedgerBridge

logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown operations."""
    # Startup: gateway clients are built once and shared read-only
    async with AsyncSessionLocal() as db:
        gateways = await build_gateway_set(db)
    payment_service = PaymentService(gateways, WalletLedgerBridge())
    app.state.gateways = gateways
    app.state.payment_service = payment_service
    app.state.subscription_service = SubscriptionService(payment_service)
    yield
    # Shutdown: Run when the application is shutting down
    logger.info("Shutting down payments service")


# Initialize FastAPI
app = FastAPI(
    title="Course Payments API",
    description="Payments, refunds, wallet and course subscriptions for the LMS",
    version="1.0.0",
    openapi_url="/api/openapi.json",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    lifespan=lifespan,
)

# Include the router with prefix
app.include_router(
    api_v1_router,
    prefix="/api/v1",
)


# Custom exception handler
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions with logging"""
    # exc.detail might be a dict or str
    msg = exc.detail if isinstance(exc.detail, str) else str(exc.detail)

    logger.warning(
        f"HTTP Exception: {exc.status_code} - {msg}",
        extra={
            "status_code": exc.status_code,
            "path": request.url.path,
            "method": request.method,
            "client_ip": request.client.host if request.client else None
        }
    )

    return error_response(msg, status_code=exc.status_code)


# Pydantic validation errors
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Structured validation error details"""
    error_count = len(exc.errors())
    logger.warning(
        f"Validation Error: {error_count} field(s) failed validation",
        extra={
            "path": request.url.path,
            "method": request.method,
            "error_count": error_count,
        }
    )

    return validation_error_response(exc.errors(), status_code=422)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Last resort: never leak stack traces or gateway payloads to clients"""
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return error_response("Internal server error", status_code=500, error_code="INTERNAL_ERROR")


@app.get("/health", include_in_schema=False)
async def health(request: Request):
    gateways = getattr(request.app.state, "gateways", None)
    return success_response(
        msg="ok",
        data={
            "environment": settings.ENVIRONMENT,
            "gateways": gateways.available() if gateways is not None else [],
        },
    )


# Add CORS middleware
logger.info(f"Configuring CORS middleware with origins: {settings.ALLOWED_ORIGINS}")
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=settings.ALLOW_CREDENTIALS,
    allow_methods=settings.ALLOWED_METHODS,
    allow_headers=settings.ALLOWED_HEADERS,
)


# Run the app
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        app,
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG
    )
