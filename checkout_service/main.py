"""
Checkout Service Application

Cart, coupon and checkout API over a shared inventory.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from dotenv import load_dotenv

# Load environment variables before settings are read
load_dotenv()

from .core.config import settings
from .errors import (
    CheckoutError,
    ConflictError,
    CouponExpiredError,
    EmptyCartError,
    ForbiddenError,
    InsufficientStockError,
    InvalidArgumentError,
    InvalidTransitionError,
    NotFoundError,
    OutcomeUnknownError,
)
from .routes import products_router, cart_router, orders_router, coupons_router

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    logger.info(f"{settings.app_name} starting up...")
    logger.info(f"Lock timeout: {settings.lock_timeout_seconds}s")
    yield
    logger.info(f"{settings.app_name} shutting down...")


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Cart, coupon and checkout coordination service",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Map exception types to HTTP status codes
ERROR_STATUS_CODES: dict[type, int] = {
    InvalidArgumentError: 400,
    EmptyCartError: 400,
    CouponExpiredError: 400,
    ForbiddenError: 403,
    NotFoundError: 404,
    InsufficientStockError: 409,
    InvalidTransitionError: 409,
    ConflictError: 409,
    OutcomeUnknownError: 504,
}


@app.exception_handler(CheckoutError)
async def checkout_error_handler(request: Request, exc: CheckoutError) -> JSONResponse:
    """Map CheckoutError subclasses to appropriate HTTP responses."""
    status_code = ERROR_STATUS_CODES.get(type(exc), 500)
    content = {"detail": str(exc), "error_type": type(exc).__name__}
    if isinstance(exc, InsufficientStockError):
        content["shortages"] = [s.model_dump() for s in exc.shortages]
    if status_code >= 500:
        logger.warning(f"{request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=status_code, content=content)


@app.exception_handler(TimeoutError)
async def lock_timeout_handler(request: Request, exc: TimeoutError) -> JSONResponse:
    """A store stayed locked past the configured timeout; nothing was changed."""
    logger.warning(f"{request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=503,
        content={"detail": "The service is busy, please retry", "error_type": "TimeoutError"},
    )


# Include API routers
app.include_router(products_router)
app.include_router(cart_router)
app.include_router(orders_router)
app.include_router(coupons_router)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "service": "checkout-service"}


def run() -> None:
    """Run the service with uvicorn"""
    import uvicorn

    uvicorn.run(
        "checkout_service.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()
