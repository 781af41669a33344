"""
Radeo Storefront API — FastAPI Application

REST backend for the footwear storefront and its admin back-office:
catalog, cart and checkout, order lifecycle, Shiprocket shipments,
Razorpay payments, inventory ledger, marketing and CMS settings.

Run from backend/:
    uvicorn main:app --reload
"""
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import settings
from database import async_session, init_db
from domain.errors import DomainError
from domain.responses import ERROR_RESPONSES, error_code_for, error_response
from routes import (
    addresses,
    admin_catalog,
    admin_content,
    admin_dashboard,
    admin_marketing,
    admin_orders,
    analytics,
    auth,
    cart,
    contact,
    health,
    notifications,
    orders,
    reviews,
    store,
    webhooks,
    wishlist,
)
from services import settings_service

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: validate settings, create tables, seed CMS defaults."""
    settings.validate_production_settings()
    await init_db()

    async with async_session() as db:
        await settings_service.ensure_defaults(db)
        await db.commit()

    logger.info(f"🚀 {settings.app_name} started ({settings.environment})")
    yield
    logger.info("Shutting down")


app = FastAPI(
    title=settings.app_name,
    description="Footwear storefront and admin back-office: orders, shipments, payments, inventory and CMS",
    version="1.0.0",
    lifespan=lifespan,
    responses=ERROR_RESPONSES,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Storefront
for module in (health, auth, store, cart, wishlist, addresses, orders, reviews, notifications, analytics, contact):
    app.include_router(module.router)

# Back-office
for module in (admin_catalog, admin_orders, admin_marketing, admin_content, admin_dashboard):
    app.include_router(module.router)

# Providers
app.include_router(webhooks.router)


# ── Exception Handlers ──────────────────────────────────────────────


@app.exception_handler(DomainError)
async def domain_error_handler(request, exc: DomainError):
    if exc.status_code >= 500:
        logger.error(f"❌ {request.method} {request.url.path}: {exc.message}")
    return error_response(exc.status_code, error_code_for(exc), exc.message, exc.details)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request, exc: StarletteHTTPException):
    """Framework-raised errors (unknown route, wrong method) in the same envelope."""
    detail = exc.detail
    if isinstance(detail, str):
        return error_response(exc.status_code, "http_error", detail)
    return error_response(exc.status_code, "http_error", "Request failed", detail)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(p) for p in err.get("loc", [])[1:]), "message": err.get("msg")}
        for err in exc.errors()
    ]
    return error_response(422, "validation", "Request validation failed", {"errors": errors})


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Never leak internals; the traceback stays in the server log."""
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    return error_response(500, "internal_server_error", "Internal server error")


if __name__ == "__main__":
    import uvicorn
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port, log_level="info")
