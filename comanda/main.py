from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
import logging

# Import database components
from comanda.database.database import sync_engine, Base

# Import middleware
from comanda.common.middleware import StoreMiddleware, SecurityHeadersMiddleware
from comanda.common.exceptions import ComandaError

# Import routers
from comanda.modules.orders.router import orders_router
from comanda.modules.coupons.router import coupons_router
from comanda.modules.schedule.router import schedule_router
from comanda.modules.cash_register.router import cash_registers_router
from comanda.modules.loyalty.router import loyalty_router

# Import models for table creation
import comanda.modules.catalog.models
import comanda.modules.customers.models
import comanda.modules.loyalty.models
import comanda.modules.coupons.models
import comanda.modules.payments.models
import comanda.modules.schedule.models
import comanda.modules.cash_register.models
import comanda.modules.orders.models

from comanda.core.config import settings

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.ENVIRONMENT == "production" else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# FastAPI app
app = FastAPI(
    title="Comanda API",
    description="Order checkout API for food service stores: counter, WhatsApp and online store",
    version="1.0.0",
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None
)

# Add middleware (order matters!)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(StoreMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ComandaError)
async def comanda_error_handler(request: Request, exc: ComandaError):
    logger.warning(f"{exc.code} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Include routers
app.include_router(orders_router, prefix="/api/v1")
app.include_router(coupons_router, prefix="/api/v1")
app.include_router(schedule_router, prefix="/api/v1")
app.include_router(cash_registers_router, prefix="/api/v1")
app.include_router(loyalty_router, prefix="/api/v1")


@app.get("/")
async def read_root():
    return {
        "message": "Comanda API is running",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy", "environment": settings.ENVIRONMENT}


@app.on_event("startup")
async def startup_event():
    logger.info("Comanda API starting up...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug mode: {settings.DEBUG}")

    # Create database tables (only for development - use migrations in production)
    if settings.ENVIRONMENT == "development":
        Base.metadata.create_all(bind=sync_engine)
        logger.info("Database tables ensured")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Comanda API shutting down...")
