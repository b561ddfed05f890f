# app/main.py
from contextlib import asynccontextmanager
import logging

from fastapi.middleware.cors import CORSMiddleware
from fastapi import FastAPI

from app.core.config import get_settings
from app.core.email_client import smtp_configured
from app.database import create_db_and_tables

# Import models so SQLModel metadata is populated before create_all()
from app.models import user as _user_models  # noqa: F401
from app.models import product as _product_models  # noqa: F401
from app.models import cart as _cart_models  # noqa: F401
from app.models import order as _order_models  # noqa: F401

from app.routers import cart, orders, payment, products

settings = get_settings()

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger("uvicorn")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup:
      - create missing tables (orders, order items, tiers, carts, users)
      - report which outside services are configured, since Online
        checkout needs Razorpay keys and order emails need SMTP
    """
    logger.info("Startup: preparing order tables...")
    try:
        create_db_and_tables()
    except Exception as e:
        logger.error("Startup: database unavailable: %s", e)
        raise

    if not (settings.RAZORPAY_KEY_ID and settings.RAZORPAY_KEY_SECRET):
        logger.warning("Startup: Razorpay keys missing, Online checkout will fail")
    if not smtp_configured(settings):
        logger.warning("Startup: SMTP not configured, order emails are skipped")
    yield


app = FastAPI(
    title=settings.PROJECT_NAME,
    version="0.1.0",
    lifespan=lifespan,
)

# Storefront and admin console origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

for module in (products, cart, orders, payment):
    app.include_router(module.router, prefix=settings.API_V1_STR)


@app.get("/")
def root():
    """Liveness check for the load balancer."""
    return {"status": "ok", "service": "ruchulu-backend", "currency": settings.CURRENCY}
