"""
Checkout Assistant Backend.

ARCHITECTURE:
- Chat widget: one conversation per product page, guided by the step machine
- FastAPI Backend: order capture, delivery zones, payment dispatch
- Payment providers: Stripe (card), Bictorys (Wave / Orange Money), cash on delivery
- Webhooks: the only path (besides admin verification) that marks an order PAID
- SQL DB: source of truth for orders, transactions and sessions

The LLM only rephrases product Q&A replies. It never decides a step,
a price or a payment outcome.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware

from app.api.routes import chat, delivery, orders, payments, realtime, webhooks
from app.core.config import settings
from app.core.rate_limiter import RateLimitMiddleware
from app.db.init_db import init_db
from app.db.session import SessionLocal
from app.services.container import build_services

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
    1. Initialize database tables and seed reference data
    2. Build the service container
    3. Start the maintenance scheduler

    Shutdown:
    1. Stop the scheduler (runs a final tick)
    2. Flush pending session writes
    """
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    logger.info("[*] Initializing database...")
    init_db()
    logger.info("[OK] Database initialized")

    services = getattr(app.state, "services", None)
    if services is None:
        services = build_services(SessionLocal)
        app.state.services = services
    services.scheduler.start()
    logger.info("[OK] Services started")

    yield

    try:
        await services.scheduler.stop()
        await services.sessions.flush()
    except Exception as e:
        logger.error(f"[ERROR] Shutdown error: {e}", exc_info=True)


app = FastAPI(
    title="Checkout Assistant API",
    description="Conversational checkout: chat order-taking, delivery zones, payments and webhooks.",
    version="0.1.0",
    lifespan=lifespan,
)

# SECURITY: Trust only specific hosts
app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.ALLOWED_HOSTS)

# SECURITY: Restrict CORS to specific methods and headers (not wildcards)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=[
        "Content-Type",
        "Authorization",
        "Accept",
        "Origin",
    ],  # Explicit headers only
    max_age=600,  # Cache preflight for 10 minutes
    expose_headers=["Content-Type"],
)

# SECURITY: Rate limiting (provider webhooks are exempt)
app.add_middleware(RateLimitMiddleware)


# SECURITY: Add security headers middleware
@app.middleware("http")
async def add_security_headers(request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"  # Prevent MIME sniffing
    response.headers["X-Frame-Options"] = "DENY"  # Prevent clickjacking
    response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"  # HSTS
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    return response


app.include_router(chat.router, prefix="/chat", tags=["chat"])
app.include_router(delivery.router, prefix="/delivery", tags=["delivery"])
app.include_router(payments.router, prefix="/payments", tags=["payments"])
app.include_router(webhooks.router, prefix="/webhook", tags=["webhooks"])
app.include_router(orders.router, prefix="/orders", tags=["orders"])
app.include_router(realtime.router, prefix="/realtime", tags=["realtime"])


@app.get("/health")
def health():
    return {"status": "ok"}
