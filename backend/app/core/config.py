"""Application configuration.

Environment variables override all defaults.
CRITICAL: ADMIN_API_KEY must be set in .env - will fail fast if missing in production.
"""

import os
from pathlib import Path
from typing import List

from dotenv import load_dotenv


# Load .env for local development
_BACKEND_DIR = Path(__file__).resolve().parents[2]
load_dotenv(dotenv_path=_BACKEND_DIR / ".env", override=False)


def _float(name: str, default: str) -> float:
    return float(os.getenv(name, default))


class Settings:
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    SERVER_HOST: str = os.getenv("SERVER_HOST", "127.0.0.1")
    SERVER_PORT: int = int(os.getenv("SERVER_PORT", "8000"))

    # Database Configuration
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./checkout.db")

    # Admin back-office key (Bearer token on /orders and manual verification)
    ADMIN_API_KEY: str = os.getenv("ADMIN_API_KEY", "")
    if not ADMIN_API_KEY:
        if ENVIRONMENT == "production":
            raise ValueError(
                "⛔ CRITICAL: ADMIN_API_KEY must be set in production environment. "
                "Generate with: python -c 'import secrets; print(secrets.token_urlsafe(32))'"
            )
        import warnings
        warnings.warn(
            "⚠️  ADMIN_API_KEY not set in environment. Admin endpoints will reject every request.",
            RuntimeWarning
        )

    # CORS (specific origins only, no wildcards)
    CORS_ORIGINS: List[str] = [
        origin.strip()
        for origin in os.getenv(
            "CORS_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000",
        ).split(",")
        if origin.strip()
    ]
    ALLOWED_HOSTS: List[str] = [
        host.strip()
        for host in os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1,testserver").split(",")
        if host.strip()
    ]

    # Storefront URL used in provider redirects
    PUBLIC_APP_URL: str = os.getenv("PUBLIC_APP_URL", "http://localhost:3000")

    # Groq API Key (Must be set via .env, never in code)
    GROQ_API_KEY: str = os.getenv("GROQ_API_KEY", "")

    # Stripe
    STRIPE_SECRET_KEY: str = os.getenv("STRIPE_SECRET_KEY", "")
    STRIPE_WEBHOOK_SECRET: str = os.getenv("STRIPE_WEBHOOK_SECRET", "")
    STRIPE_MIN_AMOUNT_CENTS: int = int(os.getenv("STRIPE_MIN_AMOUNT_CENTS", "50"))
    STRIPE_CHECKOUT_TTL_MINUTES: int = int(os.getenv("STRIPE_CHECKOUT_TTL_MINUTES", "30"))

    # Bictorys (Wave / Orange Money aggregator)
    BICTORYS_API_URL: str = os.getenv("BICTORYS_API_URL", "https://api.bictorys.com")
    BICTORYS_API_KEY: str = os.getenv("BICTORYS_API_KEY", "")
    BICTORYS_WEBHOOK_SECRET: str = os.getenv("BICTORYS_WEBHOOK_SECRET", "")

    # Currency
    XOF_PER_EUR: float = _float("XOF_PER_EUR", "655.957")
    DEFAULT_CURRENCY: str = os.getenv("DEFAULT_CURRENCY", "XOF")
    DEFAULT_COUNTRY: str = os.getenv("DEFAULT_COUNTRY", "SN")

    # Outbound provider calls: a timeout is a failure, never retried automatically
    PAYMENT_TIMEOUT_SECONDS: float = _float("PAYMENT_TIMEOUT_SECONDS", "15")

    # Delivery zones
    DELIVERY_ZONE_CACHE_SECONDS: int = int(os.getenv("DELIVERY_ZONE_CACHE_SECONDS", "600"))

    # Chat sessions
    SESSION_INACTIVITY_SECONDS: int = int(os.getenv("SESSION_INACTIVITY_SECONDS", "3600"))
    SESSION_MESSAGE_WINDOW: int = int(os.getenv("SESSION_MESSAGE_WINDOW", "5"))

    # Buying intent thresholds
    READY_TO_BUY_THRESHOLD: float = _float("READY_TO_BUY_THRESHOLD", "0.7")
    EXPRESS_CHECKOUT_THRESHOLD: float = _float("EXPRESS_CHECKOUT_THRESHOLD", "0.3")

    # Email notifications
    RESEND_API_KEY: str = os.getenv("RESEND_API_KEY", "")
    NOTIFICATION_FROM_EMAIL: str = os.getenv("NOTIFICATION_FROM_EMAIL", "commandes@example.com")

    # Background maintenance (session GC, notification delivery, analytics flush)
    MAINTENANCE_INTERVAL_SECONDS: int = int(os.getenv("MAINTENANCE_INTERVAL_SECONDS", "60"))

    # Rate Limiting
    RATE_LIMIT_REQUESTS: int = int(os.getenv("RATE_LIMIT_REQUESTS", "100"))
    RATE_LIMIT_WINDOW_SECONDS: int = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))


settings = Settings()
