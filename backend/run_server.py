"""Run the checkout API with uvicorn (local development and single-box deploys)."""
import signal
import sys

import uvicorn

from app.core.config import settings


def handle_signal(sig, frame):
    print(f"\nReceived signal {sig}, flushing sessions and shutting down...")
    sys.exit(0)


signal.signal(signal.SIGINT, handle_signal)
signal.signal(signal.SIGTERM, handle_signal)

if __name__ == "__main__":
    print("=" * 50)
    print("  Starting Checkout Assistant Backend")
    print(f"  http://{settings.SERVER_HOST}:{settings.SERVER_PORT} ({settings.ENVIRONMENT})")
    print("=" * 50)
    uvicorn.run(
        "app.main:app",
        host=settings.SERVER_HOST,
        port=settings.SERVER_PORT,
        log_level=settings.LOG_LEVEL.lower(),
        # One worker: sessions, locks and the realtime hub live in process memory
        workers=1,
    )
