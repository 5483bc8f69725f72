"""
Maintenance Scheduler - background housekeeping for the checkout.

Every MAINTENANCE_INTERVAL_SECONDS:
1. Evict chat sessions idle for more than SESSION_INACTIVITY_SECONDS from
   memory (their durable rows stay)
2. Deliver queued notification emails
3. Flush analytics events to conversation_events

Runs in the FastAPI process as an asyncio task; one failing job never stops
the others or the loop.
"""
import asyncio
import logging
from typing import Optional

logger = logging.getLogger(__name__)


class MaintenanceScheduler:
    def __init__(self, sessions, notifications, analytics, interval_seconds: int = 60, initial_delay: float = 5.0):
        self.sessions = sessions
        self.notifications = notifications
        self.analytics = analytics
        self.interval_seconds = interval_seconds
        self.initial_delay = initial_delay
        self._task: Optional[asyncio.Task] = None
        self._running = False

    async def run_once(self) -> dict:
        """One maintenance tick. Returns what each job did."""
        report = {"sessions_evicted": 0, "emails_sent": 0, "events_flushed": 0}

        try:
            report["sessions_evicted"] = self.sessions.cleanup_inactive()
        except Exception as e:
            logger.error(f"[Maintenance] Session cleanup error: {e}")

        try:
            report["emails_sent"] = await self.notifications.deliver_pending()
        except Exception as e:
            logger.error(f"[Maintenance] Notification delivery error: {e}")

        try:
            report["events_flushed"] = await self.analytics.flush()
        except Exception as e:
            logger.error(f"[Maintenance] Analytics flush error: {e}")

        logger.debug(f"[Maintenance] Tick: {report}")
        return report

    async def _loop(self) -> None:
        logger.info(f"[Maintenance] Scheduler started. Interval: {self.interval_seconds}s")
        # Initial delay to let server fully start
        await asyncio.sleep(self.initial_delay)
        while self._running:
            await self.run_once()
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        """Called from the FastAPI lifespan."""
        if self._task is not None and not self._task.done():
            return
        self._running = True
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        """Stop the loop and run a last tick so queued work is not lost."""
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        await self.run_once()
        logger.info("[Maintenance] Scheduler stopped")
