"""Notification Worker - Drains the email outbox on an APScheduler interval

Several API processes may run a worker against the same database. Each
outbox entry is claimed with a MongoDB lock before it is sent; a second job
releases locks whose owner died mid-delivery.
"""
import os
import socket
from collections import Counter
from typing import Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config.settings import settings
from ..domain.models import NotificationOutbox
from ..repositories.notification_repo import NotificationRepository
from ..services.notification_service import NotificationService
from ..utils.logger import get_logger
from ..utils.idgen import generate_correlation_id, generate_id
from ..utils.time import utc_now

logger = get_logger(__name__)


BATCH_SIZE = 50
STALE_LOCK_SWEEP_MINUTES = 5

SENT = "sent"
FAILED = "failed"
CONTENDED = "contended"


class NotificationWorker:
    """
    Outbox delivery on two interval jobs

    deliver: every scheduler_interval_seconds, up to BATCH_SIZE due entries
    sweep: every STALE_LOCK_SWEEP_MINUTES, frees locks older than
        stale_lock_cleanup_minutes
    """

    def __init__(self):
        self.scheduler: Optional[AsyncIOScheduler] = None
        self.notification_repo = NotificationRepository()
        self.notification_service = NotificationService()
        self.owner_id = f"{socket.gethostname()}-{os.getpid()}-{generate_id()[:8]}"
        self.total_sent = 0

    @property
    def is_running(self) -> bool:
        return self.scheduler is not None and self.scheduler.running

    def start(self) -> None:
        if self.is_running:
            logger.warning("Notification worker already running")
            return

        self.scheduler = AsyncIOScheduler()
        self.scheduler.add_job(
            self.process_notifications,
            trigger=IntervalTrigger(seconds=settings.scheduler_interval_seconds),
            id="deliver_notifications",
            name="Deliver due outbox entries",
            max_instances=1,
            replace_existing=True
        )
        self.scheduler.add_job(
            self.cleanup_stale_locks,
            trigger=IntervalTrigger(minutes=STALE_LOCK_SWEEP_MINUTES),
            id="sweep_stale_locks",
            name="Release abandoned outbox locks",
            replace_existing=True
        )
        self.scheduler.start()

        logger.info(
            f"Notification worker started as {self.owner_id}",
            extra={"interval_seconds": settings.scheduler_interval_seconds}
        )

    def stop(self) -> None:
        if self.scheduler and self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info(f"Notification worker stopped after {self.total_sent} deliveries")
        self.scheduler = None

    async def _deliver(self, notification: NotificationOutbox) -> str:
        """Claim, send and release one entry; returns the outcome"""
        lock_id = f"{self.owner_id}-{generate_id()[:8]}"
        claimed = self.notification_repo.acquire_lock(
            notification.notification_id,
            lock_id,
            lock_duration_seconds=settings.notification_lock_duration_seconds
        )
        if not claimed:
            return CONTENDED

        try:
            sent = await self.notification_service.send_notification(notification)
        finally:
            self.notification_repo.release_lock(notification.notification_id, lock_id)

        return SENT if sent else FAILED

    async def process_notifications(self) -> int:
        """
        Deliver one batch of due outbox entries

        A failure on one entry is logged and the batch continues. Returns
        the number of entries sent in this cycle.
        """
        cycle_id = generate_correlation_id()
        started = utc_now()
        outcomes: Counter = Counter()

        try:
            due = self.notification_repo.get_pending_notifications(limit=BATCH_SIZE)
        except Exception as e:
            logger.error(f"Could not read the outbox: {e}", extra={"correlation_id": cycle_id})
            return 0

        for notification in due:
            try:
                outcomes[await self._deliver(notification)] += 1
            except Exception as e:
                outcomes[FAILED] += 1
                logger.error(
                    f"Delivery crashed: {e}",
                    extra={
                        "notification_id": notification.notification_id,
                        "ticket_id": notification.ticket_id,
                        "correlation_id": cycle_id,
                        "error_code": type(e).__name__
                    }
                )

        self.total_sent += outcomes[SENT]
        if outcomes[SENT] or outcomes[FAILED]:
            elapsed_ms = (utc_now() - started).total_seconds() * 1000
            logger.info(
                f"Outbox cycle: {outcomes[SENT]} sent, {outcomes[FAILED]} not sent, "
                f"{outcomes[CONTENDED]} held by another worker ({elapsed_ms:.0f}ms)",
                extra={"correlation_id": cycle_id}
            )

        return outcomes[SENT]

    async def cleanup_stale_locks(self) -> int:
        """Release locks held longer than stale_lock_cleanup_minutes"""
        try:
            return self.notification_repo.cleanup_stale_locks(
                max_lock_age_minutes=settings.stale_lock_cleanup_minutes
            )
        except Exception as e:
            logger.error(f"Stale lock sweep failed: {e}")
            return 0


_worker: Optional[NotificationWorker] = None


def get_worker() -> NotificationWorker:
    global _worker
    if _worker is None:
        _worker = NotificationWorker()
    return _worker


def start_worker() -> None:
    get_worker().start()


def is_worker_running() -> bool:
    """True once start_worker() has run in this process"""
    return _worker is not None and _worker.is_running


def stop_worker() -> None:
    global _worker
    if _worker:
        _worker.stop()
        _worker = None
