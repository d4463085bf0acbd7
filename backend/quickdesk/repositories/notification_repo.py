"""Notification Repository - The email outbox

An entry is PENDING until a worker sends it (SENT), gives up on it
(FAILED) or finds no SMTP relay configured (SKIPPED). Workers claim an
entry by writing locked_by/locked_until in a single find-and-modify, so
the same entry is never delivered by two processes at once.
"""
from typing import Any, Dict, List, Optional
from datetime import datetime, timedelta
from pymongo.collection import Collection
from pymongo import ASCENDING, ReturnDocument
from pymongo.errors import PyMongoError

from .mongo_client import get_collection
from ..domain.models import NotificationOutbox
from ..domain.enums import NotificationStatus
from ..domain.errors import NotFoundError
from ..config.settings import settings
from ..utils.logger import get_logger
from ..utils.time import utc_now

logger = get_logger(__name__)


CLEARED_LOCK = {"locked_until": None, "locked_by": None, "lock_acquired_at": None}


def _unlocked(now: datetime) -> Dict[str, Any]:
    """Entries with no lock or an expired one"""
    return {"$or": [{"locked_until": None}, {"locked_until": {"$lte": now}}]}


def _due(now: datetime) -> Dict[str, Any]:
    """Entries never attempted or whose retry time has passed"""
    return {"$or": [{"next_retry_at": None}, {"next_retry_at": {"$lte": now}}]}


def retry_delay(previous_attempts: int) -> timedelta:
    """Backoff before the next attempt: 1, 2, 4, 8... minutes"""
    return timedelta(minutes=2 ** previous_attempts)


class NotificationRepository:
    """Repository for notification outbox operations"""

    def __init__(self):
        self._outbox: Collection = get_collection("notification_outbox")

    def _to_model(self, doc: Dict[str, Any]) -> NotificationOutbox:
        doc.pop("_id", None)
        return NotificationOutbox.model_validate(doc)

    def create_notification(self, notification: NotificationOutbox) -> NotificationOutbox:
        doc = notification.model_dump()
        doc["_id"] = notification.notification_id
        self._outbox.insert_one(doc)

        logger.info(
            f"Queued {notification.template_key} notification",
            extra={"notification_id": notification.notification_id, "ticket_id": notification.ticket_id}
        )
        return notification

    def get_notification(self, notification_id: str) -> Optional[NotificationOutbox]:
        doc = self._outbox.find_one({"notification_id": notification_id})
        return self._to_model(doc) if doc else None

    def get_pending_notifications(self, limit: int = 100) -> List[NotificationOutbox]:
        """PENDING entries that are due and not held by a live lock, oldest first"""
        now = utc_now()
        query = {
            "status": NotificationStatus.PENDING.value,
            "$and": [_due(now), _unlocked(now)],
        }
        try:
            cursor = self._outbox.find(query).sort("created_at", ASCENDING).limit(limit)
            return [self._to_model(doc) for doc in cursor]
        except PyMongoError as e:
            logger.error(f"Could not read pending notifications: {e}")
            return []

    # =========================================================================
    # Locking
    # =========================================================================

    def acquire_lock(self, notification_id: str, lock_by: str, lock_duration_seconds: int = 60) -> bool:
        """Claim a PENDING entry for delivery; False if someone else holds it"""
        now = utc_now()
        query = {"notification_id": notification_id, "status": NotificationStatus.PENDING.value}
        query.update(_unlocked(now))

        try:
            claimed = self._outbox.find_one_and_update(query, {"$set": {
                "locked_by": lock_by,
                "locked_until": now + timedelta(seconds=lock_duration_seconds),
                "lock_acquired_at": now,
            }})
        except PyMongoError as e:
            logger.error(f"Could not lock notification: {e}", extra={"notification_id": notification_id})
            return False

        if claimed is None:
            logger.debug("Notification already claimed or finished", extra={"notification_id": notification_id})
        return claimed is not None

    def release_lock(self, notification_id: str, lock_by: Optional[str] = None) -> bool:
        """Drop a lock; with lock_by, only if that owner still holds it"""
        query: Dict[str, Any] = {"notification_id": notification_id}
        if lock_by:
            query["locked_by"] = lock_by
        return self._outbox.update_one(query, {"$set": CLEARED_LOCK}).modified_count > 0

    def cleanup_stale_locks(self, max_lock_age_minutes: int = 10) -> int:
        """Clear locks whose expiry passed more than max_lock_age_minutes ago"""
        cutoff = utc_now() - timedelta(minutes=max_lock_age_minutes)
        try:
            result = self._outbox.update_many(
                {"locked_by": {"$ne": None}, "locked_until": {"$lte": cutoff}},
                {"$set": CLEARED_LOCK}
            )
        except PyMongoError as e:
            logger.error(f"Could not clear stale notification locks: {e}")
            return 0

        if result.modified_count:
            logger.warning(f"Released {result.modified_count} abandoned notification locks")
        return result.modified_count

    # =========================================================================
    # Outcomes
    # =========================================================================

    def _finish(self, notification_id: str, updates: Dict[str, Any]) -> NotificationOutbox:
        """Record an attempt's outcome and drop the lock in the same write"""
        updates = {**updates, **CLEARED_LOCK}
        doc = self._outbox.find_one_and_update(
            {"notification_id": notification_id},
            {"$set": updates},
            return_document=ReturnDocument.AFTER
        )
        if doc is None:
            raise NotFoundError(f"Notification {notification_id} not found")
        return self._to_model(doc)

    def mark_sent(self, notification_id: str) -> NotificationOutbox:
        notification = self._finish(notification_id, {
            "status": NotificationStatus.SENT.value,
            "sent_at": utc_now(),
        })
        logger.info("Notification sent", extra={"notification_id": notification_id})
        return notification

    def mark_skipped(self, notification_id: str, reason: str) -> NotificationOutbox:
        notification = self._finish(notification_id, {
            "status": NotificationStatus.SKIPPED.value,
            "last_error": reason,
        })
        logger.info(f"Notification skipped: {reason}", extra={"notification_id": notification_id})
        return notification

    def mark_failed(self, notification_id: str, error: str) -> NotificationOutbox:
        """
        Record a failed attempt

        The entry stays PENDING with next_retry_at pushed out by
        retry_delay(); once notification_max_retries attempts have failed
        it becomes FAILED and is never picked up again.
        """
        current = self.get_notification(notification_id)
        if current is None:
            raise NotFoundError(f"Notification {notification_id} not found")

        attempts = current.retry_count + 1
        exhausted = attempts >= settings.notification_max_retries

        notification = self._finish(notification_id, {
            "status": (NotificationStatus.FAILED if exhausted else NotificationStatus.PENDING).value,
            "retry_count": attempts,
            "last_error": error,
            "next_retry_at": None if exhausted else utc_now() + retry_delay(current.retry_count),
        })
        logger.warning(
            f"Notification attempt {attempts} failed{' permanently' if exhausted else ''}: {error}",
            extra={"notification_id": notification_id, "status": notification.status}
        )
        return notification

    def count_by_status(self) -> Dict[str, int]:
        """Outbox size per status"""
        pipeline = [{"$group": {"_id": "$status", "count": {"$sum": 1}}}]
        return {doc["_id"]: doc["count"] for doc in self._outbox.aggregate(pipeline)}
