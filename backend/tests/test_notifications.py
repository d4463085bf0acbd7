"""Tests for the outbox, email delivery, the worker and the email templates."""

import asyncio
from datetime import timedelta

import pytest

from quickdesk.config.settings import settings
from quickdesk.domain.enums import NotificationTemplateKey
from quickdesk.domain.errors import EmailSendError
from quickdesk.scheduler.notification_worker import NotificationWorker
from quickdesk.repositories.notification_repo import retry_delay
from quickdesk.services.notification_service import NotificationService
from quickdesk.templates import TEMPLATE_REGISTRY, get_email_template
from quickdesk.utils.time import utc_now


@pytest.fixture
def service() -> NotificationService:
    return NotificationService()


@pytest.fixture
def queued(service):
    """One pending TICKET_CREATED entry"""
    return service.enqueue_notification(
        template_key=NotificationTemplateKey.TICKET_CREATED,
        recipients=["eve@quickdesk.io"],
        payload={"ticket_id": "TKT-abc123", "ticket_subject": "VPN down", "recipient_name": "Eve"},
        ticket_id="TKT-abc123",
    )


@pytest.fixture
def smtp_calls(service, monkeypatch):
    """Configure an SMTP host and capture deliveries instead of connecting"""
    calls = []
    monkeypatch.setattr(settings, "smtp_host", "smtp.quickdesk.io")
    monkeypatch.setattr(service, "_send_email_via_smtp", lambda *args: calls.append(args))
    return calls


# =============================================================================
# Preference Gating
# =============================================================================

def test_should_notify_respects_preferences(service, make_account):
    everything = make_account()
    silent = make_account(email_enabled=False)
    no_updates = make_account(ticket_updates_enabled=False)
    inactive = make_account(is_active=False)

    assert service.should_notify(everything, NotificationTemplateKey.TICKET_UPDATED)
    assert not service.should_notify(silent, NotificationTemplateKey.TICKET_CREATED)
    assert not service.should_notify(no_updates, NotificationTemplateKey.TICKET_UPDATED)
    assert service.should_notify(no_updates, NotificationTemplateKey.COMMENT_ADDED)
    assert not service.should_notify(inactive, NotificationTemplateKey.TICKET_ASSIGNED)


def test_suppressed_recipient_gets_no_outbox_entry(make_account, make_ticket, outbox):
    silent = make_account(email_enabled=False)
    make_ticket(silent.to_actor())

    assert outbox.count_documents({}) == 0


# =============================================================================
# Delivery
# =============================================================================

def test_without_smtp_host_entries_are_skipped(service, queued):
    sent = asyncio.run(service.send_notification(queued))

    stored = service.repo.get_notification(queued.notification_id)
    assert sent is False
    assert stored.status == "SKIPPED"
    assert stored.last_error == "SMTP not configured"


def test_successful_send_marks_sent(service, queued, smtp_calls):
    sent = asyncio.run(service.send_notification(queued))

    stored = service.repo.get_notification(queued.notification_id)
    assert sent is True
    assert stored.status == "SENT"
    assert stored.sent_at is not None
    recipients, subject, body = smtp_calls[0]
    assert recipients == ["eve@quickdesk.io"]
    assert subject == "New Ticket Created: VPN down"
    assert "#abc123" in body


def test_failed_send_is_rescheduled_then_failed(service, queued, monkeypatch):
    monkeypatch.setattr(settings, "smtp_host", "smtp.quickdesk.io")
    monkeypatch.setattr(settings, "notification_max_retries", 2)

    def refuse(*args):
        raise EmailSendError("SMTP delivery failed: connection refused")

    monkeypatch.setattr(service, "_send_email_via_smtp", refuse)

    assert asyncio.run(service.send_notification(queued)) is False
    first = service.repo.get_notification(queued.notification_id)
    assert first.status == "PENDING"
    assert first.retry_count == 1
    assert first.next_retry_at > utc_now()
    assert "connection refused" in first.last_error

    assert asyncio.run(service.send_notification(first)) is False
    second = service.repo.get_notification(queued.notification_id)
    assert second.status == "FAILED"
    assert second.retry_count == 2
    assert second.next_retry_at is None


def test_retry_delay_doubles():
    assert [retry_delay(n) for n in range(4)] == [timedelta(minutes=m) for m in (1, 2, 4, 8)]


# =============================================================================
# Worker
# =============================================================================

def test_worker_sends_due_entries_and_releases_locks(service, queued, smtp_calls):
    worker = NotificationWorker()
    worker.notification_service = service

    assert asyncio.run(worker.process_notifications()) == 1

    stored = service.repo.get_notification(queued.notification_id)
    assert stored.status == "SENT"
    assert stored.locked_by is None
    assert len(smtp_calls) == 1
    # nothing left to do on the next cycle
    assert asyncio.run(worker.process_notifications()) == 0


def test_worker_skips_entries_not_yet_due(service, queued, smtp_calls, outbox):
    outbox.update_one(
        {"notification_id": queued.notification_id},
        {"$set": {"next_retry_at": utc_now() + timedelta(minutes=5)}}
    )
    worker = NotificationWorker()
    worker.notification_service = service

    assert asyncio.run(worker.process_notifications()) == 0
    assert smtp_calls == []


def test_locked_entry_is_not_claimed_twice(service, queued):
    assert service.repo.acquire_lock(queued.notification_id, "server-a")
    assert not service.repo.acquire_lock(queued.notification_id, "server-b")

    service.repo.release_lock(queued.notification_id, "server-a")
    assert service.repo.acquire_lock(queued.notification_id, "server-b")


def test_stale_locks_are_cleaned(service, queued, outbox):
    outbox.update_one(
        {"notification_id": queued.notification_id},
        {"$set": {"locked_by": "crashed-server", "locked_until": utc_now() - timedelta(hours=1)}}
    )

    cleaned = asyncio.run(NotificationWorker().cleanup_stale_locks())

    assert cleaned == 1
    assert service.repo.get_notification(queued.notification_id).locked_by is None


# =============================================================================
# Templates
# =============================================================================

def test_templates_escape_user_content():
    rendered = get_email_template("COMMENT_ADDED", {
        "ticket_id": "TKT-000001",
        "ticket_subject": "Broken <b>form</b>",
        "actor_name": "Sam",
        "recipient_name": "Eve",
        "comment_text": "<script>alert('x')</script>",
    }, app_url="https://desk.quickdesk.io")

    assert rendered["subject"] == "New Comment on Ticket: Broken <b>form</b>"
    assert "<script>" not in rendered["body"]
    assert "&lt;script&gt;" in rendered["body"]
    assert "https://desk.quickdesk.io/tickets/TKT-000001" in rendered["body"]


@pytest.mark.parametrize("key,subject", [
    ("TICKET_CREATED", "New Ticket Created: Printer"),
    ("TICKET_UPDATED", "Ticket Updated: Printer"),
    ("COMMENT_ADDED", "New Comment on Ticket: Printer"),
    ("TICKET_ASSIGNED", "Ticket Assigned: Printer"),
])
def test_template_subjects(key, subject):
    rendered = get_email_template(key, {"ticket_id": "TKT-1", "ticket_subject": "Printer", "status": "Open"})
    assert rendered["subject"] == subject


def test_assigned_template_truncates_description():
    rendered = get_email_template("TICKET_ASSIGNED", {
        "ticket_id": "TKT-1",
        "ticket_subject": "Printer",
        "description": "a" * 250,
    })

    assert "a" * 200 + "..." in rendered["body"]
    assert "a" * 201 not in rendered["body"]


def test_every_notification_key_has_a_template():
    assert set(TEMPLATE_REGISTRY) == set(NotificationTemplateKey)


def test_unknown_template_key():
    with pytest.raises(ValueError):
        get_email_template("PASSWORD_RESET", {})
