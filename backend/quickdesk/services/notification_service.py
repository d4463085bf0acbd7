"""Notification Service - Outbox enqueueing and email delivery via SMTP"""
import asyncio
import smtplib
from email.message import EmailMessage
from typing import Any, Dict, List, Optional

from ..domain.models import NotificationOutbox, Account, Ticket, Comment, ActorContext
from ..domain.enums import NotificationStatus, NotificationTemplateKey
from ..domain.errors import EmailSendError
from ..repositories.notification_repo import NotificationRepository
from ..templates import get_email_template
from ..config.settings import settings
from ..utils.idgen import generate_notification_id
from ..utils.time import utc_now, format_iso
from ..utils.logger import get_logger

logger = get_logger(__name__)


class NotificationService:
    """Service for queueing and sending notifications"""

    def __init__(self):
        self.repo = NotificationRepository()

    # =========================================================================
    # Preference Gating
    # =========================================================================

    def should_notify(self, recipient: Account, template_key: NotificationTemplateKey) -> bool:
        """
        Decide whether a recipient gets this email

        Deactivated accounts get nothing. email_enabled=false suppresses
        everything; ticket_updates_enabled=false also suppresses updates.
        """
        if not recipient.is_active:
            return False
        prefs = recipient.notification_preferences
        if not prefs.email_enabled:
            return False
        if template_key == NotificationTemplateKey.TICKET_UPDATED and not prefs.ticket_updates_enabled:
            return False
        return True

    # =========================================================================
    # Outbox Creation
    # =========================================================================

    def enqueue_notification(
        self,
        template_key: NotificationTemplateKey,
        recipients: List[str],
        payload: Dict[str, Any],
        ticket_id: Optional[str] = None
    ) -> NotificationOutbox:
        """
        Enqueue a notification for sending

        Notifications are stored in outbox and sent asynchronously.
        """
        notification = NotificationOutbox(
            notification_id=generate_notification_id(),
            ticket_id=ticket_id,
            template_key=template_key,
            recipients=recipients,
            payload=payload,
            status=NotificationStatus.PENDING,
            created_at=utc_now()
        )

        return self.repo.create_notification(notification)

    def _enqueue_for(
        self,
        template_key: NotificationTemplateKey,
        recipient: Account,
        ticket: Ticket,
        payload: Dict[str, Any]
    ) -> Optional[NotificationOutbox]:
        if not self.should_notify(recipient, template_key):
            logger.info(
                f"Notification {template_key.value} suppressed for recipient",
                extra={"ticket_id": ticket.ticket_id, "account_id": recipient.account_id}
            )
            return None

        base = {
            "ticket_id": ticket.ticket_id,
            "ticket_subject": ticket.subject,
            "status": ticket.status,
            "priority": ticket.priority,
            "recipient_name": recipient.display_name,
        }
        base.update(payload)
        return self.enqueue_notification(
            template_key=template_key,
            recipients=[recipient.email],
            payload=base,
            ticket_id=ticket.ticket_id
        )

    def enqueue_ticket_created(
        self,
        ticket: Ticket,
        creator: Account,
        category_name: Optional[str] = None
    ) -> Optional[NotificationOutbox]:
        """Confirmation to the creator"""
        return self._enqueue_for(
            NotificationTemplateKey.TICKET_CREATED,
            creator,
            ticket,
            {
                "category_name": category_name,
                "created_at": format_iso(ticket.created_at),
            }
        )

    def enqueue_ticket_updated(
        self,
        ticket: Ticket,
        creator: Account,
        actor: ActorContext,
        assignee_name: Optional[str] = None
    ) -> Optional[NotificationOutbox]:
        """Tell the creator who changed their ticket"""
        return self._enqueue_for(
            NotificationTemplateKey.TICKET_UPDATED,
            creator,
            ticket,
            {
                "actor_name": actor.display_name,
                "assignee_name": assignee_name,
                "updated_at": format_iso(ticket.updated_at),
            }
        )

    def enqueue_comment_added(
        self,
        ticket: Ticket,
        comment: Comment,
        author: ActorContext,
        recipient: Account
    ) -> Optional[NotificationOutbox]:
        """Tell the other party about a new comment"""
        if recipient.account_id == author.account_id:
            return None
        if comment.is_internal and not recipient.is_staff:
            return None
        return self._enqueue_for(
            NotificationTemplateKey.COMMENT_ADDED,
            recipient,
            ticket,
            {
                "actor_name": author.display_name,
                "comment_text": comment.text,
            }
        )

    def enqueue_ticket_assigned(
        self,
        ticket: Ticket,
        assignee: Account,
        created_by_name: Optional[str] = None,
        category_name: Optional[str] = None
    ) -> Optional[NotificationOutbox]:
        """Tell the new assignee"""
        return self._enqueue_for(
            NotificationTemplateKey.TICKET_ASSIGNED,
            assignee,
            ticket,
            {
                "created_by_name": created_by_name,
                "category_name": category_name,
                "description": ticket.description,
            }
        )

    # =========================================================================
    # Email Sending
    # =========================================================================

    async def send_notification(self, notification: NotificationOutbox) -> bool:
        """
        Send a single notification via email

        Locking is handled by the worker before calling this method.
        Returns True if sent successfully, False otherwise.
        """
        if not settings.smtp_host:
            self.repo.mark_skipped(notification.notification_id, "SMTP not configured")
            return False

        try:
            email_content = self._build_email_content(notification)

            await asyncio.to_thread(
                self._send_email_via_smtp,
                notification.recipients,
                email_content["subject"],
                email_content["body"]
            )

            self.repo.mark_sent(notification.notification_id)
            return True

        except (EmailSendError, ValueError) as e:
            self.repo.mark_failed(notification.notification_id, str(e))
            logger.error(
                f"Failed to send notification: {e}",
                extra={
                    "notification_id": notification.notification_id,
                    "ticket_id": notification.ticket_id
                }
            )
            return False

    def _build_email_content(self, notification: NotificationOutbox) -> Dict[str, str]:
        """Render subject and HTML body for an outbox entry"""
        return get_email_template(
            template_key=notification.template_key,
            payload=notification.payload,
            app_url=settings.frontend_url
        )

    def _send_email_via_smtp(
        self,
        recipients: List[str],
        subject: str,
        body: str
    ) -> None:
        """Deliver one HTML email through the configured SMTP relay"""
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = settings.email_sender
        message["To"] = ", ".join(recipients)
        message.set_content("This message requires an HTML capable email client.")
        message.add_alternative(body, subtype="html")

        smtp_class = smtplib.SMTP_SSL if settings.smtp_port == 465 else smtplib.SMTP

        try:
            with smtp_class(settings.smtp_host, settings.smtp_port, timeout=settings.smtp_timeout_seconds) as smtp:
                if settings.smtp_use_tls and smtp_class is smtplib.SMTP:
                    smtp.starttls()
                if settings.smtp_username:
                    smtp.login(settings.smtp_username, settings.smtp_password)
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            raise EmailSendError(
                f"SMTP delivery failed: {e}",
                details={"recipients": recipients}
            )
