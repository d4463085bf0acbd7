"""Ticket Service - Ticket lifecycle, comments, votes and attachments"""
import re
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from ..domain.models import (
    Ticket, TicketAttachment, Comment, ActorContext, Account, Page
)
from ..domain.enums import TicketStatus, TicketPriority, VoteDirection
from ..domain.errors import (
    DomainError, ValidationError, ConcurrencyError
)
from ..engine.permission_guard import PermissionGuard
from ..engine.transition_resolver import TransitionResolver
from ..repositories.ticket_repo import TicketRepository
from ..repositories.category_repo import CategoryRepository
from ..repositories.account_repo import AccountRepository
from .attachment_service import AttachmentService, UploadInput
from .notification_service import NotificationService
from ..utils.idgen import generate_ticket_id, generate_comment_id
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)


SUBJECT_MIN_LENGTH = 5
SUBJECT_MAX_LENGTH = 200
DESCRIPTION_MIN_LENGTH = 10
COMMENT_MAX_LENGTH = 1000


class TicketService:
    """
    Service for ticket operations

    Every mutation reads the ticket, applies the change in memory and saves
    the whole record guarded by its version.
    """

    def __init__(self):
        self.ticket_repo = TicketRepository()
        self.category_repo = CategoryRepository()
        self.account_repo = AccountRepository()
        self.permission_guard = PermissionGuard()
        self.transition_resolver = TransitionResolver()
        self.attachment_service = AttachmentService()
        self.notification_service = NotificationService()

    # =========================================================================
    # Helpers
    # =========================================================================

    def _notify(self, action: str, ticket_id: str, send: Callable[[], Any]) -> None:
        """Run an enqueue call; failures are logged and never propagate"""
        try:
            send()
        except Exception as e:
            logger.error(
                f"Failed to enqueue {action} notification: {e}",
                extra={"ticket_id": ticket_id, "action": action}
            )

    def _get_visible_ticket(self, actor: ActorContext, ticket_id: str) -> Ticket:
        ticket = self.ticket_repo.get_ticket_or_raise(ticket_id)
        self.permission_guard.assert_can_view_ticket(actor, ticket)
        return ticket

    def _category_name(self, category_id: str) -> Optional[str]:
        category = self.category_repo.get_category(category_id)
        return category.name if category else None

    def _validate_new_ticket(self, subject: str, description: str, category_id: str) -> Tuple[str, str]:
        subject = (subject or "").strip()
        description = (description or "").strip()

        if not SUBJECT_MIN_LENGTH <= len(subject) <= SUBJECT_MAX_LENGTH:
            raise ValidationError(
                f"Subject must be between {SUBJECT_MIN_LENGTH} and {SUBJECT_MAX_LENGTH} characters",
                details={"field": "subject"}
            )
        if len(description) < DESCRIPTION_MIN_LENGTH:
            raise ValidationError(
                f"Description must be at least {DESCRIPTION_MIN_LENGTH} characters",
                details={"field": "description"}
            )

        category = self.category_repo.get_category(category_id) if category_id else None
        if category is None or not category.is_active:
            raise ValidationError(
                "Category must reference an existing, active category",
                details={"field": "category_id", "category_id": category_id}
            )
        return subject, description

    def _parse_priority(self, priority: Optional[str]) -> str:
        if priority is None:
            return TicketPriority.MEDIUM.value
        try:
            return TicketPriority(priority).value
        except ValueError:
            raise ValidationError(
                f"Invalid priority: {priority}",
                details={"allowed": [p.value for p in TicketPriority]}
            )

    # =========================================================================
    # Create
    # =========================================================================

    def create_ticket(
        self,
        actor: ActorContext,
        subject: str,
        description: str,
        category_id: str,
        priority: Optional[str] = None,
        uploads: Optional[List[UploadInput]] = None
    ) -> Ticket:
        """
        Create a ticket owned by the caller

        Fields and files are validated before any blob is written. Blobs
        written for a ticket whose insert fails are removed.
        """
        subject, description = self._validate_new_ticket(subject, description, category_id)
        priority_value = self._parse_priority(priority)
        uploads = uploads or []
        self.attachment_service.validate_uploads(uploads)

        ticket_id = generate_ticket_id()
        attachments = self.attachment_service.store_uploads(ticket_id, uploads)

        now = utc_now()
        ticket = Ticket(
            ticket_id=ticket_id,
            subject=subject,
            description=description,
            category_id=category_id,
            priority=priority_value,
            status=TicketStatus.OPEN,
            created_by=actor.account_id,
            attachments=attachments,
            created_at=now,
            updated_at=now,
            last_activity_at=now,
        )

        try:
            ticket = self.ticket_repo.create_ticket(ticket)
        except Exception:
            if attachments:
                self.attachment_service.discard(ticket_id)
            raise

        logger.info(
            f"Ticket created: {ticket.subject}",
            extra={"ticket_id": ticket_id, "actor_id": actor.account_id}
        )

        creator = self.account_repo.get_account(actor.account_id)
        if creator:
            self._notify(
                "ticket_created", ticket_id,
                lambda: self.notification_service.enqueue_ticket_created(
                    ticket, creator, self._category_name(category_id)
                )
            )

        return ticket

    # =========================================================================
    # Read
    # =========================================================================

    def get_ticket(self, actor: ActorContext, ticket_id: str) -> Ticket:
        """Get a ticket, internal comments removed for non-staff"""
        ticket = self._get_visible_ticket(actor, ticket_id)
        return self.permission_guard.redact_ticket(actor, ticket)

    def list_tickets(
        self,
        actor: ActorContext,
        status: Optional[str] = None,
        category_id: Optional[str] = None,
        search: Optional[str] = None,
        assigned_to_me: bool = False,
        created_by: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
        sort_by: str = "last_activity_at",
        sort_order: str = "desc"
    ) -> Page[Ticket]:
        """List tickets visible to the caller"""
        query: Dict[str, Any] = self.permission_guard.list_scope(
            actor, assigned_to_me=assigned_to_me, created_by=created_by
        )

        if status:
            try:
                query["status"] = TicketStatus(status).value
            except ValueError:
                raise ValidationError(
                    f"Invalid status: {status}",
                    details={"allowed": [s.value for s in TicketStatus]}
                )
        if category_id:
            query["category_id"] = category_id
        if search and search.strip():
            pattern = re.escape(search.strip())
            query["$or"] = [
                {"subject": {"$regex": pattern, "$options": "i"}},
                {"description": {"$regex": pattern, "$options": "i"}},
            ]

        tickets, total = self.ticket_repo.list_tickets(
            query,
            sort_by=sort_by,
            sort_order=sort_order,
            skip=(page - 1) * page_size,
            limit=page_size
        )

        items = [self.permission_guard.redact_ticket(actor, t) for t in tickets]
        return Page[Ticket](items=items, total=total, page=page, page_size=page_size)

    # =========================================================================
    # Update
    # =========================================================================

    def update_ticket(
        self,
        actor: ActorContext,
        ticket_id: str,
        changes: Dict[str, Any],
        expected_version: Optional[int] = None
    ) -> Ticket:
        """
        Change status, assignee or priority

        Only keys present in changes are applied; assigned_to=None
        unassigns. Endusers may call this on their own tickets but the
        staff-only fields are ignored for them.
        """
        ticket = self._get_visible_ticket(actor, ticket_id)

        if expected_version is not None and expected_version != ticket.version:
            raise ConcurrencyError(
                f"Ticket {ticket_id} was modified. Please refresh and try again.",
                details={"expected_version": expected_version, "current_version": ticket.version}
            )

        now = utc_now()
        new_assignee: Optional[Account] = None

        if self.permission_guard.can_manage_ticket_fields(actor):
            if changes.get("status") is not None:
                target = self.transition_resolver.resolve(ticket.status, changes["status"])
                ticket.status = target.value
                if self.transition_resolver.stamps_resolution(target):
                    ticket.resolved_at = now

            if "assigned_to" in changes:
                assignee_id = changes["assigned_to"]
                if assignee_id is None:
                    ticket.assigned_to = None
                elif assignee_id != ticket.assigned_to:
                    if not self.account_repo.is_assignable(assignee_id):
                        raise ValidationError(
                            "Assignee must be an active agent or admin",
                            details={"assigned_to": assignee_id}
                        )
                    ticket.assigned_to = assignee_id
                    new_assignee = self.account_repo.get_account(assignee_id)

            if changes.get("priority") is not None:
                ticket.priority = self._parse_priority(changes["priority"])

        ticket.last_activity_at = now
        ticket = self.ticket_repo.save_ticket(ticket)

        logger.info(
            "Ticket updated",
            extra={"ticket_id": ticket_id, "actor_id": actor.account_id, "status": ticket.status}
        )

        self._notify_update(actor, ticket, new_assignee)
        return self.permission_guard.redact_ticket(actor, ticket)

    def _notify_update(self, actor: ActorContext, ticket: Ticket, new_assignee: Optional[Account]) -> None:
        accounts = self.account_repo.get_accounts(
            [a for a in (ticket.created_by, ticket.assigned_to) if a]
        )
        creator = accounts.get(ticket.created_by)
        assignee = accounts.get(ticket.assigned_to) if ticket.assigned_to else None

        if creator:
            self._notify(
                "ticket_updated", ticket.ticket_id,
                lambda: self.notification_service.enqueue_ticket_updated(
                    ticket, creator, actor, assignee.display_name if assignee else None
                )
            )

        if new_assignee:
            self._notify(
                "ticket_assigned", ticket.ticket_id,
                lambda: self.notification_service.enqueue_ticket_assigned(
                    ticket,
                    new_assignee,
                    created_by_name=creator.display_name if creator else None,
                    category_name=self._category_name(ticket.category_id)
                )
            )

    # =========================================================================
    # Comments
    # =========================================================================

    def add_comment(
        self,
        actor: ActorContext,
        ticket_id: str,
        text: str,
        is_internal: bool = False
    ) -> Comment:
        """Append a comment; endusers can never post internal comments"""
        ticket = self._get_visible_ticket(actor, ticket_id)

        text = (text or "").strip()
        if not text or len(text) > COMMENT_MAX_LENGTH:
            raise ValidationError(
                f"Comment must be between 1 and {COMMENT_MAX_LENGTH} characters",
                details={"field": "text"}
            )

        now = utc_now()
        comment = Comment(
            comment_id=generate_comment_id(),
            text=text,
            author_id=actor.account_id,
            is_internal=self.permission_guard.normalize_internal_flag(actor, is_internal),
            created_at=now,
        )
        ticket.comments.append(comment)
        ticket.last_activity_at = now
        ticket = self.ticket_repo.save_ticket(ticket)

        logger.info(
            "Comment added",
            extra={"ticket_id": ticket_id, "actor_id": actor.account_id}
        )

        recipient_id = self._comment_recipient(actor, ticket)
        if recipient_id:
            recipient = self.account_repo.get_account(recipient_id)
            if recipient:
                self._notify(
                    "comment_added", ticket_id,
                    lambda: self.notification_service.enqueue_comment_added(ticket, comment, actor, recipient)
                )

        return comment

    def _comment_recipient(self, actor: ActorContext, ticket: Ticket) -> Optional[str]:
        """The other party: the assignee when the creator writes, else the creator"""
        if actor.account_id == ticket.created_by:
            return ticket.assigned_to
        if self.permission_guard.is_staff(actor):
            return ticket.created_by
        return None

    # =========================================================================
    # Votes
    # =========================================================================

    def vote(self, actor: ActorContext, ticket_id: str, direction: str) -> Dict[str, int]:
        """
        Record the caller's vote, replacing any earlier one

        Any authenticated caller may vote on any ticket.
        """
        try:
            vote = VoteDirection(direction)
        except ValueError:
            raise ValidationError(
                f"Invalid vote type: {direction}",
                details={"allowed": [v.value for v in VoteDirection]}
            )

        ticket = self.ticket_repo.get_ticket_or_raise(ticket_id)
        voter = actor.account_id

        ticket.votes.upvotes = [v for v in ticket.votes.upvotes if v != voter]
        ticket.votes.downvotes = [v for v in ticket.votes.downvotes if v != voter]
        if vote == VoteDirection.UP:
            ticket.votes.upvotes.append(voter)
        else:
            ticket.votes.downvotes.append(voter)

        ticket = self.ticket_repo.save_ticket(ticket)
        return {
            "upvotes": len(ticket.votes.upvotes),
            "downvotes": len(ticket.votes.downvotes),
        }

    # =========================================================================
    # Attachments
    # =========================================================================

    def get_attachment(
        self,
        actor: ActorContext,
        ticket_id: str,
        attachment_id: str
    ) -> Tuple[TicketAttachment, Iterator[bytes]]:
        """Attachment metadata and content, with the same visibility as the ticket"""
        ticket = self._get_visible_ticket(actor, ticket_id)
        return self.attachment_service.open_attachment(ticket, attachment_id)
