"""Permission Guard - Authorization enforcement for ticket actions"""
from typing import Any, Dict, List, Optional

from ..domain.models import Ticket, Comment, ActorContext
from ..domain.enums import Role, STAFF_ROLES
from ..domain.errors import ForbiddenError
from ..utils.logger import get_logger

logger = get_logger(__name__)


class PermissionGuard:
    """
    Permission enforcement for ticket operations

    Rules:
    - Endusers see and act only on tickets they created
    - Agents and admins see and act on every ticket
    - Only agents and admins change status, assignee or priority
    - Internal comments are authored and read by agents and admins only
    - Any authenticated caller may vote on any ticket
    """

    def is_staff(self, actor: ActorContext) -> bool:
        """Check if actor is an agent or admin"""
        return actor.role in STAFF_ROLES

    def is_creator(self, actor: ActorContext, ticket: Ticket) -> bool:
        """Check if actor created the ticket"""
        return ticket.created_by == actor.account_id

    def can_view_ticket(self, actor: ActorContext, ticket: Ticket) -> bool:
        """Staff see everything; endusers see their own tickets"""
        return self.is_staff(actor) or self.is_creator(actor, ticket)

    def assert_can_view_ticket(self, actor: ActorContext, ticket: Ticket) -> None:
        """Raise ForbiddenError unless actor may see the ticket"""
        if not self.can_view_ticket(actor, ticket):
            logger.warning(
                f"Actor {actor.account_id} denied access to ticket {ticket.ticket_id}",
                extra={"ticket_id": ticket.ticket_id, "actor_id": actor.account_id}
            )
            raise ForbiddenError("Access denied")

    def can_manage_ticket_fields(self, actor: ActorContext) -> bool:
        """Status, assignee and priority are staff-only"""
        return self.is_staff(actor)

    def normalize_internal_flag(self, actor: ActorContext, requested: bool) -> bool:
        """Endusers can never author internal comments"""
        return bool(requested) and self.is_staff(actor)

    def visible_comments(self, actor: ActorContext, comments: List[Comment]) -> List[Comment]:
        """Drop internal comments for non-staff callers"""
        if self.is_staff(actor):
            return list(comments)
        return [c for c in comments if not c.is_internal]

    def redact_ticket(self, actor: ActorContext, ticket: Ticket) -> Ticket:
        """Copy of the ticket with comments filtered for the caller"""
        return ticket.model_copy(update={"comments": self.visible_comments(actor, ticket.comments)})

    def list_scope(
        self,
        actor: ActorContext,
        assigned_to_me: bool = False,
        created_by: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Role-scoped restriction applied before any caller filter

        - enduser: own tickets only, any requested creator filter is ignored
        - agent: all tickets, or only their assignments when assigned_to_me
        - admin: all tickets, assigned_to_me is ignored
        """
        if actor.role == Role.ENDUSER:
            return {"created_by": actor.account_id}

        scope: Dict[str, Any] = {}
        if created_by:
            scope["created_by"] = created_by
        if actor.role == Role.AGENT and assigned_to_me:
            scope["assigned_to"] = actor.account_id
        return scope
