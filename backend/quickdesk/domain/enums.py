"""Domain Enumerations - All status and type definitions"""
from enum import Enum


class Role(str, Enum):
    """Authorization tier of an account"""
    ENDUSER = "enduser"
    AGENT = "agent"
    ADMIN = "admin"


STAFF_ROLES = (Role.AGENT, Role.ADMIN)


class TicketStatus(str, Enum):
    """Ticket lifecycle status"""
    OPEN = "Open"
    IN_PROGRESS = "In Progress"
    RESOLVED = "Resolved"
    CLOSED = "Closed"


# Tickets in these states block category deactivation and lose their assignee
# when the assignee is deactivated
UNRESOLVED_STATUSES = (TicketStatus.OPEN, TicketStatus.IN_PROGRESS)

# Entering one of these stamps resolved_at
RESOLVING_STATUSES = (TicketStatus.RESOLVED, TicketStatus.CLOSED)


class TicketPriority(str, Enum):
    """Ticket priority"""
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class VoteDirection(str, Enum):
    """Vote on a ticket"""
    UP = "up"
    DOWN = "down"


class NotificationStatus(str, Enum):
    """Outbox delivery status"""
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"  # No transport configured


class NotificationTemplateKey(str, Enum):
    """Email templates"""
    TICKET_CREATED = "TICKET_CREATED"
    TICKET_UPDATED = "TICKET_UPDATED"
    COMMENT_ADDED = "COMMENT_ADDED"
    TICKET_ASSIGNED = "TICKET_ASSIGNED"
