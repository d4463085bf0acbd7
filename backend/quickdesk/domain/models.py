"""Domain Models - Pydantic schemas for all entities"""
from datetime import datetime
from typing import Any, Dict, Generic, List, Optional, TypeVar
from pydantic import BaseModel, Field, EmailStr, ConfigDict, computed_field

from .enums import (
    Role, TicketStatus, TicketPriority, NotificationStatus, NotificationTemplateKey,
    STAFF_ROLES
)


DEFAULT_CATEGORY_COLOR = "#6B7280"
HEX_COLOR_PATTERN = r"^#[0-9A-Fa-f]{6}$"

T = TypeVar("T")


# ============================================================================
# Actor
# ============================================================================

class ActorContext(BaseModel):
    """Authenticated caller, passed explicitly to every service call"""
    model_config = ConfigDict(extra="forbid", use_enum_values=True)

    account_id: str = Field(..., description="Local account ID")
    subject_id: str = Field(..., description="Identity provider subject ID")
    email: EmailStr = Field(..., description="User email")
    display_name: str = Field(..., description="User display name")
    role: Role = Field(default=Role.ENDUSER)

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


# ============================================================================
# Account
# ============================================================================

class NotificationPreferences(BaseModel):
    """Per-account email preferences"""
    email_enabled: bool = Field(default=True, description="Master switch for email")
    ticket_updates_enabled: bool = Field(default=True, description="Email on ticket updates")


class Account(BaseModel):
    """Local account mapped to an external identity"""
    model_config = ConfigDict(extra="ignore", use_enum_values=True)

    account_id: str = Field(..., description="Unique account ID")
    subject_id: str = Field(..., description="Identity provider subject ID (immutable)")
    email: EmailStr
    display_name: str
    avatar_url: Optional[str] = None
    role: Role = Field(default=Role.ENDUSER)
    is_active: bool = Field(default=True)
    notification_preferences: NotificationPreferences = Field(default_factory=NotificationPreferences)
    created_at: datetime
    updated_at: datetime
    version: int = Field(default=1, description="Optimistic concurrency version")

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    def to_actor(self) -> ActorContext:
        """Build the request actor for this account"""
        return ActorContext(
            account_id=self.account_id,
            subject_id=self.subject_id,
            email=self.email,
            display_name=self.display_name,
            role=self.role,
        )


# ============================================================================
# Category
# ============================================================================

class Category(BaseModel):
    """Ticket category (soft-deletable)"""
    model_config = ConfigDict(extra="ignore")

    category_id: str = Field(..., description="Unique category ID")
    name: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = Field(None, max_length=200)
    color: str = Field(default=DEFAULT_CATEGORY_COLOR, pattern=HEX_COLOR_PATTERN)
    is_active: bool = Field(default=True)
    created_by: Optional[str] = Field(None, description="Account ID of the creating admin")
    created_at: datetime
    updated_at: datetime
    version: int = Field(default=1, description="Optimistic concurrency version")

    @computed_field
    @property
    def name_key(self) -> str:
        """Case-folded name backing the unique index"""
        return self.name.strip().lower()


# ============================================================================
# Ticket
# ============================================================================

class TicketAttachment(BaseModel):
    """File attached at ticket creation"""
    model_config = ConfigDict(extra="ignore")

    attachment_id: str
    original_filename: str
    stored_filename: str
    storage_path: str = Field(..., description="Blob reference relative to the attachments base path")
    size_bytes: int
    mime_type: str
    uploaded_at: datetime


class Comment(BaseModel):
    """Ticket comment (append-only)"""
    model_config = ConfigDict(extra="ignore")

    comment_id: str
    text: str = Field(..., min_length=1, max_length=1000)
    author_id: str = Field(..., description="Account ID of the author")
    is_internal: bool = Field(default=False, description="Visible to agents/admins only")
    created_at: datetime


class Votes(BaseModel):
    """Disjoint up/down voter lists"""
    upvotes: List[str] = Field(default_factory=list)
    downvotes: List[str] = Field(default_factory=list)


class Ticket(BaseModel):
    """Support ticket"""
    model_config = ConfigDict(extra="ignore", use_enum_values=True)

    ticket_id: str = Field(..., description="Unique ticket ID")
    subject: str = Field(..., min_length=5, max_length=200)
    description: str = Field(..., min_length=10)
    category_id: str
    priority: TicketPriority = Field(default=TicketPriority.MEDIUM)
    status: TicketStatus = Field(default=TicketStatus.OPEN)
    created_by: str = Field(..., description="Account ID of the creator (immutable)")
    assigned_to: Optional[str] = Field(None, description="Account ID of the assignee")
    attachments: List[TicketAttachment] = Field(default_factory=list)
    comments: List[Comment] = Field(default_factory=list)
    votes: Votes = Field(default_factory=Votes)
    created_at: datetime
    updated_at: datetime
    last_activity_at: datetime
    resolved_at: Optional[datetime] = None
    version: int = Field(default=1, description="Optimistic concurrency version")

    def find_attachment(self, attachment_id: str) -> Optional[TicketAttachment]:
        for attachment in self.attachments:
            if attachment.attachment_id == attachment_id:
                return attachment
        return None


# ============================================================================
# Notification Outbox
# ============================================================================

class NotificationOutbox(BaseModel):
    """Notification in outbox"""
    model_config = ConfigDict(extra="ignore", use_enum_values=True)

    notification_id: str
    ticket_id: Optional[str] = None
    template_key: NotificationTemplateKey
    recipients: List[EmailStr]
    payload: Dict[str, Any] = Field(default_factory=dict)
    status: NotificationStatus = Field(default=NotificationStatus.PENDING)
    retry_count: int = Field(default=0)
    last_error: Optional[str] = None
    next_retry_at: Optional[datetime] = None
    locked_until: Optional[datetime] = None
    locked_by: Optional[str] = None
    lock_acquired_at: Optional[datetime] = None  # When the lock was acquired
    created_at: datetime
    sent_at: Optional[datetime] = None


# ============================================================================
# Query Results
# ============================================================================

class AccountStats(BaseModel):
    """Live ticket counts for an account"""
    tickets_created: int = 0
    tickets_assigned: int = 0
    open_tickets: Optional[int] = None
    resolved_tickets: Optional[int] = None


class AccountSummary(BaseModel):
    """Account with derived stats"""
    account: Account
    stats: AccountStats


class CategoryStats(BaseModel):
    """Live ticket counts for a category"""
    active_tickets: int = 0
    total_tickets: int = 0
    by_status: Optional[Dict[str, int]] = None


class CategorySummary(BaseModel):
    """Category with derived stats"""
    category: Category
    stats: CategoryStats


class Page(BaseModel, Generic[T]):
    """One page of an offset-paginated listing"""

    items: List[T] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = 20

    @property
    def pages(self) -> int:
        if self.page_size <= 0:
            return 0
        return -(-self.total // self.page_size)
