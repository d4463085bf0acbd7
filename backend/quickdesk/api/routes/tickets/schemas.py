"""
Ticket Schemas

Request models and response serializers for ticket API endpoints.
"""

from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, Field, field_validator

from ....domain.models import Ticket, Comment, Page


# =============================================================================
# Request Schemas
# =============================================================================

class UpdateTicketRequest(BaseModel):
    """
    Request to change status, assignee or priority

    Omitted fields are left alone; assigned_to=null unassigns.
    """
    status: Optional[str] = None
    assigned_to: Optional[str] = None
    priority: Optional[str] = None
    expected_version: Optional[int] = Field(None, ge=1, description="Reject the update if the ticket changed")


class AddCommentRequest(BaseModel):
    """Request to add a comment"""
    text: str = Field(..., min_length=1, max_length=1000)
    is_internal: bool = False

    @field_validator("text")
    @classmethod
    def strip_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Comment text is required")
        return v


class VoteRequest(BaseModel):
    """Request to vote on a ticket"""
    type: Literal["up", "down"]


# =============================================================================
# Response Serializers
# =============================================================================

def serialize_ticket(ticket: Ticket) -> Dict[str, Any]:
    """Ticket as JSON with vote counts alongside the voter lists"""
    data = ticket.model_dump(mode="json")
    data["vote_counts"] = {
        "upvotes": len(ticket.votes.upvotes),
        "downvotes": len(ticket.votes.downvotes),
    }
    return data


def serialize_comment(comment: Comment) -> Dict[str, Any]:
    return comment.model_dump(mode="json")


def serialize_pagination(page: Page) -> Dict[str, int]:
    return {
        "page": page.page,
        "page_size": page.page_size,
        "total": page.total,
        "pages": page.pages,
    }


def serialize_ticket_page(page: Page[Ticket]) -> Dict[str, Any]:
    return {
        "success": True,
        "tickets": [serialize_ticket(t) for t in page.items],
        "pagination": serialize_pagination(page),
    }


class TicketResponse(BaseModel):
    """Envelope for a single ticket"""
    success: bool = True
    message: Optional[str] = None
    ticket: Dict[str, Any]


class TicketListResponse(BaseModel):
    """Envelope for a ticket page"""
    success: bool = True
    tickets: List[Dict[str, Any]]
    pagination: Dict[str, int]
