"""
Ticket CRUD Routes

Create, list, read and update ticket endpoints.
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status

from ...deps import get_current_user_dep, get_correlation_id_dep, require_staff
from ....domain.models import ActorContext
from ....domain.errors import DomainError
from ....services.ticket_service import TicketService
from ....utils.logger import get_logger
from .schemas import (
    UpdateTicketRequest, TicketResponse, TicketListResponse,
    serialize_ticket, serialize_ticket_page
)

logger = get_logger(__name__)
router = APIRouter()


@router.post("", response_model=TicketResponse, status_code=status.HTTP_201_CREATED)
async def create_ticket(
    subject: str = Form(..., description="5-200 characters"),
    description: str = Form(..., description="At least 10 characters"),
    category: str = Form(..., description="Active category ID"),
    priority: Optional[str] = Form(None),
    attachments: Optional[List[UploadFile]] = File(None, description="Up to 5 files, 10MB each"),
    actor: ActorContext = Depends(get_current_user_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """
    Create a new ticket

    Multipart form. Files are validated before anything is stored and the
    caller becomes the creator.
    """
    try:
        service = TicketService()
        uploads = await service.attachment_service.read_uploads(attachments or [])
        ticket = service.create_ticket(
            actor=actor,
            subject=subject,
            description=description,
            category_id=category,
            priority=priority,
            uploads=uploads
        )

        return TicketResponse(
            message="Ticket created successfully",
            ticket=serialize_ticket(ticket)
        )

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.get("", response_model=TicketListResponse)
async def list_tickets(
    status_filter: Optional[str] = Query(None, alias="status", description="Filter by status"),
    category: Optional[str] = Query(None, description="Filter by category ID"),
    search: Optional[str] = Query(None, description="Search in subject and description"),
    assigned_to_me: bool = Query(False, description="Agents: only tickets assigned to me"),
    created_by: Optional[str] = Query(None, description="Staff: filter by creator account ID"),
    sort_by: str = Query("last_activity_at", description="Sort field"),
    sort_order: str = Query("desc", description="Sort order: asc or desc"),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    actor: ActorContext = Depends(get_current_user_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """
    List tickets

    Endusers only ever see their own tickets; agents and admins see all.
    """
    try:
        service = TicketService()
        result = service.list_tickets(
            actor=actor,
            status=status_filter,
            category_id=category,
            search=search,
            assigned_to_me=assigned_to_me,
            created_by=created_by,
            page=page,
            page_size=page_size,
            sort_by=sort_by,
            sort_order=sort_order
        )
        return serialize_ticket_page(result)

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.get("/{ticket_id}", response_model=TicketResponse)
async def get_ticket(
    ticket_id: str,
    actor: ActorContext = Depends(get_current_user_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Get ticket details"""
    try:
        ticket = TicketService().get_ticket(actor, ticket_id)
        return TicketResponse(ticket=serialize_ticket(ticket))

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.put("/{ticket_id}", response_model=TicketResponse)
async def update_ticket(
    ticket_id: str,
    request: UpdateTicketRequest,
    actor: ActorContext = Depends(require_staff),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """
    Update status, assignee or priority

    Agents and admins only.
    """
    try:
        changes = request.model_dump(exclude_unset=True, exclude={"expected_version"})
        ticket = TicketService().update_ticket(
            actor=actor,
            ticket_id=ticket_id,
            changes=changes,
            expected_version=request.expected_version
        )
        return TicketResponse(
            message="Ticket updated successfully",
            ticket=serialize_ticket(ticket)
        )

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())
