"""
Ticket Action Routes

Comments, votes and attachment downloads.
"""

import urllib.parse
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse

from ...deps import get_current_user_dep, get_correlation_id_dep
from ....domain.models import ActorContext
from ....domain.errors import DomainError
from ....services.ticket_service import TicketService
from ....utils.logger import get_logger
from .schemas import AddCommentRequest, VoteRequest, serialize_comment

logger = get_logger(__name__)
router = APIRouter()


@router.post("/{ticket_id}/comments", status_code=status.HTTP_201_CREATED)
async def add_comment(
    ticket_id: str,
    request: AddCommentRequest,
    actor: ActorContext = Depends(get_current_user_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """
    Add a comment

    is_internal is honoured for agents and admins only.
    """
    try:
        comment = TicketService().add_comment(
            actor=actor,
            ticket_id=ticket_id,
            text=request.text,
            is_internal=request.is_internal
        )
        return {
            "success": True,
            "message": "Comment added successfully",
            "comment": serialize_comment(comment)
        }

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.post("/{ticket_id}/vote")
async def vote(
    ticket_id: str,
    request: VoteRequest,
    actor: ActorContext = Depends(get_current_user_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Vote a ticket up or down, replacing any earlier vote"""
    try:
        votes = TicketService().vote(actor, ticket_id, request.type)
        return {
            "success": True,
            "message": "Vote recorded successfully",
            "votes": votes
        }

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.get("/{ticket_id}/attachments/{attachment_id}")
async def download_attachment(
    ticket_id: str,
    attachment_id: str,
    actor: ActorContext = Depends(get_current_user_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """
    Download attachment

    Anyone who can see the ticket can download its files.
    """
    try:
        attachment, file_stream = TicketService().get_attachment(actor, ticket_id, attachment_id)

        encoded_filename = urllib.parse.quote(attachment.original_filename)

        return StreamingResponse(
            file_stream,
            media_type=attachment.mime_type,
            headers={
                "Content-Disposition": f"attachment; filename*=UTF-8''{encoded_filename}",
                "Content-Length": str(attachment.size_bytes),
                "Access-Control-Expose-Headers": "Content-Disposition, Content-Length",
                "Cache-Control": "no-cache",
            }
        )

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())
