"""
Ticket Routes Module

- crud.py: Create, list, get and update tickets
- actions.py: Comments, votes and attachment downloads

All routes are combined into a single router mounted under /tickets.
"""

from fastapi import APIRouter

from .schemas import (
    UpdateTicketRequest, AddCommentRequest, VoteRequest,
    TicketResponse, TicketListResponse
)
from .crud import router as crud_router
from .actions import router as actions_router

router = APIRouter()

router.include_router(crud_router, prefix="/tickets")
router.include_router(actions_router, prefix="/tickets")

__all__ = [
    "router",
    "UpdateTicketRequest", "AddCommentRequest", "VoteRequest",
    "TicketResponse", "TicketListResponse"
]
