"""User API Routes - Account directory administration (admin only)"""
from typing import Any, Dict, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from ..deps import get_correlation_id_dep, require_admin
from ...domain.models import AccountSummary, ActorContext
from ...domain.errors import DomainError
from ...services.account_service import AccountService
from ...utils.logger import get_logger
from .tickets.schemas import serialize_pagination

logger = get_logger(__name__)
router = APIRouter()


# ============================================================================
# Request Models
# ============================================================================

class ChangeRoleRequest(BaseModel):
    role: str


class ChangeStatusRequest(BaseModel):
    is_active: bool


def serialize_summary(summary: AccountSummary) -> Dict[str, Any]:
    data = summary.account.model_dump(mode="json")
    data["stats"] = summary.stats.model_dump(exclude_none=True)
    return data


# ============================================================================
# Routes
# ============================================================================

@router.get("")
async def list_users(
    role: Optional[str] = Query(None, description="Filter by role"),
    is_active: Optional[bool] = Query(None, description="Filter by activation"),
    search: Optional[str] = Query(None, description="Search in name and email"),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc"),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    actor: ActorContext = Depends(require_admin),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """List accounts with ticket counts"""
    try:
        result = AccountService().list_accounts(
            role=role,
            is_active=is_active,
            search=search,
            page=page,
            page_size=page_size,
            sort_by=sort_by,
            sort_order=sort_order
        )
        return {
            "success": True,
            "users": [serialize_summary(s) for s in result.items],
            "pagination": serialize_pagination(result)
        }

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.get("/stats")
async def get_user_stats(
    actor: ActorContext = Depends(require_admin),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Directory summary for the admin dashboard"""
    return {"success": True, "stats": AccountService().get_stats()}


@router.get("/{account_id}")
async def get_user(
    account_id: str,
    actor: ActorContext = Depends(require_admin),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Get an account with detailed ticket counts"""
    try:
        summary = AccountService().get_account(actor, account_id)
        return {"success": True, "user": serialize_summary(summary)}

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.put("/{account_id}/role")
async def change_role(
    account_id: str,
    request: ChangeRoleRequest,
    actor: ActorContext = Depends(require_admin),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Change an account's role"""
    try:
        account = AccountService().change_role(actor, account_id, request.role)
        return {
            "success": True,
            "message": "User role updated successfully",
            "user": account.model_dump(mode="json")
        }

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.put("/{account_id}/status")
async def change_status(
    account_id: str,
    request: ChangeStatusRequest,
    actor: ActorContext = Depends(require_admin),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Activate or deactivate an account"""
    try:
        account = AccountService().set_activation(actor, account_id, request.is_active)
        return {
            "success": True,
            "message": f"User {'activated' if account.is_active else 'deactivated'} successfully",
            "user": account.model_dump(mode="json")
        }

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.delete("/{account_id}")
async def delete_user(
    account_id: str,
    actor: ActorContext = Depends(require_admin),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """
    Deactivate an account

    Accounts are never removed; their open assignments are released.
    """
    try:
        AccountService().set_activation(actor, account_id, False)
        return {"success": True, "message": "User deactivated successfully"}

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())
