"""Auth API Routes - Login, session check and profile"""
from typing import Any, Dict, Optional
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from ..deps import get_current_account_dep, get_current_user_dep, get_correlation_id_dep
from ...domain.models import Account, ActorContext
from ...domain.errors import DomainError
from ...services.account_service import AccountService
from ...utils.identity import IdentityVerifier, get_identity_verifier
from ...utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter()


# ============================================================================
# Request Models
# ============================================================================

class LoginRequest(BaseModel):
    """ID token issued by the identity provider"""
    token: str = Field(..., min_length=1)


class NotificationPreferencesUpdate(BaseModel):
    email_enabled: Optional[bool] = None
    ticket_updates_enabled: Optional[bool] = None


class UpdateProfileRequest(BaseModel):
    """Profile changes; omitted fields are left alone"""
    display_name: Optional[str] = Field(None, min_length=1, max_length=100)
    notification_preferences: Optional[NotificationPreferencesUpdate] = None


def serialize_account(account: Account) -> Dict[str, Any]:
    return account.model_dump(mode="json")


# ============================================================================
# Routes
# ============================================================================

@router.post("/login")
async def login(
    request: LoginRequest,
    verifier: IdentityVerifier = Depends(get_identity_verifier),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """
    Exchange an ID token for the local account

    First login creates an enduser account.
    """
    try:
        identity = verifier.verify(request.token)
        account = AccountService().authenticate(identity)

        logger.info("User logged in", extra={"account_id": account.account_id})
        return {
            "success": True,
            "message": "Login successful",
            "user": serialize_account(account)
        }

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.get("/verify")
async def verify(
    account: Account = Depends(get_current_account_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Check the bearer token and echo the account"""
    return {"success": True, "user": serialize_account(account)}


@router.get("/profile")
async def get_profile(
    actor: ActorContext = Depends(get_current_user_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Get the caller's account"""
    try:
        account = AccountService().get_profile(actor)
        return {"success": True, "user": serialize_account(account)}

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.put("/profile")
async def update_profile(
    request: UpdateProfileRequest,
    actor: ActorContext = Depends(get_current_user_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Update display name and notification preferences"""
    try:
        preferences = (
            request.notification_preferences.model_dump(exclude_none=True)
            if request.notification_preferences else None
        )
        account = AccountService().update_profile(
            actor,
            display_name=request.display_name,
            notification_preferences=preferences
        )
        return {
            "success": True,
            "message": "Profile updated successfully",
            "user": serialize_account(account)
        }

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())
