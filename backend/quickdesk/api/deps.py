"""API Dependencies - Common dependencies for routes"""
from typing import Callable, Optional
from fastapi import Depends, Header, HTTPException, status

from ..domain.models import Account, ActorContext
from ..domain.enums import Role
from ..domain.errors import AuthenticationError, DomainError, ForbiddenError
from ..services.account_service import AccountService
from ..utils.identity import IdentityVerifier, get_identity_verifier
from ..utils.logger import set_correlation_id
from ..utils.idgen import generate_correlation_id


async def get_correlation_id_dep(
    x_correlation_id: Optional[str] = Header(None, alias="X-Correlation-Id")
) -> str:
    """
    Get or generate correlation ID for request tracing

    If client provides X-Correlation-Id, use it.
    Otherwise generate a new one.
    """
    correlation_id = x_correlation_id or generate_correlation_id()
    set_correlation_id(correlation_id)
    return correlation_id


def _unauthorized(error: AuthenticationError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=error.to_dict(),
        headers={"WWW-Authenticate": "Bearer"}
    )


async def get_current_account_dep(
    authorization: Optional[str] = Header(None),
    verifier: IdentityVerifier = Depends(get_identity_verifier)
) -> Account:
    """
    Resolve the caller's local account from the Authorization header

    The bearer token is verified, the identity is mapped to an account
    (created on first sight) and deactivated accounts are rejected.

    Raises:
        HTTPException: 401 if token is missing or invalid, or the account is deactivated
    """
    if not authorization:
        raise _unauthorized(AuthenticationError("No token, authorization denied"))

    try:
        identity = verifier.verify(authorization)
        return AccountService().authenticate(identity)
    except AuthenticationError as e:
        raise _unauthorized(e)
    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


async def get_current_user_dep(
    account: Account = Depends(get_current_account_dep)
) -> ActorContext:
    """Dependency to get the request actor"""
    return account.to_actor()


def require_roles(*roles: Role) -> Callable:
    """
    Build a dependency that admits only the given roles

    Usage:
        actor: ActorContext = Depends(require_roles(Role.ADMIN))
    """
    allowed = [r.value for r in roles]

    async def _dependency(actor: ActorContext = Depends(get_current_user_dep)) -> ActorContext:
        if actor.role not in allowed:
            error = ForbiddenError(
                "Access denied. Insufficient permissions.",
                details={"required_roles": allowed, "role": actor.role}
            )
            raise HTTPException(status_code=error.http_status, detail=error.to_dict())
        return actor

    return _dependency


require_staff = require_roles(Role.AGENT, Role.ADMIN)
require_admin = require_roles(Role.ADMIN)
