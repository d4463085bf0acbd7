"""Account Service - Identity mapping, roles and activation"""
from typing import Any, Dict, List, Optional
from pydantic import EmailStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from ..domain.models import (
    Account, ActorContext, AccountStats, AccountSummary, NotificationPreferences, Page
)
from ..domain.enums import Role, TicketStatus, UNRESOLVED_STATUSES
from ..domain.errors import (
    AuthenticationError, ValidationError, ForbiddenError, AlreadyExistsError
)
from ..repositories.account_repo import AccountRepository
from ..repositories.ticket_repo import TicketRepository
from ..utils.identity import VerifiedIdentity
from ..utils.idgen import generate_account_id
from ..utils.time import utc_now, days_ago
from ..utils.logger import get_logger

logger = get_logger(__name__)


MAX_DISPLAY_NAME_LENGTH = 100
RECENT_REGISTRATION_DAYS = 30
MOST_ACTIVE_LIMIT = 5

_email_adapter = TypeAdapter(EmailStr)


class AccountService:
    """Service for account directory operations"""

    def __init__(self):
        self.account_repo = AccountRepository()
        self.ticket_repo = TicketRepository()

    # =========================================================================
    # Identity Resolution
    # =========================================================================

    def resolve_or_create(self, identity: VerifiedIdentity) -> Account:
        """
        Map a verified identity to a local account

        Unseen subjects get a new enduser account. Known subjects have
        changed email, name or avatar claims applied. Role and activation
        are never touched here.
        """
        if not identity.subject_id or not identity.email:
            raise AuthenticationError("Token does not carry a subject and email")

        email = identity.email.strip().lower()
        try:
            _email_adapter.validate_python(email)
        except PydanticValidationError:
            logger.warning(f"Identity claims carry an unusable email for subject {identity.subject_id}")
            raise AuthenticationError("Token does not carry a valid email")

        account = self.account_repo.get_by_subject(identity.subject_id)

        if account is None:
            return self._create_from_identity(identity, email)

        changed = False
        if account.email != email:
            account.email = email
            changed = True
        if identity.display_name and account.display_name != identity.display_name:
            account.display_name = identity.display_name
            changed = True
        if identity.avatar_url and account.avatar_url != identity.avatar_url:
            account.avatar_url = identity.avatar_url
            changed = True

        if changed:
            account = self.account_repo.save_account(account)
            logger.info("Refreshed account profile from identity claims", extra={"account_id": account.account_id})

        return account

    def _create_from_identity(self, identity: VerifiedIdentity, email: str) -> Account:
        if self.account_repo.get_by_email(email):
            raise AlreadyExistsError(
                "An account with this email already exists",
                details={"email": email}
            )

        now = utc_now()
        account = Account(
            account_id=generate_account_id(),
            subject_id=identity.subject_id,
            email=email,
            display_name=identity.display_name or email.split("@")[0],
            avatar_url=identity.avatar_url,
            role=Role.ENDUSER,
            is_active=True,
            created_at=now,
            updated_at=now,
        )

        try:
            return self.account_repo.create_account(account)
        except AlreadyExistsError:
            # A concurrent first login for the same subject won the insert
            existing = self.account_repo.get_by_subject(identity.subject_id)
            if existing:
                return existing
            raise

    def authenticate(self, identity: VerifiedIdentity) -> Account:
        """Resolve the caller's account and reject deactivated ones"""
        account = self.resolve_or_create(identity)
        if not account.is_active:
            logger.warning("Deactivated account attempted to authenticate", extra={"account_id": account.account_id})
            raise AuthenticationError("Account is deactivated")
        return account

    # =========================================================================
    # Profile
    # =========================================================================

    def get_profile(self, actor: ActorContext) -> Account:
        return self.account_repo.get_account_or_raise(actor.account_id)

    def update_profile(
        self,
        actor: ActorContext,
        display_name: Optional[str] = None,
        notification_preferences: Optional[Dict[str, bool]] = None
    ) -> Account:
        """Change the caller's name and merge notification preferences"""
        account = self.account_repo.get_account_or_raise(actor.account_id)

        if display_name is not None:
            name = display_name.strip()
            if not name or len(name) > MAX_DISPLAY_NAME_LENGTH:
                raise ValidationError(
                    f"Name must be between 1 and {MAX_DISPLAY_NAME_LENGTH} characters",
                    details={"field": "display_name"}
                )
            account.display_name = name

        if notification_preferences:
            merged = account.notification_preferences.model_dump()
            merged.update({k: v for k, v in notification_preferences.items() if k in merged and v is not None})
            account.notification_preferences = NotificationPreferences(**merged)

        return self.account_repo.save_account(account)

    # =========================================================================
    # Administration
    # =========================================================================

    def change_role(self, actor: ActorContext, target_id: str, new_role: str) -> Account:
        """
        Overwrite an account's role

        Raises:
            ValidationError: Unknown role
            ForbiddenError: Actor targets themselves
            AccountNotFoundError: Target does not exist
        """
        try:
            role = Role(new_role)
        except ValueError:
            raise ValidationError(
                f"Invalid role: {new_role}",
                details={"allowed": [r.value for r in Role]}
            )

        if actor.account_id == target_id:
            raise ForbiddenError("Cannot change your own role")

        account = self.account_repo.get_account_or_raise(target_id)
        old_role = account.role
        account.role = role.value
        account = self.account_repo.save_account(account)

        logger.info(
            f"Role changed from {old_role} to {role.value}",
            extra={"account_id": target_id, "actor_id": actor.account_id}
        )
        return account

    def set_activation(self, actor: ActorContext, target_id: str, active: bool) -> Account:
        """
        Activate or deactivate an account

        Deactivation unassigns the account from every Open or In Progress
        ticket. Resolved and Closed tickets keep their assignee.
        """
        if actor.account_id == target_id and not active:
            raise ForbiddenError("Cannot deactivate your own account")

        account = self.account_repo.get_account_or_raise(target_id)
        if account.is_active == active:
            return account

        account.is_active = active
        account = self.account_repo.save_account(account)

        if not active:
            self.ticket_repo.unassign_unresolved(target_id)

        logger.info(
            f"Account {'activated' if active else 'deactivated'}",
            extra={"account_id": target_id, "actor_id": actor.account_id}
        )
        return account

    # =========================================================================
    # Queries
    # =========================================================================

    def _list_stats(self, account: Account) -> AccountStats:
        return AccountStats(
            tickets_created=self.ticket_repo.count_tickets({"created_by": account.account_id}),
            tickets_assigned=(
                self.ticket_repo.count_tickets({"assigned_to": account.account_id})
                if account.is_staff else 0
            ),
        )

    def list_accounts(
        self,
        role: Optional[str] = None,
        is_active: Optional[bool] = None,
        search: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
        sort_by: str = "created_at",
        sort_order: str = "desc"
    ) -> Page[AccountSummary]:
        """List accounts with live ticket counts"""
        if role is not None and role not in [r.value for r in Role]:
            raise ValidationError(f"Invalid role: {role}", details={"allowed": [r.value for r in Role]})

        accounts, total = self.account_repo.list_accounts(
            role=role,
            is_active=is_active,
            search=search,
            sort_by=sort_by,
            sort_order=sort_order,
            skip=(page - 1) * page_size,
            limit=page_size
        )

        items = [AccountSummary(account=a, stats=self._list_stats(a)) for a in accounts]
        return Page[AccountSummary](items=items, total=total, page=page, page_size=page_size)

    def get_account(self, actor: ActorContext, account_id: str) -> AccountSummary:
        """Account with detailed ticket counts"""
        account = self.account_repo.get_account_or_raise(account_id)
        unresolved = [s.value for s in UNRESOLVED_STATUSES]

        stats = self._list_stats(account)
        stats.open_tickets = self.ticket_repo.count_tickets({
            "created_by": account_id,
            "status": {"$in": unresolved}
        })
        stats.resolved_tickets = self.ticket_repo.count_tickets({
            "status": TicketStatus.RESOLVED.value,
            "$or": [{"created_by": account_id}, {"assigned_to": account_id}]
        })
        return AccountSummary(account=account, stats=stats)

    def get_stats(self) -> Dict[str, Any]:
        """Directory summary for the admin dashboard"""
        by_role = self.account_repo.count_by_role(is_active=True)
        total_active = self.account_repo.count_accounts({"is_active": True})
        recent = self.account_repo.count_accounts({
            "is_active": True,
            "created_at": {"$gte": days_ago(RECENT_REGISTRATION_DAYS)}
        })

        most_active: List[Dict[str, Any]] = []
        ranked = self.ticket_repo.top_creators()
        accounts = self.account_repo.get_accounts([account_id for account_id, _ in ranked])
        for account_id, count in ranked:
            account = accounts.get(account_id)
            if account is None or not account.is_active:
                continue
            most_active.append({
                "account_id": account.account_id,
                "display_name": account.display_name,
                "email": account.email,
                "role": account.role,
                "ticket_count": count,
            })
            if len(most_active) == MOST_ACTIVE_LIMIT:
                break

        return {
            "total": total_active,
            "active": total_active,
            "by_role": {r.value: by_role.get(r.value, 0) for r in Role},
            "recent_registrations": recent,
            "most_active": most_active,
        }
