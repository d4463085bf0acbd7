"""Account Repository - Data access for local accounts"""
import re
from typing import Any, Dict, List, Optional, Tuple
from pymongo.collection import Collection
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from .mongo_client import get_collection
from ..domain.models import Account
from ..domain.errors import AccountNotFoundError, ConcurrencyError, AlreadyExistsError
from ..utils.logger import get_logger
from ..utils.time import utc_now

logger = get_logger(__name__)


ACCOUNT_SORT_FIELDS = ("created_at", "updated_at", "display_name", "email", "role")


class AccountRepository:
    """Repository for account operations"""

    def __init__(self):
        self._accounts: Collection = get_collection("accounts")

    def _to_model(self, doc: Dict[str, Any]) -> Account:
        doc.pop("_id", None)
        return Account.model_validate(doc)

    def create_account(self, account: Account) -> Account:
        """Create a new account"""
        doc = account.model_dump()
        doc["_id"] = account.account_id

        try:
            self._accounts.insert_one(doc)
        except DuplicateKeyError:
            raise AlreadyExistsError(
                "An account with this email or identity already exists",
                details={"email": account.email}
            )

        logger.info(f"Created account: {account.account_id}", extra={"account_id": account.account_id})
        return account

    def get_account(self, account_id: str) -> Optional[Account]:
        """Get account by ID"""
        doc = self._accounts.find_one({"account_id": account_id})
        return self._to_model(doc) if doc else None

    def get_account_or_raise(self, account_id: str) -> Account:
        """Get account by ID or raise error"""
        account = self.get_account(account_id)
        if not account:
            raise AccountNotFoundError(f"User {account_id} not found")
        return account

    def get_by_subject(self, subject_id: str) -> Optional[Account]:
        """Get account by identity provider subject"""
        doc = self._accounts.find_one({"subject_id": subject_id})
        return self._to_model(doc) if doc else None

    def get_by_email(self, email: str) -> Optional[Account]:
        """Get account by email (stored lower-cased)"""
        doc = self._accounts.find_one({"email": email.lower()})
        return self._to_model(doc) if doc else None

    def get_accounts(self, account_ids: List[str]) -> Dict[str, Account]:
        """Get several accounts keyed by ID"""
        if not account_ids:
            return {}
        cursor = self._accounts.find({"account_id": {"$in": list(set(account_ids))}})
        accounts = [self._to_model(doc) for doc in cursor]
        return {a.account_id: a for a in accounts}

    def save_account(self, account: Account) -> Account:
        """
        Replace the stored account, guarded by its version

        Raises:
            ConcurrencyError: Stored version differs from account.version
            AccountNotFoundError: Account no longer exists
        """
        expected_version = account.version
        doc = account.model_dump()
        doc["_id"] = account.account_id
        doc["updated_at"] = utc_now()
        doc["version"] = expected_version + 1

        try:
            result = self._accounts.find_one_and_replace(
                {"account_id": account.account_id, "version": expected_version},
                doc,
                return_document=ReturnDocument.AFTER
            )
        except DuplicateKeyError:
            raise AlreadyExistsError(
                "Another account already uses this email",
                details={"email": account.email}
            )

        if result is None:
            if self._accounts.find_one({"account_id": account.account_id}):
                raise ConcurrencyError(
                    f"User {account.account_id} was modified. Please refresh and try again.",
                    details={"expected_version": expected_version}
                )
            raise AccountNotFoundError(f"User {account.account_id} not found")

        logger.info(f"Updated account: {account.account_id}", extra={"account_id": account.account_id})
        return self._to_model(result)

    def _build_query(
        self,
        role: Optional[str] = None,
        is_active: Optional[bool] = None,
        search: Optional[str] = None
    ) -> Dict[str, Any]:
        query: Dict[str, Any] = {}
        if role:
            query["role"] = role
        if is_active is not None:
            query["is_active"] = is_active
        if search:
            pattern = re.escape(search.strip())
            query["$or"] = [
                {"display_name": {"$regex": pattern, "$options": "i"}},
                {"email": {"$regex": pattern, "$options": "i"}},
            ]
        return query

    def list_accounts(
        self,
        role: Optional[str] = None,
        is_active: Optional[bool] = None,
        search: Optional[str] = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
        skip: int = 0,
        limit: int = 20
    ) -> Tuple[List[Account], int]:
        """List accounts with filters. Returns (page, total)."""
        query = self._build_query(role=role, is_active=is_active, search=search)

        if sort_by not in ACCOUNT_SORT_FIELDS:
            sort_by = "created_at"
        sort_dir = ASCENDING if sort_order.lower() == "asc" else DESCENDING

        total = self._accounts.count_documents(query)
        cursor = self._accounts.find(query).sort(sort_by, sort_dir).skip(skip).limit(limit)
        return [self._to_model(doc) for doc in cursor], total

    def count_accounts(self, query: Optional[Dict[str, Any]] = None) -> int:
        """Count accounts matching a raw query"""
        return self._accounts.count_documents(query or {})

    def count_by_role(self, is_active: Optional[bool] = True) -> Dict[str, int]:
        """Count accounts grouped by role"""
        match: Dict[str, Any] = {}
        if is_active is not None:
            match["is_active"] = is_active
        pipeline = [
            {"$match": match},
            {"$group": {"_id": "$role", "count": {"$sum": 1}}}
        ]
        return {doc["_id"]: doc["count"] for doc in self._accounts.aggregate(pipeline)}

    def is_assignable(self, account_id: str) -> bool:
        """True if the account exists, is active and holds a staff role"""
        return self._accounts.count_documents({
            "account_id": account_id,
            "is_active": True,
            "role": {"$in": ["agent", "admin"]},
        }) > 0
