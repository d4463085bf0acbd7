"""Ticket Repository - Data access for tickets and their embedded comments"""
from typing import Any, Dict, List, Optional, Tuple
from pymongo.collection import Collection
from pymongo import DESCENDING, ASCENDING, ReturnDocument

from .mongo_client import get_collection
from ..domain.models import Ticket
from ..domain.enums import UNRESOLVED_STATUSES
from ..domain.errors import TicketNotFoundError, ConcurrencyError
from ..utils.logger import get_logger
from ..utils.time import utc_now

logger = get_logger(__name__)


TICKET_SORT_FIELDS = ("last_activity_at", "created_at", "updated_at", "priority", "status", "subject")

UNRESOLVED_VALUES = [s.value for s in UNRESOLVED_STATUSES]


class TicketRepository:
    """Repository for ticket operations"""

    def __init__(self):
        self._tickets: Collection = get_collection("tickets")

    def _to_model(self, doc: Dict[str, Any]) -> Ticket:
        doc.pop("_id", None)
        return Ticket.model_validate(doc)

    # =========================================================================
    # Ticket CRUD
    # =========================================================================

    def create_ticket(self, ticket: Ticket) -> Ticket:
        """Create a new ticket"""
        # Don't use mode="json" - it converts datetime to strings, breaking MongoDB sorting
        doc = ticket.model_dump()
        doc["_id"] = ticket.ticket_id

        self._tickets.insert_one(doc)
        logger.info(f"Created ticket: {ticket.ticket_id}", extra={"ticket_id": ticket.ticket_id})
        return ticket

    def get_ticket(self, ticket_id: str) -> Optional[Ticket]:
        """Get ticket by ID"""
        doc = self._tickets.find_one({"ticket_id": ticket_id})
        return self._to_model(doc) if doc else None

    def get_ticket_or_raise(self, ticket_id: str) -> Ticket:
        """Get ticket by ID or raise error"""
        ticket = self.get_ticket(ticket_id)
        if not ticket:
            raise TicketNotFoundError(f"Ticket {ticket_id} not found")
        return ticket

    def save_ticket(self, ticket: Ticket) -> Ticket:
        """
        Replace the stored ticket, guarded by its version

        Raises:
            ConcurrencyError: Stored version differs from ticket.version
            TicketNotFoundError: Ticket no longer exists
        """
        expected_version = ticket.version
        doc = ticket.model_dump()
        doc["_id"] = ticket.ticket_id
        doc["updated_at"] = utc_now()
        doc["version"] = expected_version + 1

        result = self._tickets.find_one_and_replace(
            {"ticket_id": ticket.ticket_id, "version": expected_version},
            doc,
            return_document=ReturnDocument.AFTER
        )

        if result is None:
            if self._tickets.find_one({"ticket_id": ticket.ticket_id}):
                raise ConcurrencyError(
                    f"Ticket {ticket.ticket_id} was modified. Please refresh and try again.",
                    details={"expected_version": expected_version}
                )
            raise TicketNotFoundError(f"Ticket {ticket.ticket_id} not found")

        logger.info(f"Updated ticket: {ticket.ticket_id}", extra={"ticket_id": ticket.ticket_id})
        return self._to_model(result)

    def list_tickets(
        self,
        query: Dict[str, Any],
        sort_by: str = "last_activity_at",
        sort_order: str = "desc",
        skip: int = 0,
        limit: int = 20
    ) -> Tuple[List[Ticket], int]:
        """List tickets matching a query. Returns (page, total)."""
        if sort_by not in TICKET_SORT_FIELDS:
            sort_by = "last_activity_at"
        sort_dir = ASCENDING if sort_order.lower() == "asc" else DESCENDING

        total = self._tickets.count_documents(query)
        cursor = self._tickets.find(query).sort(sort_by, sort_dir).skip(skip).limit(limit)
        return [self._to_model(doc) for doc in cursor], total

    # =========================================================================
    # Counts & Derived Stats
    # =========================================================================

    def count_tickets(self, query: Optional[Dict[str, Any]] = None) -> int:
        """Count tickets matching a query"""
        return self._tickets.count_documents(query or {})

    def count_unresolved_in_category(self, category_id: str) -> int:
        """Open or In Progress tickets referencing a category"""
        return self._tickets.count_documents({
            "category_id": category_id,
            "status": {"$in": UNRESOLVED_VALUES}
        })

    def count_by_status(self, match: Optional[Dict[str, Any]] = None) -> Dict[str, int]:
        """Count tickets grouped by status"""
        pipeline = [
            {"$match": match or {}},
            {"$group": {"_id": "$status", "count": {"$sum": 1}}}
        ]
        return {doc["_id"]: doc["count"] for doc in self._tickets.aggregate(pipeline)}

    def count_by_category(self, unresolved_only: bool = False) -> Dict[str, int]:
        """Count tickets grouped by category"""
        match: Dict[str, Any] = {}
        if unresolved_only:
            match["status"] = {"$in": UNRESOLVED_VALUES}
        pipeline = [
            {"$match": match},
            {"$group": {"_id": "$category_id", "count": {"$sum": 1}}}
        ]
        return {doc["_id"]: doc["count"] for doc in self._tickets.aggregate(pipeline)}

    def top_creators(self) -> List[Tuple[str, int]]:
        """Accounts with the most created tickets, most first"""
        pipeline: List[Dict[str, Any]] = [
            {"$group": {"_id": "$created_by", "count": {"$sum": 1}}},
            {"$sort": {"count": -1, "_id": 1}},
        ]
        return [(doc["_id"], doc["count"]) for doc in self._tickets.aggregate(pipeline)]

    # =========================================================================
    # Bulk Maintenance
    # =========================================================================

    def unassign_unresolved(self, account_id: str) -> int:
        """Clear the assignee on Open/In Progress tickets assigned to an account"""
        result = self._tickets.update_many(
            {"assigned_to": account_id, "status": {"$in": UNRESOLVED_VALUES}},
            {
                "$set": {"assigned_to": None, "updated_at": utc_now()},
                "$inc": {"version": 1}
            }
        )
        if result.modified_count:
            logger.info(
                f"Unassigned {result.modified_count} tickets from deactivated account",
                extra={"account_id": account_id}
            )
        return result.modified_count
