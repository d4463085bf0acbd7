"""Category Service - Admin-managed ticket labels"""
import re
from typing import Any, Dict, List, Optional

from ..domain.models import (
    Category, CategoryStats, CategorySummary, ActorContext, DEFAULT_CATEGORY_COLOR, HEX_COLOR_PATTERN
)
from ..domain.enums import TicketStatus
from ..domain.errors import ValidationError, ForbiddenError, AlreadyExistsError, CategoryInUseError
from ..repositories.category_repo import CategoryRepository
from ..repositories.ticket_repo import TicketRepository
from ..utils.idgen import generate_category_id
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)


MAX_NAME_LENGTH = 50
MAX_DESCRIPTION_LENGTH = 200


class CategoryService:
    """Service for category registry operations"""

    def __init__(self):
        self.category_repo = CategoryRepository()
        self.ticket_repo = TicketRepository()

    # =========================================================================
    # Validation
    # =========================================================================

    def _clean_name(self, name: Optional[str]) -> str:
        cleaned = (name or "").strip()
        if not cleaned or len(cleaned) > MAX_NAME_LENGTH:
            raise ValidationError(
                f"Category name must be between 1 and {MAX_NAME_LENGTH} characters",
                details={"field": "name"}
            )
        return cleaned

    def _clean_description(self, description: Optional[str]) -> Optional[str]:
        if description is None:
            return None
        cleaned = description.strip()
        if len(cleaned) > MAX_DESCRIPTION_LENGTH:
            raise ValidationError(
                f"Description cannot exceed {MAX_DESCRIPTION_LENGTH} characters",
                details={"field": "description"}
            )
        return cleaned or None

    def _clean_color(self, color: Optional[str]) -> str:
        if not color:
            return DEFAULT_CATEGORY_COLOR
        if not re.match(HEX_COLOR_PATTERN, color):
            raise ValidationError("Color must be a valid hex color", details={"field": "color"})
        return color

    def _assert_name_available(self, name: str, exclude_id: Optional[str] = None) -> None:
        if self.category_repo.find_by_name(name, exclude_id=exclude_id):
            raise AlreadyExistsError(
                "Category name already exists",
                details={"name": name}
            )

    # =========================================================================
    # Commands
    # =========================================================================

    def create_category(
        self,
        actor: ActorContext,
        name: str,
        description: Optional[str] = None,
        color: Optional[str] = None
    ) -> Category:
        """Create a category; names are unique case-insensitively, active or not"""
        cleaned_name = self._clean_name(name)
        self._assert_name_available(cleaned_name)

        now = utc_now()
        category = Category(
            category_id=generate_category_id(),
            name=cleaned_name,
            description=self._clean_description(description),
            color=self._clean_color(color),
            is_active=True,
            created_by=actor.account_id,
            created_at=now,
            updated_at=now,
        )
        category = self.category_repo.create_category(category)

        logger.info(
            f"Category created: {category.name}",
            extra={"category_id": category.category_id, "actor_id": actor.account_id}
        )
        return category

    def update_category(
        self,
        actor: ActorContext,
        category_id: str,
        changes: Dict[str, Any]
    ) -> Category:
        """
        Apply a partial update

        Only keys present in changes are applied. is_active=false goes
        through the same unresolved-ticket check as deactivation.
        """
        category = self.category_repo.get_category_or_raise(category_id)

        if "name" in changes and changes["name"] is not None:
            new_name = self._clean_name(changes["name"])
            if new_name != category.name:
                self._assert_name_available(new_name, exclude_id=category_id)
                category.name = new_name

        if "description" in changes:
            category.description = self._clean_description(changes["description"])

        if changes.get("color"):
            category.color = self._clean_color(changes["color"])

        if changes.get("is_active") is not None:
            if not changes["is_active"] and category.is_active:
                self._assert_no_unresolved_tickets(category_id)
            category.is_active = bool(changes["is_active"])

        category = self.category_repo.save_category(category)
        logger.info(
            "Category updated",
            extra={"category_id": category_id, "actor_id": actor.account_id}
        )
        return category

    def _assert_no_unresolved_tickets(self, category_id: str) -> None:
        active_count = self.ticket_repo.count_unresolved_in_category(category_id)
        if active_count > 0:
            raise CategoryInUseError(
                f"Cannot delete category. It has {active_count} active ticket(s). "
                f"Please resolve or reassign these tickets first.",
                details={"category_id": category_id, "active_tickets": active_count}
            )

    def deactivate_category(self, actor: ActorContext, category_id: str) -> Category:
        """Soft delete; refused while Open or In Progress tickets reference it"""
        category = self.category_repo.get_category_or_raise(category_id)
        if not category.is_active:
            return category

        self._assert_no_unresolved_tickets(category_id)

        category.is_active = False
        category = self.category_repo.save_category(category)
        logger.info(
            "Category deactivated",
            extra={"category_id": category_id, "actor_id": actor.account_id}
        )
        return category

    # =========================================================================
    # Queries
    # =========================================================================

    def list_categories(self, actor: ActorContext, include_inactive: bool = False) -> List[CategorySummary]:
        """Categories sorted by name with active/total ticket counts"""
        if include_inactive and not actor.is_admin:
            raise ForbiddenError("Only admins can view inactive categories")

        categories = self.category_repo.list_categories(include_inactive=include_inactive)
        totals = self.ticket_repo.count_by_category()
        active = self.ticket_repo.count_by_category(unresolved_only=True)

        return [
            CategorySummary(
                category=c,
                stats=CategoryStats(
                    active_tickets=active.get(c.category_id, 0),
                    total_tickets=totals.get(c.category_id, 0),
                )
            )
            for c in categories
        ]

    def get_category(self, category_id: str) -> CategorySummary:
        """Category with per-status ticket counts"""
        category = self.category_repo.get_category_or_raise(category_id)
        counts = self.ticket_repo.count_by_status({"category_id": category_id})
        by_status = {s.value: counts.get(s.value, 0) for s in TicketStatus}

        return CategorySummary(
            category=category,
            stats=CategoryStats(
                active_tickets=by_status[TicketStatus.OPEN.value] + by_status[TicketStatus.IN_PROGRESS.value],
                total_tickets=sum(by_status.values()),
                by_status=by_status,
            )
        )

    def get_stats(self) -> Dict[str, Any]:
        """Registry summary for the admin dashboard"""
        totals = self.ticket_repo.count_by_category()
        active = self.ticket_repo.count_by_category(unresolved_only=True)

        breakdown = [
            {
                "category_id": c.category_id,
                "name": c.name,
                "color": c.color,
                "ticket_count": totals.get(c.category_id, 0),
                "active_tickets": active.get(c.category_id, 0),
            }
            for c in self.category_repo.list_categories(include_inactive=False)
        ]
        breakdown.sort(key=lambda row: row["ticket_count"], reverse=True)

        return {
            "total": self.category_repo.count_categories(is_active=True),
            "inactive": self.category_repo.count_categories(is_active=False),
            "breakdown": breakdown,
        }
