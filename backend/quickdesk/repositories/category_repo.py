"""Category Repository - Data access for ticket categories"""
import re
from typing import Any, Dict, List, Optional
from pymongo.collection import Collection
from pymongo import ASCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from .mongo_client import get_collection
from ..domain.models import Category
from ..domain.errors import CategoryNotFoundError, ConcurrencyError, AlreadyExistsError
from ..utils.logger import get_logger
from ..utils.time import utc_now

logger = get_logger(__name__)


class CategoryRepository:
    """Repository for category operations"""

    def __init__(self):
        self._categories: Collection = get_collection("categories")

    def _to_model(self, doc: Dict[str, Any]) -> Category:
        doc.pop("_id", None)
        return Category.model_validate(doc)

    def _duplicate_name(self, name: str) -> AlreadyExistsError:
        return AlreadyExistsError(
            "Category with this name already exists",
            details={"name": name}
        )

    def create_category(self, category: Category) -> Category:
        """Create a new category"""
        doc = category.model_dump()
        doc["_id"] = category.category_id

        try:
            self._categories.insert_one(doc)
        except DuplicateKeyError:
            raise self._duplicate_name(category.name)

        logger.info(f"Created category: {category.name}", extra={"category_id": category.category_id})
        return category

    def get_category(self, category_id: str) -> Optional[Category]:
        """Get category by ID"""
        doc = self._categories.find_one({"category_id": category_id})
        return self._to_model(doc) if doc else None

    def get_category_or_raise(self, category_id: str) -> Category:
        """Get category by ID or raise error"""
        category = self.get_category(category_id)
        if not category:
            raise CategoryNotFoundError(f"Category {category_id} not found")
        return category

    def find_by_name(self, name: str, exclude_id: Optional[str] = None) -> Optional[Category]:
        """Find a category by exact name, case-insensitive, active or not"""
        query: Dict[str, Any] = {
            "name": {"$regex": f"^{re.escape(name.strip())}$", "$options": "i"}
        }
        if exclude_id:
            query["category_id"] = {"$ne": exclude_id}
        doc = self._categories.find_one(query)
        return self._to_model(doc) if doc else None

    def list_categories(self, include_inactive: bool = False) -> List[Category]:
        """List categories sorted by name"""
        query: Dict[str, Any] = {} if include_inactive else {"is_active": True}
        cursor = self._categories.find(query).sort("name", ASCENDING)
        return [self._to_model(doc) for doc in cursor]

    def count_categories(self, is_active: Optional[bool] = None) -> int:
        """Count categories, optionally by active flag"""
        query: Dict[str, Any] = {}
        if is_active is not None:
            query["is_active"] = is_active
        return self._categories.count_documents(query)

    def save_category(self, category: Category) -> Category:
        """
        Replace the stored category, guarded by its version

        Raises:
            ConcurrencyError: Stored version differs from category.version
            CategoryNotFoundError: Category no longer exists
        """
        expected_version = category.version
        doc = category.model_dump()
        doc["_id"] = category.category_id
        doc["updated_at"] = utc_now()
        doc["version"] = expected_version + 1

        try:
            result = self._categories.find_one_and_replace(
                {"category_id": category.category_id, "version": expected_version},
                doc,
                return_document=ReturnDocument.AFTER
            )
        except DuplicateKeyError:
            raise self._duplicate_name(category.name)

        if result is None:
            if self._categories.find_one({"category_id": category.category_id}):
                raise ConcurrencyError(
                    f"Category {category.category_id} was modified. Please refresh and try again.",
                    details={"expected_version": expected_version}
                )
            raise CategoryNotFoundError(f"Category {category.category_id} not found")

        logger.info(f"Updated category: {category.category_id}", extra={"category_id": category.category_id})
        return self._to_model(result)
