"""Category API Routes - Category registry"""
from typing import Any, Dict, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from ..deps import get_current_user_dep, get_correlation_id_dep, require_admin
from ...domain.models import Category, CategorySummary, ActorContext
from ...domain.errors import DomainError
from ...services.category_service import CategoryService
from ...utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter()


# ============================================================================
# Request Models
# ============================================================================

class CreateCategoryRequest(BaseModel):
    """Request to create a category"""
    name: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = Field(None, max_length=200)
    color: Optional[str] = None


class UpdateCategoryRequest(BaseModel):
    """Partial category update"""
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    description: Optional[str] = Field(None, max_length=200)
    color: Optional[str] = None
    is_active: Optional[bool] = None


def serialize_category(category: Category) -> Dict[str, Any]:
    return category.model_dump(mode="json", exclude={"name_key"})


def serialize_summary(summary: CategorySummary) -> Dict[str, Any]:
    data = serialize_category(summary.category)
    data["stats"] = summary.stats.model_dump(exclude_none=True)
    return data


# ============================================================================
# Routes
# ============================================================================

@router.get("")
async def list_categories(
    include_inactive: bool = Query(False, description="Admins only"),
    actor: ActorContext = Depends(get_current_user_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """List categories sorted by name, with ticket counts"""
    try:
        summaries = CategoryService().list_categories(actor, include_inactive=include_inactive)
        return {
            "success": True,
            "categories": [serialize_summary(s) for s in summaries]
        }

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.get("/stats")
async def get_category_stats(
    actor: ActorContext = Depends(require_admin),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Registry summary for the admin dashboard"""
    return {"success": True, "stats": CategoryService().get_stats()}


@router.get("/{category_id}")
async def get_category(
    category_id: str,
    actor: ActorContext = Depends(get_current_user_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Get a category with per-status ticket counts"""
    try:
        summary = CategoryService().get_category(category_id)
        return {"success": True, "category": serialize_summary(summary)}

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_category(
    request: CreateCategoryRequest,
    actor: ActorContext = Depends(require_admin),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Create a category"""
    try:
        category = CategoryService().create_category(
            actor,
            name=request.name,
            description=request.description,
            color=request.color
        )
        return {
            "success": True,
            "message": "Category created successfully",
            "category": serialize_category(category)
        }

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.put("/{category_id}")
async def update_category(
    category_id: str,
    request: UpdateCategoryRequest,
    actor: ActorContext = Depends(require_admin),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Update a category"""
    try:
        category = CategoryService().update_category(
            actor,
            category_id,
            request.model_dump(exclude_unset=True)
        )
        return {
            "success": True,
            "message": "Category updated successfully",
            "category": serialize_category(category)
        }

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.delete("/{category_id}")
async def delete_category(
    category_id: str,
    actor: ActorContext = Depends(require_admin),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """
    Deactivate a category

    Refused while Open or In Progress tickets still use it.
    """
    try:
        CategoryService().deactivate_category(actor, category_id)
        return {"success": True, "message": "Category deleted successfully"}

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())
