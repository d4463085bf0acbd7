"""API Routes module"""
from fastapi import APIRouter

from .auth import router as auth_router
from .tickets import router as tickets_router
from .categories import router as categories_router
from .users import router as users_router

# Main API router
api_router = APIRouter()

api_router.include_router(auth_router, prefix="/auth", tags=["Auth"])
api_router.include_router(tickets_router, tags=["Tickets"])
api_router.include_router(categories_router, prefix="/categories", tags=["Categories"])
api_router.include_router(users_router, prefix="/users", tags=["Users"])

__all__ = ["api_router"]
