"""Repository modules - Data access layer"""
from .mongo_client import get_database, get_collection, create_indexes, health_check
from .account_repo import AccountRepository
from .category_repo import CategoryRepository
from .ticket_repo import TicketRepository
from .notification_repo import NotificationRepository

__all__ = [
    "get_database",
    "get_collection",
    "create_indexes",
    "health_check",
    "AccountRepository",
    "CategoryRepository",
    "TicketRepository",
    "NotificationRepository",
]
