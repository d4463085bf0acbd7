"""Service modules - Business logic layer"""
from .account_service import AccountService
from .category_service import CategoryService
from .ticket_service import TicketService
from .attachment_service import AttachmentService, UploadInput
from .notification_service import NotificationService

__all__ = [
    "AccountService",
    "CategoryService",
    "TicketService",
    "AttachmentService",
    "UploadInput",
    "NotificationService",
]
