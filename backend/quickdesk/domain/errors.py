"""Domain Errors - Centralized Exception Hierarchy"""
from typing import Any, Dict, Optional


class DomainError(Exception):
    """Base domain error - all errors extend this"""

    error_code: str = "DOMAIN_ERROR"
    http_status: int = 400

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if error_code:
            self.error_code = error_code

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to API response envelope"""
        return {
            "success": False,
            "message": self.message,
            "error": {
                "code": self.error_code,
                "details": self.details
            }
        }


# Authentication & Authorization Errors
class AuthenticationError(DomainError):
    """Token missing, invalid, or expired; or account deactivated"""
    error_code = "AUTHENTICATION_ERROR"
    http_status = 401


class ForbiddenError(DomainError):
    """Authenticated but not permitted"""
    error_code = "FORBIDDEN"
    http_status = 403


# Validation Errors
class ValidationError(DomainError):
    """Input validation failed"""
    error_code = "VALIDATION_ERROR"
    http_status = 400


# Not Found Errors
class NotFoundError(DomainError):
    """Resource not found"""
    error_code = "NOT_FOUND"
    http_status = 404


class TicketNotFoundError(NotFoundError):
    """Ticket not found"""
    error_code = "TICKET_NOT_FOUND"


class CategoryNotFoundError(NotFoundError):
    """Category not found"""
    error_code = "CATEGORY_NOT_FOUND"


class AccountNotFoundError(NotFoundError):
    """Account not found"""
    error_code = "ACCOUNT_NOT_FOUND"


class AttachmentNotFoundError(NotFoundError):
    """Attachment not found"""
    error_code = "ATTACHMENT_NOT_FOUND"


# Conflict Errors
class ConflictError(DomainError):
    """Uniqueness or state-blocking violation"""
    error_code = "CONFLICT"
    http_status = 409


class ConcurrencyError(ConflictError):
    """Optimistic concurrency conflict"""
    error_code = "CONCURRENCY_CONFLICT"


class AlreadyExistsError(ConflictError):
    """Resource already exists"""
    error_code = "ALREADY_EXISTS"


class CategoryInUseError(ConflictError):
    """Category still has unresolved tickets"""
    error_code = "CATEGORY_IN_USE"


# Infrastructure Errors
class UnexpectedError(DomainError):
    """Persistence or infrastructure failure"""
    error_code = "INTERNAL_ERROR"
    http_status = 500


class EmailSendError(DomainError):
    """SMTP delivery failed"""
    error_code = "EMAIL_SEND_ERROR"
    http_status = 502


# Attachment Errors
class AttachmentError(ValidationError):
    """Attachment related error"""
    error_code = "ATTACHMENT_ERROR"


class AttachmentTooLargeError(AttachmentError):
    """Attachment exceeds max size"""
    error_code = "ATTACHMENT_TOO_LARGE"
    http_status = 413


class InvalidFileTypeError(AttachmentError):
    """File type not allowed"""
    error_code = "INVALID_FILE_TYPE"


class TooManyAttachmentsError(AttachmentError):
    """More files than a ticket accepts"""
    error_code = "TOO_MANY_ATTACHMENTS"
