"""Attachment Service - Validation and local blob storage for ticket files"""
import os
import shutil
from typing import Iterator, List, Optional, Tuple
from fastapi import UploadFile
from pydantic import BaseModel

from ..domain.models import Ticket, TicketAttachment
from ..domain.errors import (
    AttachmentTooLargeError, InvalidFileTypeError, TooManyAttachmentsError,
    AttachmentNotFoundError
)
from ..config.settings import settings
from ..utils.idgen import generate_attachment_id
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)


class UploadInput(BaseModel):
    """A received file, fully read into memory"""
    filename: str
    content_type: str
    content: bytes

    @property
    def size_bytes(self) -> int:
        return len(self.content)

    @property
    def extension(self) -> str:
        return os.path.splitext(self.filename)[1].lower().lstrip(".")


class LocalBlobStore:
    """Stores blobs under a base directory, addressed by relative path"""

    def __init__(self, base_path: Optional[str] = None):
        self.base_path = base_path or settings.attachments_base_path

    def _full_path(self, reference: str) -> str:
        full_path = os.path.abspath(os.path.join(self.base_path, reference))
        if not full_path.startswith(os.path.abspath(self.base_path) + os.sep):
            raise AttachmentNotFoundError("Attachment file not found")
        return full_path

    def store(self, folder: str, filename: str, content: bytes) -> Tuple[str, int]:
        """Write bytes and return (reference, size)"""
        directory = os.path.join(self.base_path, folder)
        os.makedirs(directory, exist_ok=True)
        reference = os.path.join(folder, filename)
        with open(self._full_path(reference), "wb") as f:
            f.write(content)
        return reference, len(content)

    def exists(self, reference: str) -> bool:
        return os.path.isfile(self._full_path(reference))

    def open(self, reference: str, chunk_size: int = 1024 * 1024) -> Iterator[bytes]:
        """Yield the blob in chunks for streaming"""
        with open(self._full_path(reference), "rb") as f:
            while chunk := f.read(chunk_size):
                yield chunk

    def delete_folder(self, folder: str) -> None:
        shutil.rmtree(os.path.join(self.base_path, folder), ignore_errors=True)


class AttachmentService:
    """Service for attachment operations"""

    def __init__(self, blob_store: Optional[LocalBlobStore] = None):
        self.blob_store = blob_store or LocalBlobStore()

    async def read_uploads(self, files: List[UploadFile]) -> List[UploadInput]:
        """Read multipart files into memory, skipping empty form parts"""
        uploads = []
        for file in files:
            if not file.filename:
                continue
            content = await file.read()
            uploads.append(UploadInput(
                filename=file.filename,
                content_type=file.content_type or "application/octet-stream",
                content=content
            ))
        return uploads

    def validate_uploads(self, uploads: List[UploadInput]) -> None:
        """
        Check count, size and type of every file before anything is stored

        Both the extension and the content type must be allow-listed.
        """
        if len(uploads) > settings.attachments_max_files:
            raise TooManyAttachmentsError(
                f"A ticket accepts at most {settings.attachments_max_files} files",
                details={"count": len(uploads), "max_files": settings.attachments_max_files}
            )

        for upload in uploads:
            if (upload.extension not in settings.allowed_extensions_list
                    or upload.content_type not in settings.allowed_mime_types_list):
                raise InvalidFileTypeError(
                    "Invalid file type. Only images, documents, and archives are allowed.",
                    details={
                        "filename": upload.filename,
                        "mime_type": upload.content_type,
                        "allowed_extensions": settings.allowed_extensions_list
                    }
                )
            if upload.size_bytes > settings.attachments_max_bytes:
                raise AttachmentTooLargeError(
                    f"File exceeds maximum size of {settings.attachments_max_mb}MB",
                    details={
                        "filename": upload.filename,
                        "size_bytes": upload.size_bytes,
                        "max_bytes": settings.attachments_max_bytes
                    }
                )

    def store_uploads(self, ticket_id: str, uploads: List[UploadInput]) -> List[TicketAttachment]:
        """Store validated uploads under the ticket's folder"""
        attachments = []
        try:
            for upload in uploads:
                attachment_id = generate_attachment_id()
                stored_filename = f"{attachment_id}_{self._sanitize_filename(upload.filename)}"
                reference, size = self.blob_store.store(ticket_id, stored_filename, upload.content)

                attachments.append(TicketAttachment(
                    attachment_id=attachment_id,
                    original_filename=upload.filename,
                    stored_filename=stored_filename,
                    storage_path=reference,
                    size_bytes=size,
                    mime_type=upload.content_type,
                    uploaded_at=utc_now()
                ))
        except OSError as e:
            logger.error(f"Failed to store attachments: {e}", extra={"ticket_id": ticket_id})
            self.discard(ticket_id)
            raise

        if attachments:
            logger.info(
                f"Stored {len(attachments)} attachments",
                extra={"ticket_id": ticket_id}
            )
        return attachments

    def discard(self, ticket_id: str) -> None:
        """Remove every stored blob for a ticket that was never persisted"""
        self.blob_store.delete_folder(ticket_id)

    def _sanitize_filename(self, filename: str) -> str:
        """Sanitize filename for storage"""
        safe = os.path.basename(filename.replace("\\", "/")).replace("..", "_")
        if len(safe) > 100:
            name, ext = os.path.splitext(safe)
            safe = name[:96] + ext
        return safe or "unnamed"

    def open_attachment(self, ticket: Ticket, attachment_id: str) -> Tuple[TicketAttachment, Iterator[bytes]]:
        """
        Get attachment metadata and a chunk iterator for download

        Visibility is checked by the caller against the ticket.
        """
        attachment = ticket.find_attachment(attachment_id)
        if not attachment:
            raise AttachmentNotFoundError(
                f"Attachment {attachment_id} not found",
                details={"ticket_id": ticket.ticket_id, "attachment_id": attachment_id}
            )

        if not self.blob_store.exists(attachment.storage_path):
            raise AttachmentNotFoundError(
                "Attachment file not found",
                details={"attachment_id": attachment_id}
            )

        return attachment, self.blob_store.open(attachment.storage_path)
