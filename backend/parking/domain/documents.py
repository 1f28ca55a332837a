from __future__ import annotations

from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Optional, Protocol

from .errors import InvalidInputError

PDF_SIGNATURE = b"%PDF"


@dataclass(frozen=True)
class StoredDocument:
    file_id: str
    file_name: str
    file_size: int


@dataclass(frozen=True)
class DocumentUpload:
    content: bytes
    file_name: str


class DocumentStorage(Protocol):
    async def upload_document(
        self,
        content: bytes,
        file_name: str,
        user_id: int,
        reservation_id: int,
    ) -> StoredDocument: ...

    async def delete_document(self, file_id: str) -> None: ...

    async def find_document(self, file_id: str, user_id: int) -> Optional[StoredDocument]: ...


def is_safe_file_id(file_id: str) -> bool:
    """True for a relative, slash-separated id without parent hops, empty parts or a drive prefix."""
    if not file_id or "\x00" in file_id or "\\" in file_id:
        return False
    if PurePosixPath(file_id).is_absolute() or ":" in file_id.split("/", 1)[0]:
        return False
    return all(part not in ("", ".", "..") for part in file_id.split("/"))


def validate_pdf(upload: DocumentUpload, *, max_bytes: int) -> None:
    """Reject uploads that are too large, not named .pdf, or lack the PDF signature."""
    if len(upload.content) > max_bytes:
        raise InvalidInputError("document exceeds size limit", reason="DOCUMENT_TOO_LARGE")
    if not upload.file_name.lower().endswith(".pdf"):
        raise InvalidInputError("only PDF files are allowed", reason="DOCUMENT_NOT_PDF")
    if not upload.content.startswith(PDF_SIGNATURE):
        raise InvalidInputError("invalid PDF file format", reason="DOCUMENT_NOT_PDF")
