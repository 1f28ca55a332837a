from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from ..domain.documents import DocumentStorage, StoredDocument, is_safe_file_id
from ..domain.errors import DocumentStorageError

logger = logging.getLogger(__name__)


def unique_file_name(original_name: str, user_id: int, reservation_id: int) -> str:
    timestamp = int(datetime.now(timezone.utc).timestamp() * 1000)
    extension = ".pdf" if original_name.lower().endswith(".pdf") else ""
    return f"schedule_{user_id}_{reservation_id}_{timestamp}{extension}"


class LocalDocumentStorage(DocumentStorage):
    """Stores documents as files under ``root/<user_id>/``; the file id is the relative path."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    async def upload_document(
        self,
        content: bytes,
        file_name: str,
        user_id: int,
        reservation_id: int,
    ) -> StoredDocument:
        stored_name = unique_file_name(file_name, user_id, reservation_id)
        file_id = f"{user_id}/{uuid.uuid4().hex}_{stored_name}"
        target = self._resolve(file_id)
        try:
            await asyncio.to_thread(self._write, target, content)
        except OSError as exc:
            raise DocumentStorageError(f"failed to store document {stored_name}") from exc
        logger.info("stored document %s (%d bytes)", file_id, len(content))
        return StoredDocument(file_id=file_id, file_name=stored_name, file_size=len(content))

    async def delete_document(self, file_id: str) -> None:
        target = self._resolve(file_id)
        try:
            await asyncio.to_thread(target.unlink, True)
        except OSError as exc:
            raise DocumentStorageError(f"failed to delete document {file_id}") from exc

    async def find_document(self, file_id: str, user_id: int) -> Optional[StoredDocument]:
        if not is_safe_file_id(file_id) or not file_id.startswith(f"{user_id}/"):
            return None
        target = self._resolve(file_id)
        try:
            size = await asyncio.to_thread(self._size, target)
        except OSError as exc:
            raise DocumentStorageError(f"failed to read document {file_id}") from exc
        if size is None:
            return None
        return StoredDocument(file_id=file_id, file_name=target.name, file_size=size)

    def _resolve(self, file_id: str) -> Path:
        root = self.root.resolve()
        target = (root / file_id).resolve()
        if not is_safe_file_id(file_id) or not target.is_relative_to(root):
            raise DocumentStorageError(f"document id {file_id!r} is outside the document root")
        return target

    @staticmethod
    def _size(target: Path) -> Optional[int]:
        return target.stat().st_size if target.is_file() else None

    @staticmethod
    def _write(target: Path, content: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)
