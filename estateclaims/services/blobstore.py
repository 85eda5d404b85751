"""
Blob storage collaborator.
The workflow only stores and passes locators; put() must be confirmed before a record points at it.
"""

from __future__ import annotations

import logging
import os
import re
from abc import ABC, abstractmethod
from pathlib import Path

from estateclaims.errors import ExternalServiceError

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def safe_file_name(file_name: str) -> str:
    """Collapse path separators and other unsafe characters in a client-supplied file name."""
    cleaned = _UNSAFE_CHARS.sub("_", file_name.strip()).strip("._")
    return cleaned or "file"


def document_blob_path(
    user_id: str, session_id: str, doc_type: str, epoch_ms: int, document_id: str, file_name: str
) -> str:
    # document_id keeps same-millisecond uploads of one file name apart
    return f"{user_id}/{session_id}/{doc_type}_{epoch_ms}_{document_id}_{safe_file_name(file_name)}"


def receipt_blob_path(user_id: str, asset_claim_id: str, file_name: str) -> str:
    return f"{user_id}/receipts/{asset_claim_id}_{safe_file_name(file_name)}"


class BlobStore(ABC):
    @abstractmethod
    def put(self, path: str, data: bytes) -> str:
        """Persist data under path and return its locator once the write is confirmed."""

    @abstractmethod
    def get(self, locator: str) -> bytes:
        ...


class LocalBlobStore(BlobStore):
    """
    Filesystem-backed blob store rooted at root_dir.
    Writes go to a temporary file that is renamed into place, then the size is checked.
    """

    def __init__(self, root_dir: str | Path = "data/blobs"):
        self.root_dir = Path(root_dir)
        self.root_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Initialized LocalBlobStore: root_dir={self.root_dir}")

    def _resolve(self, path: str) -> Path:
        target = (self.root_dir / path).resolve()
        root = self.root_dir.resolve()
        if root != target and root not in target.parents:
            raise ExternalServiceError(f"Blob path escapes storage root: {path}", {"path": path})
        return target

    def put(self, path: str, data: bytes) -> str:
        target = self._resolve(path)
        tmp = target.with_name(target.name + ".part")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, target)
        except OSError as e:
            raise ExternalServiceError(f"Blob write failed for {path}: {e}", {"path": path}) from e
        if target.stat().st_size != len(data):
            raise ExternalServiceError(f"Blob write not confirmed for {path}", {"path": path})
        logger.debug(f"Stored blob {path} ({len(data)} bytes)")
        return path

    def get(self, locator: str) -> bytes:
        target = self._resolve(locator)
        try:
            return target.read_bytes()
        except OSError as e:
            raise ExternalServiceError(f"Blob read failed for {locator}: {e}", {"locator": locator}) from e
