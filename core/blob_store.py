"""
Blob storage for evidence artifacts.

The pipeline only depends on the ``BlobStore`` protocol: store bytes under an
owner/job scoped key and get back a publicly resolvable locator. Any failure
surfaces as ``StoreFailure`` so that no evidence record is written without a
blob behind it.

Example usage:
    from core.blob_store import LocalBlobStore

    store = LocalBlobStore(Path("storage/evidence-files"), "http://localhost:8000/evidence-files")
    url = store.store(owner_id, job_id, "roof.jpg", content, "image/jpeg")
"""

import os
import time
from pathlib import Path
from typing import Optional, Protocol
from uuid import UUID

from core import config
from core.errors import StoreFailure, ValidationError
from core.logging import get_logger

logger = get_logger(__name__)


class BlobStore(Protocol):
    def store(self, owner_id: UUID, job_id: UUID, filename: str, content: bytes, content_type: str) -> str:
        ...


def sanitize_filename(filename: str) -> str:
    """Reduce a client-supplied name to a safe basename."""
    name = os.path.basename(filename.replace("\\", "/")).strip()
    if name in ("", ".", ".."):
        raise ValidationError("Invalid filename", fields=["file"])
    return name


def build_blob_key(owner_id: UUID, job_id: UUID, filename: str, now_ms: Optional[int] = None) -> str:
    """
    Compose the storage key ``{owner}/{job}/{epoch_ms}-{filename}``.

    Args:
        owner_id: Owning user
        job_id: Job the artifact belongs to
        filename: Client filename (sanitized here)
        now_ms: Milliseconds since epoch; current time when omitted
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{owner_id}/{job_id}/{now_ms}-{sanitize_filename(filename)}"


class LocalBlobStore:
    """
    Filesystem-backed blob store.

    Files are written beneath ``root_dir`` and served by the application
    under ``public_base_url``. Keys are never overwritten.
    """

    def __init__(self, root_dir: Path, public_base_url: str):
        self.root_dir = Path(root_dir)
        self.public_base_url = public_base_url.rstrip("/")

    def store(self, owner_id: UUID, job_id: UUID, filename: str, content: bytes, content_type: str) -> str:
        key = build_blob_key(owner_id, job_id, filename)
        target = self.root_dir / key

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            # "xb" refuses to overwrite an existing blob
            with open(target, "xb") as f:
                f.write(content)
        except FileExistsError:
            logger.error(f"Blob already exists: {key}")
            raise StoreFailure("Failed to upload file")
        except OSError as e:
            logger.error(f"Failed to write blob {key}: {e}")
            raise StoreFailure("Failed to upload file") from e

        logger.info(
            "Stored evidence blob",
            extra={"blob_key": key, "size_bytes": len(content), "content_type": content_type},
        )
        return f"{self.public_base_url}/{key}"


def get_blob_store() -> BlobStore:
    """FastAPI dependency returning the configured blob store."""
    return LocalBlobStore(config.BLOB_STORAGE_DIR, f"{config.APP_URL}{config.BLOB_PUBLIC_PATH}")
