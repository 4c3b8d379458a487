"""
storage/files.py -- Where uploaded source files go.

Two backends share one interface (save(data, filename, mime_type) -> StoredFile):

  LocalFileStorage   Writes under a directory on disk. api/main.py mounts the
                     directory as static files at upload_base_url, so the
                     returned URL is directly fetchable from this server.

  CloudinaryStorage  Uploads the file to Cloudinary as a raw resource with
                     the cloudinary SDK. Only used when all three Cloudinary
                     credentials are configured.

build_storage(settings) picks the backend once at startup; route handlers
get it from app.state.storage and never branch on which one it is.

validate_pdf_upload() runs before any backend is called. Only PDFs are
accepted: the declared content type must be application/pdf and the bytes
must start with %PDF.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from uuid import uuid4

import cloudinary.uploader
from cloudinary.exceptions import Error as CloudinaryError

from core.config import Settings

logger = logging.getLogger("vaultroom.storage")

PDF_MIME_TYPE = "application/pdf"
_PDF_MAGIC = b"%PDF"

UPLOAD_TIMEOUT_SECONDS = 30


class StorageError(Exception):
    """The storage backend failed to persist a file."""


class InvalidUploadError(ValueError):
    """The uploaded file was rejected before reaching a backend."""


@dataclass
class StoredFile:
    """Result of a successful save: public URL plus the backend's key for the file."""

    url: str
    key: str
    size: int
    mime_type: str


def validate_pdf_upload(data: bytes, content_type: Optional[str], max_bytes: int) -> None:
    """Raise InvalidUploadError unless data is a non-empty PDF within max_bytes."""
    if not data:
        raise InvalidUploadError("No file provided")
    if (content_type or "").split(";")[0].strip().lower() != PDF_MIME_TYPE:
        raise InvalidUploadError("Only PDF files are allowed")
    if len(data) > max_bytes:
        raise InvalidUploadError(f"File size must be less than {max_bytes // (1024 * 1024)}MB")
    if not data.startswith(_PDF_MAGIC):
        raise InvalidUploadError("Only PDF files are allowed")


class LocalFileStorage:
    """Store files under root/<folder>/<random>.pdf and serve them from base_url."""

    def __init__(self, root: str | Path, base_url: str = "/uploads") -> None:
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")
        self.root.mkdir(parents=True, exist_ok=True)

    def save(self, data: bytes, filename: str, mime_type: str, folder: str = "") -> StoredFile:
        # The client filename is never used on disk; only its extension survives.
        suffix = Path(filename or "").suffix.lower() or ".pdf"
        key = f"{folder}/{uuid4().hex}{suffix}" if folder else f"{uuid4().hex}{suffix}"
        path = self.root / key
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as exc:
            logger.error("Local storage write failed for %s: %s", key, exc)
            raise StorageError("Failed to store file") from exc
        logger.info("Stored %d bytes at %s", len(data), path)
        return StoredFile(url=f"{self.base_url}/{key}", key=key, size=len(data), mime_type=mime_type)


class CloudinaryStorage:
    """Upload files to Cloudinary as raw resources through the cloudinary SDK.

    Credentials are passed on each call instead of through the SDK's global
    cloudinary.config(), so two instances never share configuration.
    """

    def __init__(self, cloud_name: str, api_key: str, api_secret: str, folder: str = "vaultroom-uploads") -> None:
        self.cloud_name = cloud_name
        self.api_key = api_key
        self.api_secret = api_secret
        self.folder = folder

    def save(self, data: bytes, filename: str, mime_type: str, folder: str = "") -> StoredFile:
        target_folder = f"{self.folder}/{folder}" if folder else self.folder
        try:
            result = cloudinary.uploader.upload(
                io.BytesIO(data),
                resource_type="raw",
                folder=target_folder,
                filename=filename,
                cloud_name=self.cloud_name,
                api_key=self.api_key,
                api_secret=self.api_secret,
                timeout=UPLOAD_TIMEOUT_SECONDS,
            )
        except CloudinaryError as exc:
            logger.error("Cloudinary upload failed: %s", exc)
            raise StorageError("Failed to upload file") from exc
        return StoredFile(
            url=result["secure_url"],
            key=result["public_id"],
            size=int(result.get("bytes", len(data))),
            mime_type=mime_type,
        )


def build_storage(settings: Settings) -> LocalFileStorage | CloudinaryStorage:
    """Return the configured storage backend."""
    if settings.cloudinary_enabled:
        logger.info("File storage: Cloudinary (cloud=%s)", settings.cloudinary_cloud_name)
        return CloudinaryStorage(
            settings.cloudinary_cloud_name,
            settings.cloudinary_api_key,
            settings.cloudinary_api_secret,
            folder=settings.cloudinary_folder,
        )
    logger.info("File storage: local directory %s", settings.upload_dir)
    return LocalFileStorage(settings.upload_dir, settings.upload_base_url)
