"""Attachment upload adapters for images, documents and voice recordings.

Each adapter validates the file, hands the bytes to a blob store and returns
the attachment descriptor stored on the message.
"""

from __future__ import annotations

import io
import logging
import os
import secrets
import time
import wave
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

import requests

from api_client import DatastoreClient
from models import DocumentAttachment, ImageAttachment, VoiceAttachment


logger = logging.getLogger(__name__)

MB = 1024 * 1024
MAX_IMAGE_BYTES = 10 * MB
MAX_DOCUMENT_BYTES = 50 * MB
MAX_VOICE_BYTES = 50 * MB

IMAGE_BUCKET = "chat-images"
DOCUMENT_BUCKET = "chat-documents"
VOICE_BUCKET = DOCUMENT_BUCKET
SIGNED_URL_SECONDS = 3600

ALLOWED_DOCUMENT_TYPES: tuple[str, ...] = (
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "text/plain",
    "text/csv",
    "application/json",
    "application/xml",
    "text/xml",
)

_DOCUMENT_ICONS = {
    "application/pdf": "📄",
    "application/msword": "📝",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "📝",
    "application/vnd.ms-excel": "📊",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": "📊",
    "application/vnd.ms-powerpoint": "📊",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation": "📊",
    "text/plain": "📄",
    "text/csv": "📋",
    "application/json": "🗂️",
    "application/xml": "🗂️",
    "text/xml": "🗂️",
}


class UploadError(ValueError):
    """Raised with a user-facing reason when an upload is refused or fails."""


# Blob stores --------------------------------------------------------------
@dataclass
class RemoteBlobStore:
    """Stores blobs in the datastore's object storage buckets."""

    client: DatastoreClient

    def store(self, bucket: str, path: str, data: bytes, content_type: str) -> str:
        return self.client.upload_object(bucket, path, data, content_type=content_type)

    def public_url(self, bucket: str, path: str) -> str:
        return self.client.public_url(bucket, path)

    def signed_url(self, bucket: str, path: str, expires_in: int) -> str:
        return self.client.create_signed_url(bucket, path, expires_in)

    def remove(self, bucket: str, paths: Iterable[str]) -> None:
        self.client.remove_objects(bucket, list(paths))


@dataclass
class LocalBlobStore:
    """Writes blobs below ``root/<bucket>/`` and serves ``file://`` URLs."""

    root: Path

    def __post_init__(self) -> None:
        self.root = Path(self.root)

    def _target(self, bucket: str, path: str) -> Path:
        target = (self.root / bucket / path).resolve()
        if not str(target).startswith(str(self.root.resolve())):
            raise ValueError(f"Refusing to store outside {self.root}: {path}")
        return target

    def store(self, bucket: str, path: str, data: bytes, content_type: str) -> str:
        target = self._target(bucket, path)
        os.makedirs(target.parent, exist_ok=True)
        target.write_bytes(data)
        return path

    def public_url(self, bucket: str, path: str) -> str:
        return self._target(bucket, path).as_uri()

    def signed_url(self, bucket: str, path: str, expires_in: int) -> str:
        return self.public_url(bucket, path)

    def remove(self, bucket: str, paths: Iterable[str]) -> None:
        for path in paths:
            target = self._target(bucket, path)
            if target.exists():
                target.unlink()


# Helpers -------------------------------------------------------------------
def _unique_name(extension: str, *, prefix: str = "") -> str:
    token = secrets.token_hex(6)
    return f"{prefix}{int(time.time() * 1000)}-{token}.{extension}"


def _extension(filename: str, default: str = "bin") -> str:
    suffix = Path(filename or "").suffix.lstrip(".").lower()
    return suffix or default


def _store(blob_store, bucket: str, path: str, data: bytes, content_type: str) -> str:
    try:
        return blob_store.store(bucket, path, data, content_type)
    except (OSError, ValueError, requests.RequestException) as exc:
        logger.warning("Upload to %s/%s failed: %s", bucket, path, exc)
        raise UploadError(f"Upload failed: {exc}") from exc


def format_size(size: int) -> str:
    """Render a byte count in megabytes with two decimals."""

    return f"{size / MB:.2f} MB"


def document_icon(mime_type: str | None) -> str:
    return _DOCUMENT_ICONS.get(mime_type or "", "📎")


def wav_duration(data: bytes) -> float:
    """Return the duration in seconds of a WAV recording, or ``0.0``."""

    try:
        with wave.open(io.BytesIO(data), "rb") as reader:
            frames = reader.getnframes()
            rate = reader.getframerate()
    except (wave.Error, EOFError):
        return 0.0
    return frames / float(rate) if rate else 0.0


# Adapters ------------------------------------------------------------------
def upload_image(
    data: bytes,
    filename: str,
    content_type: str | None,
    *,
    blob_store,
) -> ImageAttachment:
    if not (content_type or "").startswith("image/"):
        raise UploadError("Please select an image file")
    if len(data) > MAX_IMAGE_BYTES:
        raise UploadError("Image size must be less than 10MB")

    path = f"uploads/{_unique_name(_extension(filename, 'png'))}"
    stored = _store(blob_store, IMAGE_BUCKET, path, data, content_type or "image/png")
    return ImageAttachment(
        url=blob_store.public_url(IMAGE_BUCKET, stored),
        filename=filename,
        size=len(data),
    )


def upload_document(
    data: bytes,
    filename: str,
    content_type: str | None,
    *,
    blob_store,
) -> DocumentAttachment:
    if content_type not in ALLOWED_DOCUMENT_TYPES:
        raise UploadError(
            "Please select a valid document file "
            "(PDF, DOC, DOCX, XLS, XLSX, PPT, PPTX, TXT, CSV, JSON, XML)"
        )
    if len(data) > MAX_DOCUMENT_BYTES:
        raise UploadError("Document size must be less than 50MB")

    path = f"uploads/{_unique_name(_extension(filename))}"
    stored = _store(blob_store, DOCUMENT_BUCKET, path, data, content_type)
    try:
        url = blob_store.signed_url(DOCUMENT_BUCKET, stored, SIGNED_URL_SECONDS)
    except (ValueError, requests.RequestException) as exc:
        raise UploadError(f"Failed to generate download URL: {exc}") from exc
    return DocumentAttachment(
        url=url,
        filename=filename,
        size=len(data),
        mime_type=content_type,
    )


def upload_voice(
    data: bytes,
    duration: float,
    *,
    blob_store,
    extension: str = "webm",
) -> VoiceAttachment:
    if len(data) > MAX_VOICE_BYTES:
        raise UploadError("Voice message size must be less than 50MB")

    filename = _unique_name(extension, prefix="voice-")
    path = f"uploads/{filename}"
    stored = _store(blob_store, VOICE_BUCKET, path, data, f"audio/{extension}")
    return VoiceAttachment(
        url=blob_store.public_url(VOICE_BUCKET, stored),
        filename=filename,
        size=len(data),
        duration=float(duration),
    )


def delete_upload(path: str, *, blob_store, bucket: str) -> None:
    try:
        blob_store.remove(bucket, [path])
    except (OSError, ValueError, requests.RequestException) as exc:
        raise UploadError(f"Delete failed: {exc}") from exc


__all__ = [
    "ALLOWED_DOCUMENT_TYPES",
    "DOCUMENT_BUCKET",
    "IMAGE_BUCKET",
    "LocalBlobStore",
    "MAX_DOCUMENT_BYTES",
    "MAX_IMAGE_BYTES",
    "MAX_VOICE_BYTES",
    "RemoteBlobStore",
    "UploadError",
    "VOICE_BUCKET",
    "delete_upload",
    "document_icon",
    "format_size",
    "upload_document",
    "upload_image",
    "upload_voice",
    "wav_duration",
]
