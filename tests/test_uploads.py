from __future__ import annotations

import io
import wave

import pytest

from services.uploads import (
    DOCUMENT_BUCKET,
    IMAGE_BUCKET,
    MAX_IMAGE_BYTES,
    LocalBlobStore,
    RemoteBlobStore,
    UploadError,
    delete_upload,
    format_size,
    upload_document,
    upload_image,
    upload_voice,
    wav_duration,
)


class RecordingClient:
    def __init__(self) -> None:
        self.uploads: list[tuple] = []
        self.removed: list[tuple] = []

    def upload_object(self, bucket, path, data, *, content_type):
        self.uploads.append((bucket, path, data, content_type))
        return path

    def public_url(self, bucket, path):
        return f"https://db.example/public/{bucket}/{path}"

    def create_signed_url(self, bucket, path, expires_in):
        return f"https://db.example/sign/{bucket}/{path}?ttl={expires_in}"

    def remove_objects(self, bucket, paths):
        self.removed.append((bucket, paths))


def _wav(seconds: float, rate: int = 8000) -> bytes:
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as writer:
        writer.setnchannels(1)
        writer.setsampwidth(2)
        writer.setframerate(rate)
        writer.writeframes(b"\x00\x00" * int(seconds * rate))
    return buffer.getvalue()


def test_upload_image_writes_local_file(tmp_path) -> None:
    store = LocalBlobStore(tmp_path)
    attachment = upload_image(b"img", "Cat.PNG", "image/png", blob_store=store)

    assert attachment.filename == "Cat.PNG"
    assert attachment.size == 3
    assert attachment.url.startswith("file://")
    stored = list((tmp_path / IMAGE_BUCKET / "uploads").iterdir())
    assert len(stored) == 1
    assert stored[0].suffix == ".png"
    assert stored[0].read_bytes() == b"img"


def test_upload_image_validation(tmp_path) -> None:
    store = LocalBlobStore(tmp_path)
    with pytest.raises(UploadError, match="Please select an image file"):
        upload_image(b"x", "a.txt", "text/plain", blob_store=store)
    with pytest.raises(UploadError, match="less than 10MB"):
        upload_image(b"x" * (MAX_IMAGE_BYTES + 1), "a.png", "image/png", blob_store=store)


def test_upload_document_uses_signed_url() -> None:
    client = RecordingClient()
    attachment = upload_document(
        b"%PDF",
        "report.pdf",
        "application/pdf",
        blob_store=RemoteBlobStore(client),
    )

    bucket, path, data, content_type = client.uploads[0]
    assert bucket == DOCUMENT_BUCKET
    assert path.startswith("uploads/") and path.endswith(".pdf")
    assert content_type == "application/pdf"
    assert attachment.url == f"https://db.example/sign/{DOCUMENT_BUCKET}/{path}?ttl=3600"
    assert attachment.mime_type == "application/pdf"


def test_upload_document_rejects_unknown_types(tmp_path) -> None:
    with pytest.raises(UploadError, match="valid document"):
        upload_document(b"x", "a.exe", "application/x-msdownload", blob_store=LocalBlobStore(tmp_path))


def test_upload_voice_names_recording(tmp_path) -> None:
    data = _wav(1.5)
    attachment = upload_voice(data, wav_duration(data), blob_store=LocalBlobStore(tmp_path), extension="wav")

    assert attachment.filename.startswith("voice-")
    assert attachment.filename.endswith(".wav")
    assert attachment.duration == pytest.approx(1.5)
    assert attachment.placeholder == "[Voice message: 2s]"


def test_storage_failure_becomes_upload_error(tmp_path) -> None:
    class Broken:
        def store(self, *args):
            raise OSError("read-only")

    with pytest.raises(UploadError, match="Upload failed"):
        upload_image(b"x", "a.png", "image/png", blob_store=Broken())


def test_delete_upload(tmp_path) -> None:
    store = LocalBlobStore(tmp_path)
    store.store(IMAGE_BUCKET, "uploads/a.png", b"x", "image/png")
    delete_upload("uploads/a.png", blob_store=store, bucket=IMAGE_BUCKET)

    assert not (tmp_path / IMAGE_BUCKET / "uploads" / "a.png").exists()
    client = RecordingClient()
    delete_upload("uploads/b.png", blob_store=RemoteBlobStore(client), bucket=IMAGE_BUCKET)
    assert client.removed == [(IMAGE_BUCKET, ["uploads/b.png"])]


def test_local_store_refuses_escaping_paths(tmp_path) -> None:
    with pytest.raises(ValueError):
        LocalBlobStore(tmp_path / "root").store(IMAGE_BUCKET, "../../escape.png", b"x", "image/png")


def test_helpers() -> None:
    assert format_size(1536 * 1024) == "1.50 MB"
    assert wav_duration(b"not audio") == 0.0
