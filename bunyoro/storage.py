"""Blob storage for uploaded media.

Uploads go to Cloudinary when ``CLOUDINARY_URL`` is configured and to
``UPLOAD_DIR`` on local disk otherwise. Either way the caller gets a
:class:`StoredBlob` whose ``url`` is the opaque reference stored in the
database.
"""

import logging
import mimetypes
import os
import secrets
import time
from dataclasses import dataclass

import cloudinary
import cloudinary.exceptions
import cloudinary.uploader
from fastapi import UploadFile

from .core import Settings, get_settings
from .exceptions import StorageUnavailable, ValidationError

logger = logging.getLogger(__name__)

#: Accepted content types per upload kind
ALLOWED_TYPES = {
    "audio": {"audio/mpeg", "audio/mp3", "audio/wav", "audio/x-wav"},
    "images": {"image/jpeg", "image/png"},
    "documents": {"application/pdf", "image/jpeg", "image/png"},
    "videos": {"video/mp4", "video/webm"},
}

# Cloudinary files audio under the "video" resource type
CLOUDINARY_RESOURCE_TYPES = {
    "audio": "video",
    "images": "image",
    "documents": "auto",
    "videos": "video",
}


@dataclass
class StoredBlob:
    """Reference to a stored file."""

    url: str
    format: str
    size: int
    #: Cloudinary public id, for remote uploads
    public_id: str | None = None
    resource_type: str | None = None
    #: Path on disk, for local uploads
    path: str | None = None


def configure_storage(settings: Settings) -> None:
    """Point the Cloudinary client at the configured account, if any."""
    if settings.CLOUDINARY_URL:
        cloudinary.config(cloudinary_url=settings.CLOUDINARY_URL)
        logger.info("Uploads are stored on Cloudinary")
    else:
        os.makedirs(settings.UPLOAD_DIR, exist_ok=True)
        logger.info("Uploads are stored under %s", settings.UPLOAD_DIR)


def _extension(file: UploadFile) -> str:
    ext = os.path.splitext(file.filename or "")[1].lower()
    if not ext and file.content_type:
        ext = mimetypes.guess_extension(file.content_type) or ""
    return ext


def unique_name(kind: str, ext: str) -> str:
    """Build a collision-resistant file name such as ``audio-1700000000000-42.mp3``."""
    return f"{kind}-{int(time.time() * 1000)}-{secrets.randbelow(10**9)}{ext}"


def save_upload(
    file: UploadFile, kind: str, settings: Settings | None = None
) -> StoredBlob:
    """
    Validate and store an uploaded file.

    Args:
        file (UploadFile): Uploaded file.
        kind (str): One of ``audio``, ``images``, ``documents``, ``videos``.
        settings (Settings | None): Settings to use; defaults to the cached ones.

    Raises:
        ValidationError: Unsupported content type, empty file, or a file
            larger than ``MAX_UPLOAD_BYTES``.
        StorageUnavailable: If the remote store rejects the upload.

    Returns:
        StoredBlob: Reference, format and size of the stored file.
    """
    settings = settings or get_settings()
    allowed = ALLOWED_TYPES.get(kind)
    if allowed is None:
        raise ValidationError(f"Unknown upload kind: {kind}")
    if file.content_type not in allowed:
        raise ValidationError(
            f"Unsupported file type {file.content_type!r} for {kind}"
        )

    data = file.file.read(settings.MAX_UPLOAD_BYTES + 1)
    if not data:
        raise ValidationError("Uploaded file is empty")
    if len(data) > settings.MAX_UPLOAD_BYTES:
        raise ValidationError(
            f"File exceeds the {settings.MAX_UPLOAD_BYTES} byte upload limit"
        )

    ext = _extension(file)
    name = unique_name(kind, ext)
    file_format = ext.lstrip(".")[:10] or "bin"

    if settings.CLOUDINARY_URL:
        return _upload_to_cloudinary(data, kind, name, file_format)
    return _save_locally(data, kind, name, file_format, settings)


def _upload_to_cloudinary(
    data: bytes, kind: str, name: str, file_format: str
) -> StoredBlob:
    try:
        result = cloudinary.uploader.upload(
            data,
            folder=f"bunyoro/{kind}",
            public_id=os.path.splitext(name)[0],
            resource_type=CLOUDINARY_RESOURCE_TYPES[kind],
        )
    except cloudinary.exceptions.Error as exc:
        logger.error("Cloudinary upload failed: %s", exc)
        raise StorageUnavailable("Media storage is unavailable") from exc

    url = result.get("secure_url")
    if not url:
        raise StorageUnavailable("Media storage returned no URL")
    return StoredBlob(
        url=url,
        format=result.get("format") or file_format,
        size=result.get("bytes") or len(data),
        public_id=result.get("public_id"),
        resource_type=CLOUDINARY_RESOURCE_TYPES[kind],
    )


def _save_locally(
    data: bytes, kind: str, name: str, file_format: str, settings: Settings
) -> StoredBlob:
    directory = os.path.join(settings.UPLOAD_DIR, kind)
    os.makedirs(directory, exist_ok=True)
    path = os.path.join(directory, name)
    with open(path, "wb") as fh:
        fh.write(data)
    logger.debug("Stored %s upload %s (%d bytes)", kind, name, len(data))
    return StoredBlob(
        url=f"/uploads/{kind}/{name}", format=file_format, size=len(data), path=path
    )


def discard_upload(blob: StoredBlob) -> None:
    """Remove a stored file that no database row will reference."""
    if blob.path:
        try:
            os.remove(blob.path)
        except FileNotFoundError:
            pass
    elif blob.public_id:
        try:
            cloudinary.uploader.destroy(
                blob.public_id,
                # "auto" uploads of documents land under the image type
                resource_type=blob.resource_type if blob.resource_type != "auto" else "image",
            )
        except cloudinary.exceptions.Error as exc:
            logger.warning(
                "Could not remove Cloudinary asset %s: %s", blob.public_id, exc
            )
            return
    else:
        return
    logger.info("Discarded orphaned upload %s", blob.url)


class UploadBatch:
    """
    Uploads made for one request, removed again if the request fails.

    Use as a context manager around the uploads and the database write that
    references them::

        with UploadBatch() as uploads:
            blob = uploads.save(file, "audio")
            crud.upload_audio_track(db, artist_id, track_in, blob)
    """

    def __init__(self, settings: Settings | None = None):
        self.settings = settings
        self.blobs: list[StoredBlob] = []

    def save(self, file: UploadFile, kind: str) -> StoredBlob:
        blob = save_upload(file, kind, self.settings)
        self.blobs.append(blob)
        return blob

    def __enter__(self) -> "UploadBatch":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None:
            for blob in self.blobs:
                discard_upload(blob)
        return False
