"""Image storage for avatars and cover images."""
from __future__ import annotations

import logging
import mimetypes
import uuid
from typing import Optional
from urllib.parse import unquote, urlparse

import magic
from django.conf import settings
from django.core.files.storage import default_storage

logger = logging.getLogger(__name__)

AVATAR_FOLDER = "avatars"
COVER_IMAGE_FOLDER = "cover_images"


class UploadError(Exception):
    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


def detect_mime_type(uploaded_file) -> str:
    uploaded_file.seek(0)
    mime_type = magic.from_buffer(uploaded_file.read(2048), mime=True)
    uploaded_file.seek(0)
    return mime_type


def format_file_size(size_bytes: int) -> str:
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 ** 2:
        return f"{size_bytes / 1024:.2f} KB"
    return f"{size_bytes / (1024 ** 2):.2f} MB"


def validate_image(uploaded_file) -> str:
    """
    Check size and content type, returning the sniffed MIME type.

    The type comes from the file content, not the client supplied header.
    """
    max_size = settings.MAX_IMAGE_UPLOAD_SIZE
    if uploaded_file.size > max_size:
        raise UploadError(f"Image must be {format_file_size(max_size)} or smaller")

    mime_type = detect_mime_type(uploaded_file)
    if not mime_type.startswith("image/"):
        raise UploadError("Uploaded file must be an image")
    return mime_type


def store_image(uploaded_file, folder: str, request=None) -> str:
    """
    Validate and save an uploaded image, returning its public URL.

    Raises UploadError when the file is rejected or cannot be written.
    """
    mime_type = validate_image(uploaded_file)
    extension = mimetypes.guess_extension(mime_type) or ""
    name = f"{folder}/{uuid.uuid4().hex}{extension}"

    try:
        saved_name = default_storage.save(name, uploaded_file)
    except OSError as exc:
        logger.exception("Failed to store image", extra={"error_code": "UPLOAD_FAILED", "folder": folder})
        raise UploadError("Could not store the uploaded file") from exc

    url = default_storage.url(saved_name)
    if request is not None:
        url = request.build_absolute_uri(url)

    logger.info("Stored image", extra={"folder": folder, "mime_type": mime_type, "size": uploaded_file.size})
    return url


def _storage_name(url: str) -> Optional[str]:
    if not url:
        return None
    path = unquote(urlparse(url).path)
    media_url = settings.MEDIA_URL
    if not media_url.startswith("/"):
        media_url = "/" + media_url
    if not path.startswith(media_url):
        return None
    return path[len(media_url):] or None


def delete_stored_media(url: str) -> bool:
    """
    Remove a file previously saved by store_image.

    URLs pointing elsewhere are ignored. Returns True when a file was removed.
    """
    name = _storage_name(url)
    if name is None:
        return False

    try:
        if not default_storage.exists(name):
            return False
        default_storage.delete(name)
    except OSError:
        logger.warning("Failed to delete stored media", extra={"error_code": "MEDIA_DELETE_FAILED", "media_name": name})
        return False
    return True
