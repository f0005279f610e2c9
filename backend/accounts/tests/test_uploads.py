import base64

import pytest
from django.core.files.storage import default_storage
from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import RequestFactory

from accounts.uploads import (
    AVATAR_FOLDER,
    UploadError,
    delete_stored_media,
    format_file_size,
    store_image,
    validate_image,
)

PNG_BYTES = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mNkYAAAAAYAAjCB0C8AAAAASUVORK5CYII="
)


@pytest.fixture
def media_root(settings, tmp_path):
    settings.MEDIA_ROOT = str(tmp_path)
    return tmp_path


def png_upload(name="avatar.png", content_type="image/png"):
    return SimpleUploadedFile(name, PNG_BYTES, content_type=content_type)


def test_validate_image_sniffs_content_not_header():
    assert validate_image(png_upload(content_type="application/octet-stream")) == "image/png"

    disguised = SimpleUploadedFile("avatar.png", b"#!/bin/sh\necho hi\n", content_type="image/png")
    with pytest.raises(UploadError, match="must be an image"):
        validate_image(disguised)


def test_validate_image_enforces_size_limit(settings):
    settings.MAX_IMAGE_UPLOAD_SIZE = 10

    with pytest.raises(UploadError, match="10 B or smaller"):
        validate_image(png_upload())


def test_store_image_returns_absolute_url(media_root):
    request = RequestFactory().get("/")

    url = store_image(png_upload("holiday photo.PNG"), AVATAR_FOLDER, request)

    assert url.startswith("http://testserver/media/avatars/")
    assert url.endswith(".png")
    stored = list((media_root / AVATAR_FOLDER).iterdir())
    assert len(stored) == 1
    assert stored[0].read_bytes() == PNG_BYTES


def test_store_image_without_request_returns_relative_url(media_root):
    url = store_image(png_upload(), AVATAR_FOLDER)

    assert url.startswith("/media/avatars/")


def test_store_image_reports_storage_failure(media_root, monkeypatch):
    def broken_save(name, content):
        raise OSError("disk full")

    monkeypatch.setattr(default_storage, "save", broken_save)

    with pytest.raises(UploadError, match="Could not store"):
        store_image(png_upload(), AVATAR_FOLDER)


def test_delete_stored_media_removes_own_files(media_root):
    url = store_image(png_upload(), AVATAR_FOLDER, RequestFactory().get("/"))

    assert delete_stored_media(url) is True
    assert list((media_root / AVATAR_FOLDER).iterdir()) == []
    assert delete_stored_media(url) is False


@pytest.mark.parametrize(
    "url",
    ["", "http://cdn.example.com/avatar.png", "https://elsewhere.example.com/static/a.png"],
)
def test_delete_stored_media_ignores_foreign_urls(media_root, url):
    assert delete_stored_media(url) is False


def test_format_file_size():
    assert format_file_size(512) == "512 B"
    assert format_file_size(2048) == "2.00 KB"
    assert format_file_size(5 * 1024 * 1024) == "5.00 MB"
