"""Storage for photos and videos attached to tickets."""
from __future__ import annotations

import logging
import uuid
from typing import Iterable, List

from django.conf import settings
from django.core.files.storage import default_storage
from django.core.files.uploadedfile import UploadedFile
from django.utils.text import get_valid_filename
from rest_framework import serializers

logger = logging.getLogger(__name__)

ALLOWED_MEDIA_PREFIXES = ("image/", "video/")
MEDIA_REQUIRED = "Please upload at least one photo or video."


def validate_uploads(files: List[UploadedFile]) -> List[UploadedFile]:
    if len(files) > settings.TASKSCOUT_MAX_UPLOADS:
        raise serializers.ValidationError(
            f"You can attach at most {settings.TASKSCOUT_MAX_UPLOADS} files."
        )
    for upload in files:
        content_type = getattr(upload, "content_type", "") or ""
        if not content_type.startswith(ALLOWED_MEDIA_PREFIXES):
            raise serializers.ValidationError(f"{upload.name} is not an image or video.")
        if upload.size > settings.TASKSCOUT_MAX_UPLOAD_SIZE:
            raise serializers.ValidationError(f"{upload.name} is larger than 10 MB.")
    return files


def store_uploads(files: Iterable[UploadedFile], folder: str = "tickets") -> List[str]:
    """Save each upload under ``MEDIA_ROOT/folder`` and return their URLs."""

    urls = []
    for upload in files:
        name = default_storage.save(
            f"{folder}/{uuid.uuid4().hex}_{get_valid_filename(upload.name)}", upload
        )
        urls.append(default_storage.url(name))
        logger.debug("Stored upload %s", name)
    return urls
