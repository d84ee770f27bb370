"""
Request-scoped accessors for the process-wide objects built in create_app().
"""

from typing import Collection

from fastapi import Request, UploadFile

from todox.core.config import Settings
from todox.core.exceptions import PayloadTooLargeError, ValidationError
from todox.core.storage import BlobStorage

MB = 1024 * 1024


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_storage(request: Request) -> BlobStorage:
    return request.app.state.storage


async def read_upload(
    file: UploadFile, allowed_types: Collection[str], max_bytes: int, type_error: str
) -> bytes:
    """Read an uploaded file after checking its MIME type and size."""
    content_type = (file.content_type or "").split(";")[0].strip().lower()
    if content_type not in allowed_types:
        raise ValidationError(type_error)
    data = await file.read(max_bytes + 1)
    if len(data) > max_bytes:
        raise PayloadTooLargeError(f"File is too large. Maximum size is {max_bytes // MB}MB.")
    return data
