"""Upload endpoint router."""

from __future__ import annotations

import logging
from typing import Annotated
from urllib.parse import quote_plus

from fastapi import APIRouter, File, Form, Request, UploadFile
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from imageshelter.storage.models import UploadRequest
from imageshelter.web.dependencies import StorageWriterDep
from imageshelter.web.exception_handlers import is_multipart

logger = logging.getLogger(__name__)

router = APIRouter(tags=["upload"])


class UploadResponse(BaseModel):
    """Successful upload response.

    Both values are form-encoded so they can be pasted into a URL as is.
    """

    name: str = Field(description="Stored name to retrieve the object under")
    key: str | None = Field(default=None, description="Decryption key (encryption only)")


@router.post("/upload", response_model=UploadResponse, response_model_exclude_none=True)
async def upload(
    request: Request,
    writer: StorageWriterDep,
    image: Annotated[UploadFile | None, File()] = None,
    secret: Annotated[str | None, Form()] = None,
) -> UploadResponse:
    """Store an uploaded file.

    Args:
        request: FastAPI request object
        writer: Encode pipeline
        image: File part of the multipart form
        secret: Shared upload secret

    Returns:
        UploadResponse with the stored name and, if encryption is enabled, the key

    Raises:
        InvalidRequestError: If the form, the secret or the file part is invalid
        UnsupportedExtensionError: If the file's extension is not allowed
        StorageError: If the file cannot be stored
    """
    # Browsers send an empty filename when no file was chosen
    file_part = image if image is not None and image.filename else None
    upload_request = UploadRequest(
        filename=file_part.filename if file_part else None,
        content=file_part.file if file_part else None,
        secret=secret,
        multipart=is_multipart(request),
    )

    try:
        stored = await run_in_threadpool(writer.store, upload_request)
    finally:
        if image is not None:
            await image.close()

    return UploadResponse(
        name=quote_plus(stored.name),
        key=quote_plus(stored.key) if stored.key is not None else None,
    )
