"""Retrieval endpoint router."""

from __future__ import annotations

import logging

from fastapi import APIRouter
from fastapi.responses import StreamingResponse
from starlette.concurrency import run_in_threadpool

from imageshelter.storage.reader import StorageReader
from imageshelter.web.dependencies import StorageReaderDep

logger = logging.getLogger(__name__)

router = APIRouter(tags=["view"])

DEFAULT_MEDIA_TYPE = "application/octet-stream"


@router.get("/{name}/{key}", response_class=StreamingResponse)
async def view_encrypted(name: str, key: str, reader: StorageReaderDep) -> StreamingResponse:
    """Stream a stored object, decrypting it with ``key``."""
    return await _open(reader, name, key)


@router.get("/{name}", response_class=StreamingResponse)
async def view(name: str, reader: StorageReaderDep) -> StreamingResponse:
    """Stream a stored object.

    When encryption is enabled the key must be given as a second path
    segment; without it the request fails with ``BAD_KEY_FORMAT``.
    """
    return await _open(reader, name, None)


async def _open(reader: StorageReader, name: str, key: str | None) -> StreamingResponse:
    # Resolution and key checks touch the disk, so they run off the event loop
    obj = await run_in_threadpool(reader.open, name, key)
    logger.debug(f"Streaming {obj.name} ({obj.content_type or DEFAULT_MEDIA_TYPE})")
    return StreamingResponse(obj.chunks, media_type=obj.content_type or DEFAULT_MEDIA_TYPE)
