"""Dependency injection helpers for FastAPI routes.

The storage pipelines are built once per app by ``create_app`` and kept in
``app.state``; these dependencies hand them to route handlers.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from imageshelter.config import Settings
from imageshelter.storage.reader import StorageReader
from imageshelter.storage.writer import StorageWriter


def get_app_settings(request: Request) -> Settings:
    """Dependency returning the settings the app was created with."""
    return request.app.state.settings


def get_storage_writer(request: Request) -> StorageWriter:
    """Dependency returning the app's encode pipeline.

    Example:
        ```python
        @router.post("/upload")
        async def upload(writer: StorageWriterDep):
            ...
        ```
    """
    return request.app.state.storage_writer


def get_storage_reader(request: Request) -> StorageReader:
    """Dependency returning the app's decode pipeline."""
    return request.app.state.storage_reader


AppSettings = Annotated[Settings, Depends(get_app_settings)]
StorageWriterDep = Annotated[StorageWriter, Depends(get_storage_writer)]
StorageReaderDep = Annotated[StorageReader, Depends(get_storage_reader)]
