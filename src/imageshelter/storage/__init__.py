"""Storage layer for uploaded objects.

Objects pass through an ordered transform chain on the way to disk and
through its inverse on the way back:

- ``naming``: collision-resistant stored names carrying the compression marker
- ``paths``: containment of requested names within the storage root
- ``transforms``: transform chains and the stream adapters applying them
- ``writer`` / ``reader``: the encode and decode pipelines

Example:
    ```python
    from imageshelter.storage.reader import StorageReader
    from imageshelter.storage.writer import StorageWriter

    stored = StorageWriter(config).store(request)
    obj = StorageReader(config).open(stored.name, stored.key)
    data = b"".join(obj.chunks)
    ```

The pipelines live in their own modules (not re-exported here) because
they depend on ``imageshelter.security``, which itself depends on the
error types below.
"""

from __future__ import annotations

from imageshelter.storage.errors import (
    ErrorCode,
    FileReadError,
    InvalidRequestError,
    NotFoundError,
    PathTraversalError,
    ReadPermissionError,
    StorageCorruptedError,
    StorageError,
    StorageWriteError,
    UnsupportedExtensionError,
)
from imageshelter.storage.models import (
    RetrievedObject,
    StorageConfig,
    StoredUpload,
    UploadRequest,
)
from imageshelter.storage.naming import COMPRESSION_SUFFIX, StoredName
from imageshelter.storage.paths import PathGuard
from imageshelter.storage.transforms import TransformChain, TransformStage

__all__ = [
    # Models
    "StorageConfig",
    "UploadRequest",
    "StoredUpload",
    "RetrievedObject",
    "StoredName",
    "COMPRESSION_SUFFIX",
    # Pipeline parts
    "PathGuard",
    "TransformChain",
    "TransformStage",
    # Exceptions
    "ErrorCode",
    "StorageError",
    "InvalidRequestError",
    "UnsupportedExtensionError",
    "NotFoundError",
    "PathTraversalError",
    "ReadPermissionError",
    "FileReadError",
    "StorageCorruptedError",
    "StorageWriteError",
]
