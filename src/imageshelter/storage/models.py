"""Storage data models.

Provides the configuration struct handed to the pipelines and the request
and result types that flow through them.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO

from imageshelter.storage.naming import final_component
from imageshelter.storage.transforms import DEFAULT_CHUNK_SIZE, TransformChain


@dataclass(frozen=True)
class StorageConfig:
    """Immutable configuration consumed by the storage pipelines.

    Built once at startup (see ``Settings.storage_config``) and shared by
    all requests.

    Attributes:
        upload_dir: Storage root holding one file per object
        allowed_extensions: Lower-case extensions accepted for upload
        compressed_extensions: Lower-case extensions that are gzip-compressed
        encrypt: Whether objects are encrypted with a per-upload key
        secrets: Shared secrets accepted on upload
        chunk_size: Copy buffer size in bytes
    """

    upload_dir: Path
    allowed_extensions: frozenset[str]
    compressed_extensions: frozenset[str] = frozenset()
    encrypt: bool = True
    secrets: frozenset[str] = frozenset()
    chunk_size: int = DEFAULT_CHUNK_SIZE


@dataclass(frozen=True)
class UploadRequest:
    """A single upload as received from a client.

    Attributes:
        filename: Original filename of the file part (None if no file part)
        content: Readable binary stream of the file part (None if no file part)
        secret: Presented shared secret (None if the field was absent)
        multipart: Whether the request was multipart/form-data
    """

    filename: str | None = None
    content: BinaryIO | None = None
    secret: str | None = None
    multipart: bool = True

    @property
    def extension(self) -> str:
        """Lower-case extension of the filename, without the dot ("" if none)."""
        if not self.filename:
            return ""
        # Taken before sanitizing so a non-ASCII base name keeps its extension
        _, dot, extension = final_component(self.filename).rpartition(".")
        return extension.lower() if dot else ""


@dataclass(frozen=True)
class StoredUpload:
    """Result of a successful upload.

    Attributes:
        name: Stored name the object can be retrieved under
        key: Encoded decryption key, None when encryption is disabled
        stem: Pre-extension identifier (names the key backup file)
        size: Number of plaintext bytes stored
    """

    name: str
    key: str | None
    stem: str
    size: int = 0


@dataclass
class RetrievedObject:
    """A stored object ready to be streamed back.

    ``chunks`` opens the file lazily and closes it when exhausted or closed.
    """

    path: Path
    content_type: str | None
    chain: TransformChain
    chunks: Iterator[bytes] = field(repr=False)

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def compressed(self) -> bool:
        return self.chain.compressed
