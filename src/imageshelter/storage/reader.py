"""Decode pipeline: locate a stored object and reconstruct its bytes."""

from __future__ import annotations

import logging
import mimetypes
import os
import zlib
from collections.abc import Iterator
from contextlib import ExitStack
from pathlib import Path

from imageshelter.security.cipher import (
    BLOCK_SIZE,
    ZERO_IV,
    InvalidKeyError,
    check_final_block,
    decrypt_block,
    decrypt_transform,
    string_to_key,
)
from imageshelter.storage import naming
from imageshelter.storage.errors import (
    FileReadError,
    NotFoundError,
    ReadPermissionError,
    StorageCorruptedError,
    StorageError,
)
from imageshelter.storage.models import RetrievedObject, StorageConfig
from imageshelter.storage.paths import PathGuard
from imageshelter.storage.transforms import TransformChain, iter_chunks, open_read_chain

logger = logging.getLogger(__name__)

GZIP_MAGIC = b"\x1f\x8b"


def guess_content_type(name: str) -> str | None:
    """Guess the media type from the name, ignoring the compression marker."""
    content_type, _ = mimetypes.guess_type(naming.strip_compression_suffix(name))
    return content_type


class StorageReader:
    """Resolves stored names and streams reconstructed objects.

    All checks that can fail on a client mistake (unknown name, bad or wrong
    key) run in :meth:`open`, before any byte is produced, so callers can
    still answer with a proper error status.
    """

    def __init__(self, config: StorageConfig, guard: PathGuard | None = None) -> None:
        self.config = config
        self.guard = guard or PathGuard(config.upload_dir)

    def open(self, name: str, key: str | None = None) -> RetrievedObject:
        """Prepare a stored object for streaming.

        Args:
            name: Stored name as requested by the client
            key: Encoded key (required when encryption is enabled)

        Returns:
            RetrievedObject whose ``chunks`` yield the original bytes

        Raises:
            NotFoundError: If the name is unknown or escapes the storage root
            ReadPermissionError: If the object exists but is not readable
            MalformedKeyError: If encryption is enabled and the key is absent or malformed
            InvalidKeyError: If the key cannot decrypt the object
            FileReadError: If the object cannot be read
        """
        path = self.guard.resolve(name)

        if not path.is_file():
            raise NotFoundError()

        if not os.access(path, os.R_OK):
            raise ReadPermissionError()

        chain = TransformChain.for_object(
            compressed=naming.is_compressed_name(path.name),
            encrypted=self.config.encrypt,
        )
        content_type = guess_content_type(path.name)

        secret_key: bytes | None = None
        if chain.encrypted:
            secret_key = string_to_key(key)
            self._verify_key(path, secret_key, chain)

        return RetrievedObject(
            path=path,
            content_type=content_type,
            chain=chain,
            chunks=self._stream(path, chain, secret_key),
        )

    def _verify_key(self, path: Path, key: bytes, chain: TransformChain) -> None:
        """Detect a wrong key from the first and last ciphertext blocks.

        The last block must unpad cleanly; for compressed objects the first
        block must also decrypt to a gzip header.
        """
        try:
            size = path.stat().st_size
            if size < BLOCK_SIZE or size % BLOCK_SIZE:
                raise StorageCorruptedError(f"Encrypted object has invalid length {size}")

            with path.open("rb") as f:
                first = f.read(BLOCK_SIZE)
                if size == BLOCK_SIZE:
                    previous, final = ZERO_IV, first
                else:
                    f.seek(size - 2 * BLOCK_SIZE)
                    tail = f.read(2 * BLOCK_SIZE)
                    previous, final = tail[:BLOCK_SIZE], tail[BLOCK_SIZE:]
        except StorageCorruptedError:
            logger.error(f"File read error: {path.name} is not block aligned")
            raise
        except OSError as e:
            logger.exception(f"File read error: {path.name}")
            raise FileReadError() from e

        check_final_block(key, previous, final)

        if chain.compressed and not decrypt_block(key, first).startswith(GZIP_MAGIC):
            raise InvalidKeyError()

    def _stream(
        self, path: Path, chain: TransformChain, key: bytes | None
    ) -> Iterator[bytes]:
        """Yield the reconstructed bytes of ``path``.

        The file is opened on first iteration and closed when the iterator is
        exhausted, fails, or is closed early.
        """
        chunk_size = self.config.chunk_size
        try:
            with ExitStack() as stack:
                raw = stack.enter_context(path.open("rb"))
                decryptor = decrypt_transform(key) if key is not None else None
                source = open_read_chain(
                    raw, chain, stack, decryptor=decryptor, chunk_size=chunk_size
                )
                yield from iter_chunks(source, chunk_size)
        except StorageError:
            raise
        except (OSError, EOFError, zlib.error) as e:
            logger.exception(f"File read error: {path.name}")
            raise FileReadError() from e
