"""Encode pipeline: validate an upload and write it to the storage root."""

from __future__ import annotations

import hmac
import logging
import os
from contextlib import ExitStack
from pathlib import Path
from typing import TYPE_CHECKING, BinaryIO

from imageshelter.security.cipher import (
    KeyGenerationError,
    encrypt_transform,
    generate_key,
    key_to_string,
)
from imageshelter.storage import naming
from imageshelter.storage.errors import (
    ErrorCode,
    InvalidRequestError,
    StorageWriteError,
    UnsupportedExtensionError,
)
from imageshelter.storage.models import StorageConfig, StoredUpload, UploadRequest
from imageshelter.storage.paths import PathGuard
from imageshelter.storage.transforms import TransformChain, copy_stream, open_write_chain

if TYPE_CHECKING:
    from imageshelter.security.key_backup import KeyBackup

logger = logging.getLogger(__name__)


def _sync(raw: BinaryIO) -> None:
    raw.flush()
    os.fsync(raw.fileno())


class StorageWriter:
    """Validates uploads and streams them to disk through the transform chain.

    Example:
        ```python
        writer = StorageWriter(config)
        with open("cat.png", "rb") as f:
            stored = writer.store(UploadRequest("cat.png", f, secret="s3cret"))
        print(stored.name, stored.key)
        ```
    """

    def __init__(
        self,
        config: StorageConfig,
        guard: PathGuard | None = None,
        key_backup: KeyBackup | None = None,
    ) -> None:
        """Initialize the writer.

        Args:
            config: Storage configuration
            guard: Path guard for the storage root (built from config if None)
            key_backup: Optional key backup, invoked after each encrypted upload
        """
        self.config = config
        self.guard = guard or PathGuard(config.upload_dir)
        self.key_backup = key_backup

    def _is_valid_secret(self, secret: str) -> bool:
        presented = secret.encode("utf-8")
        matches = [hmac.compare_digest(presented, s.encode("utf-8")) for s in self.config.secrets]
        return any(matches)

    def validate(self, request: UploadRequest) -> str:
        """Check an upload request before anything touches the filesystem.

        Checks run in a fixed order so clients always see the same code for
        the same request: form data, secret presence, secret validity, file
        presence, extension.

        Returns:
            Validated lower-case extension

        Raises:
            InvalidRequestError: If the request is malformed or not authorized
            UnsupportedExtensionError: If the extension is not allowed
        """
        if not request.multipart:
            raise InvalidRequestError()

        if request.secret is None:
            raise InvalidRequestError("Secret not provided.", code=ErrorCode.MISSING_SECRET)

        if not self._is_valid_secret(request.secret):
            raise InvalidRequestError("Secret is not valid.", code=ErrorCode.INVALID_SECRET)

        if request.content is None or request.filename is None:
            raise InvalidRequestError("Image not provided.", code=ErrorCode.MISSING_IMAGE)

        extension = request.extension
        if extension not in self.config.allowed_extensions:
            supported = ", ".join(sorted(self.config.allowed_extensions))
            raise UnsupportedExtensionError(
                f"Wrong extension ({extension}). Supported extensions: [{supported}]"
            )

        return extension

    def store(self, request: UploadRequest) -> StoredUpload:
        """Validate and store an upload.

        Args:
            request: Upload request; the caller keeps ownership of its stream

        Returns:
            StoredUpload with the stored name and, if encryption is enabled,
            the encoded key

        Raises:
            InvalidRequestError: If validation fails (nothing is written)
            UnsupportedExtensionError: If the extension is not allowed
            KeyGenerationError: If no key could be generated (nothing is written)
            StorageWriteError: If writing fails (partial file removed)
        """
        extension = self.validate(request)

        compressed = extension in self.config.compressed_extensions
        chain = TransformChain.for_object(compressed=compressed, encrypted=self.config.encrypt)

        key: bytes | None = None
        if self.config.encrypt:
            try:
                key = generate_key()
            except KeyGenerationError:
                logger.exception("Key generation error")
                raise

        stored = naming.generate(request.filename, extension, compressed)
        size = self._write(stored.name, request.content, chain, key)  # type: ignore[arg-type]

        encoded_key = key_to_string(key) if key is not None else None
        if encoded_key is not None and self.key_backup is not None:
            self.key_backup.save(stored.stem, encoded_key)

        logger.info(
            f"Stored {stored.name} ({size} bytes, compressed={chain.compressed}, "
            f"encrypted={chain.encrypted})"
        )
        return StoredUpload(name=stored.name, key=encoded_key, stem=stored.stem, size=size)

    def _write(
        self, name: str, content: BinaryIO, chain: TransformChain, key: bytes | None
    ) -> int:
        """Stream ``content`` into a newly created file through ``chain``."""
        path: Path | None = None
        created = False
        try:
            path = self.guard.resolve(name)
            path.parent.mkdir(parents=True, exist_ok=True)

            with ExitStack() as stack:
                raw = stack.enter_context(path.open("xb"))
                created = True
                # Runs after every wrapper has flushed into raw, before raw closes
                stack.callback(_sync, raw)

                encryptor = encrypt_transform(key) if key is not None else None
                sink = open_write_chain(raw, chain, stack, encryptor=encryptor)
                return copy_stream(content, sink, self.config.chunk_size)
        except Exception as e:
            logger.exception(f"File saving error: {name}")
            if created and path is not None:
                self._discard(path)
            raise StorageWriteError() from e

    @staticmethod
    def _discard(path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Failed to remove partial file {path.name}: {e}")
