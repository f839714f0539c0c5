"""Transform chains and the stream adapters that apply them.

A :class:`TransformChain` lists the stages an object went through, in the
order the data passed through them on write. Reading applies the inverse
stages in reverse order::

    write: raw -> compress -> encrypt -> disk
    read:  disk -> decrypt -> decompress -> raw

Both directions are built as stacks of file-like adapters over the disk
file. Adapters never close the stream they wrap; the caller registers every
layer on a :class:`contextlib.ExitStack`, which closes them outermost
wrapper first so each layer flushes into a still-open inner layer.
"""

from __future__ import annotations

import gzip
import io
from collections.abc import Iterator
from contextlib import ExitStack
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, BinaryIO

if TYPE_CHECKING:
    from imageshelter.security.cipher import CipherTransform

DEFAULT_CHUNK_SIZE = 4096


class TransformStage(str, Enum):
    """A reversible byte-stream stage."""

    COMPRESS = "compress"
    ENCRYPT = "encrypt"


@dataclass(frozen=True)
class TransformChain:
    """Ordered stages applied to an object on write."""

    stages: tuple[TransformStage, ...] = ()

    @classmethod
    def for_object(cls, *, compressed: bool, encrypted: bool) -> TransformChain:
        stages: list[TransformStage] = []
        if compressed:
            stages.append(TransformStage.COMPRESS)
        if encrypted:
            stages.append(TransformStage.ENCRYPT)
        return cls(tuple(stages))

    @property
    def read_stages(self) -> tuple[TransformStage, ...]:
        """Stages in the order their inverses run on read."""
        return tuple(reversed(self.stages))

    @property
    def compressed(self) -> bool:
        return TransformStage.COMPRESS in self.stages

    @property
    def encrypted(self) -> bool:
        return TransformStage.ENCRYPT in self.stages


class CipherWriter(io.RawIOBase):
    """Write adapter that pushes data through a cipher transform.

    Closing finalizes the transform (writing the padded last block) but
    leaves the wrapped stream open.
    """

    def __init__(self, raw: BinaryIO, transform: CipherTransform) -> None:
        super().__init__()
        self._raw = raw
        self._transform = transform

    def writable(self) -> bool:
        return True

    def write(self, b: bytes | bytearray | memoryview) -> int:  # type: ignore[override]
        data = bytes(b)
        self._raw.write(self._transform.update(data))
        return len(data)

    def close(self) -> None:
        if self.closed:
            return
        try:
            self._raw.write(self._transform.finalize())
        finally:
            super().close()


class CipherReader(io.RawIOBase):
    """Read adapter that yields the transform of the wrapped stream.

    The transform is finalized once the wrapped stream is exhausted, so
    padding errors surface from the final ``read``.
    """

    def __init__(
        self, raw: BinaryIO, transform: CipherTransform, chunk_size: int = DEFAULT_CHUNK_SIZE
    ) -> None:
        super().__init__()
        self._raw = raw
        self._transform = transform
        self._chunk_size = chunk_size
        self._buffer = bytearray()
        self._eof = False

    def readable(self) -> bool:
        return True

    def readinto(self, b: bytearray | memoryview) -> int:  # type: ignore[override]
        while not self._buffer and not self._eof:
            chunk = self._raw.read(self._chunk_size)
            if chunk:
                self._buffer += self._transform.update(chunk)
            else:
                self._buffer += self._transform.finalize()
                self._eof = True

        n = min(len(b), len(self._buffer))
        b[:n] = self._buffer[:n]
        del self._buffer[:n]
        return n


def open_write_chain(
    raw: BinaryIO,
    chain: TransformChain,
    stack: ExitStack,
    *,
    encryptor: CipherTransform | None = None,
) -> BinaryIO:
    """Wrap ``raw`` so that writes pass through ``chain``.

    Args:
        raw: Destination stream (already registered on ``stack``)
        chain: Stages in write order
        stack: Exit stack that will close the adapters
        encryptor: Encrypting transform, required if the chain encrypts

    Returns:
        Stream to write the plaintext into
    """
    stream: BinaryIO = raw
    # The last stage sits next to the disk, so it wraps first.
    for stage in reversed(chain.stages):
        if stage is TransformStage.ENCRYPT:
            if encryptor is None:
                raise ValueError("Chain encrypts but no encryptor was given")
            stream = stack.enter_context(CipherWriter(stream, encryptor))  # type: ignore[arg-type]
        else:
            stream = stack.enter_context(gzip.GzipFile(fileobj=stream, mode="wb"))  # type: ignore[arg-type]
    return stream


def open_read_chain(
    raw: BinaryIO,
    chain: TransformChain,
    stack: ExitStack,
    *,
    decryptor: CipherTransform | None = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> BinaryIO:
    """Wrap ``raw`` so that reads undo ``chain``.

    Args:
        raw: Source stream (already registered on ``stack``)
        chain: Stages in write order
        stack: Exit stack that will close the adapters
        decryptor: Decrypting transform, required if the chain encrypts
        chunk_size: Read size used against the wrapped stream

    Returns:
        Stream yielding the original bytes
    """
    stream: BinaryIO = raw
    for stage in chain.read_stages:
        if stage is TransformStage.ENCRYPT:
            if decryptor is None:
                raise ValueError("Chain encrypts but no decryptor was given")
            cipher_reader = stack.enter_context(CipherReader(stream, decryptor, chunk_size))
            stream = io.BufferedReader(cipher_reader, buffer_size=chunk_size)  # type: ignore[assignment]
        else:
            stream = stack.enter_context(gzip.GzipFile(fileobj=stream, mode="rb"))  # type: ignore[arg-type]
    return stream


def copy_stream(source: BinaryIO, target: BinaryIO, chunk_size: int = DEFAULT_CHUNK_SIZE) -> int:
    """Copy ``source`` into ``target`` in fixed-size chunks.

    Returns:
        Number of bytes copied
    """
    total = 0
    while chunk := source.read(chunk_size):
        target.write(chunk)
        total += len(chunk)
    return total


def iter_chunks(stream: BinaryIO, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
    while chunk := stream.read(chunk_size):
        yield chunk
