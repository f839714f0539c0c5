"""Tests for transform chains and stream adapters."""

from __future__ import annotations

import gzip
import io
from contextlib import ExitStack

import pytest

from imageshelter.security.cipher import (
    BLOCK_SIZE,
    decrypt_transform,
    encrypt_transform,
    generate_key,
)
from imageshelter.storage.transforms import (
    TransformChain,
    TransformStage,
    copy_stream,
    iter_chunks,
    open_read_chain,
    open_write_chain,
)


def _write(chain: TransformChain, payload: bytes, key: bytes | None) -> bytes:
    raw = io.BytesIO()
    with ExitStack() as stack:
        sink = open_write_chain(
            raw, chain, stack, encryptor=encrypt_transform(key) if key else None
        )
        copy_stream(io.BytesIO(payload), sink, chunk_size=1000)
    assert not raw.closed, "adapters must leave the wrapped stream open"
    return raw.getvalue()


def _read(chain: TransformChain, data: bytes, key: bytes | None) -> bytes:
    with ExitStack() as stack:
        source = open_read_chain(
            io.BytesIO(data),
            chain,
            stack,
            decryptor=decrypt_transform(key) if key else None,
            chunk_size=1000,
        )
        return b"".join(iter_chunks(source, 1000))


class TestTransformChain:
    """Tests for TransformChain."""

    def test_write_order_is_compress_then_encrypt(self) -> None:
        """On write, data is compressed before it is encrypted."""
        chain = TransformChain.for_object(compressed=True, encrypted=True)
        assert chain.stages == (TransformStage.COMPRESS, TransformStage.ENCRYPT)

    def test_read_order_is_reverse(self) -> None:
        """On read, stages are undone in reverse order."""
        chain = TransformChain.for_object(compressed=True, encrypted=True)
        assert chain.read_stages == (TransformStage.ENCRYPT, TransformStage.COMPRESS)

    @pytest.mark.parametrize(
        ("compressed", "encrypted", "stages"),
        [
            (False, False, ()),
            (True, False, (TransformStage.COMPRESS,)),
            (False, True, (TransformStage.ENCRYPT,)),
        ],
    )
    def test_partial_chains(
        self, compressed: bool, encrypted: bool, stages: tuple[TransformStage, ...]
    ) -> None:
        chain = TransformChain.for_object(compressed=compressed, encrypted=encrypted)
        assert chain.stages == stages
        assert chain.compressed is compressed
        assert chain.encrypted is encrypted


class TestAdapters:
    """Tests for open_write_chain() / open_read_chain()."""

    def test_identity_chain_writes_raw_bytes(self) -> None:
        """An empty chain stores the payload untouched."""
        assert _write(TransformChain(), b"hello", None) == b"hello"

    def test_compressed_on_disk_format_is_gzip(self) -> None:
        """A compress-only object is a plain gzip stream."""
        data = _write(TransformChain.for_object(compressed=True, encrypted=False), b"hello", None)
        assert gzip.decompress(data) == b"hello"

    def test_encrypted_compressed_format(self) -> None:
        """On disk: encrypt(gzip(payload)), block aligned."""
        key = generate_key()
        chain = TransformChain.for_object(compressed=True, encrypted=True)
        data = _write(chain, b"hello" * 1000, key)

        assert len(data) % BLOCK_SIZE == 0
        decrypt = decrypt_transform(key)
        gz = decrypt.update(data) + decrypt.finalize()
        assert gzip.decompress(gz) == b"hello" * 1000

    @pytest.mark.parametrize("compressed", [False, True])
    @pytest.mark.parametrize("encrypted", [False, True])
    def test_multi_chunk_payload_survives(self, compressed: bool, encrypted: bool) -> None:
        """Payloads larger than several chunks come back byte-identical."""
        key = generate_key() if encrypted else None
        chain = TransformChain.for_object(compressed=compressed, encrypted=encrypted)
        payload = bytes(range(256)) * 40 + b"tail"

        assert _read(chain, _write(chain, payload, key), key) == payload

    def test_encrypt_without_encryptor_fails(self) -> None:
        """A chain that encrypts needs an encryptor."""
        chain = TransformChain.for_object(compressed=False, encrypted=True)
        with ExitStack() as stack, pytest.raises(ValueError):
            open_write_chain(io.BytesIO(), chain, stack)


class TestCopyStream:
    """Tests for copy_stream() / iter_chunks()."""

    def test_copy_counts_bytes(self) -> None:
        target = io.BytesIO()
        assert copy_stream(io.BytesIO(b"x" * 10_000), target, chunk_size=4096) == 10_000
        assert target.getvalue() == b"x" * 10_000

    def test_iter_chunks_is_bounded(self) -> None:
        chunks = list(iter_chunks(io.BytesIO(b"y" * 10_000), 4096))
        assert [len(c) for c in chunks] == [4096, 4096, 1808]
