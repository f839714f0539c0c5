"""Tests for the decode pipeline (StorageReader)."""

from __future__ import annotations

import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from imageshelter.security.cipher import (
    InvalidKeyError,
    MalformedKeyError,
    generate_key,
    key_to_string,
)
from imageshelter.storage.errors import (
    ErrorCode,
    FileReadError,
    NotFoundError,
    ReadPermissionError,
    StorageError,
)
from imageshelter.storage.models import StorageConfig
from imageshelter.storage.reader import StorageReader, guess_content_type
from imageshelter.storage.writer import StorageWriter

PAYLOADS = {
    "empty": b"",
    "hello": b"hello",
    "multi_chunk": bytes(range(256)) * 64 + b"odd tail",
}


def _read_all(reader: StorageReader, name: str, key: str | None) -> bytes:
    return b"".join(reader.open(name, key).chunks)


class TestRoundTrip:
    """decode(encode(P)) == P for every combination of stages."""

    @pytest.mark.parametrize("payload_id", sorted(PAYLOADS))
    @pytest.mark.parametrize("filename", ["cat.png", "notes.txt"])
    @pytest.mark.parametrize("encrypt", [True, False])
    def test_round_trip(
        self,
        storage_config: StorageConfig,
        plain_config: StorageConfig,
        make_upload: Callable[..., Any],
        payload_id: str,
        filename: str,
        encrypt: bool,
    ) -> None:
        config = storage_config if encrypt else plain_config
        payload = PAYLOADS[payload_id]

        stored = StorageWriter(config).store(make_upload(filename, payload))
        obj = StorageReader(config).open(stored.name, stored.key)

        assert obj.compressed is filename.endswith(".txt")
        assert b"".join(obj.chunks) == payload

    def test_hello_txt_scenario(
        self, storage_config: StorageConfig, make_upload: Callable[..., Any]
    ) -> None:
        """A .txt upload of "hello" gets a .gz name and reads back exactly."""
        stored = StorageWriter(storage_config).store(make_upload("hello.txt", b"hello"))

        assert stored.name.endswith(".gz")
        assert _read_all(StorageReader(storage_config), stored.name, stored.key) == b"hello"

    @pytest.mark.parametrize(
        ("filename", "extension"),
        [("фото.jpg", "jpg"), ("照片.png", "png"), ("😀.png", "png"), (".png", "png"), ("说明.txt", "txt")],
    )
    def test_non_ascii_base_name(
        self,
        storage_config: StorageConfig,
        make_upload: Callable[..., Any],
        filename: str,
        extension: str,
    ) -> None:
        """Only the stem is sanitized; the extension survives a non-Latin base name."""
        stored = StorageWriter(storage_config).store(make_upload(filename, b"data"))

        assert stored.name.removesuffix(".gz").endswith(f".{extension}")
        assert _read_all(StorageReader(storage_config), stored.name, stored.key) == b"data"

    def test_unpadded_key_accepted(
        self, storage_config: StorageConfig, make_upload: Callable[..., Any]
    ) -> None:
        stored = StorageWriter(storage_config).store(make_upload("cat.png", b"meow"))
        assert stored.key is not None

        assert _read_all(StorageReader(storage_config), stored.name, stored.key.rstrip("=")) == b"meow"

    def test_chunks_are_bounded(
        self, storage_config: StorageConfig, make_upload: Callable[..., Any]
    ) -> None:
        """Large objects are streamed in chunks no bigger than chunk_size."""
        payload = os.urandom(5 * storage_config.chunk_size + 3)
        stored = StorageWriter(storage_config).store(make_upload("big.png", payload))

        chunks = list(StorageReader(storage_config).open(stored.name, stored.key).chunks)

        assert len(chunks) > 1
        assert all(len(c) <= storage_config.chunk_size for c in chunks)
        assert b"".join(chunks) == payload


class TestKeyErrors:
    """Key problems are reported before any byte is streamed."""

    @pytest.fixture
    def stored_txt(self, storage_config: StorageConfig, make_upload: Callable[..., Any]) -> Any:
        return StorageWriter(storage_config).store(make_upload("notes.txt", b"hello " * 500))

    def test_wrong_key_on_compressed_object(
        self, storage_config: StorageConfig, stored_txt: Any
    ) -> None:
        """A wrong key yields INVALID_KEY, never corrupted bytes."""
        reader = StorageReader(storage_config)

        for _ in range(10):
            with pytest.raises(InvalidKeyError) as exc_info:
                reader.open(stored_txt.name, key_to_string(generate_key()))
            assert exc_info.value.code is ErrorCode.INVALID_KEY
            assert exc_info.value.status_code == 400

    def test_wrong_key_on_uncompressed_object(
        self, storage_config: StorageConfig, make_upload: Callable[..., Any]
    ) -> None:
        """Without a gzip header only the padding check applies.

        A random wrong key passes the padding check with probability of
        about 1/256, so nearly all wrong keys must be rejected up front.
        """
        stored = StorageWriter(storage_config).store(make_upload("cat.png", b"\x89PNG" * 100))
        reader = StorageReader(storage_config)

        rejected = 0
        for _ in range(50):
            try:
                reader.open(stored.name, key_to_string(generate_key()))
            except InvalidKeyError:
                rejected += 1

        assert rejected >= 45

    @pytest.mark.parametrize("key", [None, "", "not-a-key", "%%%", "A" * 43 + "!"])
    def test_missing_or_malformed_key(
        self, storage_config: StorageConfig, stored_txt: Any, key: str | None
    ) -> None:
        with pytest.raises(MalformedKeyError) as exc_info:
            StorageReader(storage_config).open(stored_txt.name, key)
        assert exc_info.value.code is ErrorCode.BAD_KEY_FORMAT

    def test_key_ignored_without_encryption(
        self, plain_config: StorageConfig, make_upload: Callable[..., Any]
    ) -> None:
        stored = StorageWriter(plain_config).store(make_upload("cat.png", b"meow"))
        assert _read_all(StorageReader(plain_config), stored.name, "whatever") == b"meow"


class TestResolutionErrors:
    """Tests for names that do not lead to a readable object."""

    def test_unknown_name(self, storage_config: StorageConfig) -> None:
        with pytest.raises(NotFoundError) as exc_info:
            StorageReader(storage_config).open("nope.png", key_to_string(generate_key()))
        assert exc_info.value.code is ErrorCode.FILE_DOES_NOT_EXIST

    @pytest.mark.parametrize("name", ["../../etc/passwd", "..", "/etc/passwd", "a/../../b"])
    def test_traversal_is_not_found(self, storage_config: StorageConfig, name: str) -> None:
        with pytest.raises(NotFoundError) as exc_info:
            StorageReader(storage_config).open(name)
        assert exc_info.value.status_code == 404

    def test_directory_is_not_found(self, storage_config: StorageConfig, upload_dir: Path) -> None:
        (upload_dir / "subdir").mkdir()
        with pytest.raises(NotFoundError):
            StorageReader(storage_config).open("subdir")

    @pytest.mark.skipif(
        not hasattr(os, "geteuid") or os.geteuid() == 0,
        reason="requires a non-root POSIX user",
    )
    def test_unreadable_object(
        self, plain_config: StorageConfig, make_upload: Callable[..., Any], upload_dir: Path
    ) -> None:
        stored = StorageWriter(plain_config).store(make_upload())
        path = upload_dir / stored.name
        path.chmod(0o000)
        try:
            with pytest.raises(ReadPermissionError) as exc_info:
                StorageReader(plain_config).open(stored.name)
            assert exc_info.value.code is ErrorCode.READ_PERMISSION
            assert exc_info.value.status_code == 500
        finally:
            path.chmod(0o644)


class TestCorruption:
    """Damaged objects are FILE_READ_ERROR."""

    def test_truncated_ciphertext(
        self, storage_config: StorageConfig, make_upload: Callable[..., Any], upload_dir: Path
    ) -> None:
        stored = StorageWriter(storage_config).store(make_upload("cat.png", b"x" * 100))
        path = upload_dir / stored.name
        path.write_bytes(path.read_bytes()[:-3])

        with pytest.raises(FileReadError) as exc_info:
            StorageReader(storage_config).open(stored.name, stored.key)
        assert exc_info.value.code is ErrorCode.FILE_READ_ERROR

    def test_corrupt_gzip_fails_while_streaming(
        self, plain_config: StorageConfig, upload_dir: Path
    ) -> None:
        (upload_dir / "broken.txt.gz").write_bytes(b"definitely not gzip")

        obj = StorageReader(plain_config).open("broken.txt.gz")
        with pytest.raises(FileReadError):
            b"".join(obj.chunks)

    def test_errors_share_base_class(self) -> None:
        """Callers can catch every failure through StorageError."""
        assert issubclass(FileReadError, StorageError)
        assert issubclass(InvalidKeyError, StorageError)


class TestContentType:
    """Tests for guess_content_type()."""

    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("cat.png-0a.png", "image/png"),
            ("notes.txt-0a.txt.gz", "text/plain"),
            ("clip.mp4-0a.mp4", "video/mp4"),
            ("mystery-0a.giv", None),
        ],
    )
    def test_guess(self, name: str, expected: str | None) -> None:
        assert guess_content_type(name) == expected

    def test_retrieved_object_has_content_type(
        self, storage_config: StorageConfig, make_upload: Callable[..., Any]
    ) -> None:
        stored = StorageWriter(storage_config).store(make_upload("notes.txt", b"hi"))
        obj = StorageReader(storage_config).open(stored.name, stored.key)

        assert obj.content_type == "text/plain"
        assert obj.name == stored.name
        obj.chunks.close()  # type: ignore[attr-defined]
