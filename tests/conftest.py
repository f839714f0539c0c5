"""Pytest configuration and shared fixtures for ImageShelter tests.

Fixtures:
- upload_dir: Empty storage root inside tmp_path
- storage_config: StorageConfig with encryption and the default extension lists
- plain_config: Same configuration with encryption disabled
- make_upload: Factory for UploadRequest objects over in-memory payloads
- test_settings: Settings with data_dir in tmp_path and a known secret
- fastapi_test_client: TestClient over an app built from test_settings
- stored_files: Helper listing the files a test left on disk
"""

from __future__ import annotations

import io
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest

from imageshelter.config import DEFAULT_ALLOWED_EXTENSIONS, DEFAULT_COMPRESSED_EXTENSIONS
from imageshelter.storage.models import StorageConfig, UploadRequest

TEST_SECRET = "test-secret-0123456789"


@pytest.fixture
def upload_dir(tmp_path: Path) -> Path:
    """Provide an empty storage root."""
    path = tmp_path / "uploads"
    path.mkdir()
    return path


@pytest.fixture
def storage_config(upload_dir: Path) -> StorageConfig:
    """Provide a storage configuration with encryption enabled."""
    return StorageConfig(
        upload_dir=upload_dir,
        allowed_extensions=frozenset(DEFAULT_ALLOWED_EXTENSIONS),
        compressed_extensions=frozenset(DEFAULT_COMPRESSED_EXTENSIONS),
        encrypt=True,
        secrets=frozenset({TEST_SECRET}),
    )


@pytest.fixture
def plain_config(upload_dir: Path) -> StorageConfig:
    """Provide a storage configuration with encryption disabled."""
    return StorageConfig(
        upload_dir=upload_dir,
        allowed_extensions=frozenset(DEFAULT_ALLOWED_EXTENSIONS),
        compressed_extensions=frozenset(DEFAULT_COMPRESSED_EXTENSIONS),
        encrypt=False,
        secrets=frozenset({TEST_SECRET}),
    )


@pytest.fixture
def make_upload() -> Callable[..., UploadRequest]:
    """Factory for upload requests carrying ``payload`` as the file part.

    Example:
        ```python
        def test_something(make_upload):
            request = make_upload("notes.txt", b"hello")
        ```
    """

    def _factory(
        filename: str | None = "cat.png",
        payload: bytes | None = b"\x89PNG\r\n\x1a\n",
        secret: str | None = TEST_SECRET,
        multipart: bool = True,
    ) -> UploadRequest:
        content = io.BytesIO(payload) if payload is not None else None
        return UploadRequest(
            filename=filename, content=content, secret=secret, multipart=multipart
        )

    return _factory


@pytest.fixture
def test_settings(tmp_path: Path) -> Any:
    """Provide test settings with isolated data directory.

    Args:
        tmp_path: pytest tmp_path fixture for temporary directory

    Returns:
        Settings instance with data_dir set to tmp_path
    """
    from imageshelter.config import Settings

    return Settings(
        data_dir=tmp_path / "test_data",
        secrets=[TEST_SECRET],
        log_to_file=False,
    )


@pytest.fixture
def fastapi_test_client(test_settings: Any, monkeypatch: pytest.MonkeyPatch) -> Iterator[Any]:
    """Provide a FastAPI TestClient for web application tests.

    ``get_settings()`` is patched to return ``test_settings`` so nothing
    reads the real environment or data directory.

    Yields:
        TestClient instance for the ImageShelter app
    """
    from fastapi.testclient import TestClient

    from imageshelter import config
    from imageshelter.web.app import create_app

    config.get_settings.cache_clear()
    monkeypatch.setattr(config, "get_settings", lambda: test_settings)

    app = create_app(settings=test_settings)
    with TestClient(app) as client:
        yield client

    monkeypatch.undo()
    config.reset_settings()


@pytest.fixture
def stored_files() -> Callable[[Path], list[Path]]:
    """Return a helper listing regular files under a directory (recursively)."""

    def _list(directory: Path) -> list[Path]:
        if not directory.exists():
            return []
        return sorted(p for p in directory.rglob("*") if p.is_file())

    return _list
