"""Tests for the storage error hierarchy and its wire mapping."""

from __future__ import annotations

import pytest

from imageshelter.security.cipher import (
    AuthenticationOrPaddingError,
    InvalidKeyError,
    KeyGenerationError,
    MalformedKeyError,
)
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


class TestErrorCodes:
    """Tests for ErrorCode status mapping."""

    @pytest.mark.parametrize(
        ("code", "status"),
        [
            (ErrorCode.NOT_FORM_DATA, 400),
            (ErrorCode.MISSING_SECRET, 400),
            (ErrorCode.INVALID_SECRET, 403),
            (ErrorCode.MISSING_IMAGE, 400),
            (ErrorCode.WRONG_EXTENSION, 400),
            (ErrorCode.FILE_DOES_NOT_EXIST, 404),
            (ErrorCode.READ_PERMISSION, 500),
            (ErrorCode.BAD_KEY_FORMAT, 400),
            (ErrorCode.INVALID_KEY, 400),
            (ErrorCode.FILE_READ_ERROR, 500),
            (ErrorCode.UNEXPECTED_ERROR, 500),
        ],
    )
    def test_status_code(self, code: ErrorCode, status: int) -> None:
        assert code.status_code == status

    def test_wire_value_is_name(self) -> None:
        assert all(code.value == code.name for code in ErrorCode)


class TestExceptions:
    """Tests for default codes and messages."""

    @pytest.mark.parametrize(
        ("exc_type", "code"),
        [
            (InvalidRequestError, ErrorCode.NOT_FORM_DATA),
            (UnsupportedExtensionError, ErrorCode.WRONG_EXTENSION),
            (NotFoundError, ErrorCode.FILE_DOES_NOT_EXIST),
            (PathTraversalError, ErrorCode.FILE_DOES_NOT_EXIST),
            (ReadPermissionError, ErrorCode.READ_PERMISSION),
            (FileReadError, ErrorCode.FILE_READ_ERROR),
            (StorageCorruptedError, ErrorCode.FILE_READ_ERROR),
            (StorageWriteError, ErrorCode.UNEXPECTED_ERROR),
            (MalformedKeyError, ErrorCode.BAD_KEY_FORMAT),
            (InvalidKeyError, ErrorCode.INVALID_KEY),
            (AuthenticationOrPaddingError, ErrorCode.INVALID_KEY),
            (KeyGenerationError, ErrorCode.UNEXPECTED_ERROR),
        ],
    )
    def test_default_code(self, exc_type: type[StorageError], code: ErrorCode) -> None:
        exc = exc_type()

        assert isinstance(exc, StorageError)
        assert exc.code is code
        assert exc.status_code == code.status_code
        assert exc.message
        assert str(exc) == exc.message

    def test_code_override(self) -> None:
        exc = InvalidRequestError("Secret not provided.", code=ErrorCode.MISSING_SECRET)

        assert exc.code is ErrorCode.MISSING_SECRET
        assert exc.message == "Secret not provided."
        assert exc.status_code == 400

    def test_traversal_indistinguishable_from_missing(self) -> None:
        assert PathTraversalError().message == NotFoundError().message
