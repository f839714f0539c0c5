"""Storage layer exceptions.

Every error carries an :class:`ErrorCode`. The code is the discriminator
callers branch on: its value is the wire code sent to clients and its
``status_code`` the HTTP status the web layer responds with.
"""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """Wire error codes with their HTTP status."""

    NOT_FORM_DATA = "NOT_FORM_DATA"
    MISSING_SECRET = "MISSING_SECRET"
    INVALID_SECRET = "INVALID_SECRET"
    MISSING_IMAGE = "MISSING_IMAGE"
    WRONG_EXTENSION = "WRONG_EXTENSION"
    FILE_DOES_NOT_EXIST = "FILE_DOES_NOT_EXIST"
    READ_PERMISSION = "READ_PERMISSION"
    BAD_KEY_FORMAT = "BAD_KEY_FORMAT"
    INVALID_KEY = "INVALID_KEY"
    FILE_READ_ERROR = "FILE_READ_ERROR"
    UNEXPECTED_ERROR = "UNEXPECTED_ERROR"

    @property
    def status_code(self) -> int:
        return _STATUS_CODES[self]


_STATUS_CODES: dict[ErrorCode, int] = {
    ErrorCode.NOT_FORM_DATA: 400,
    ErrorCode.MISSING_SECRET: 400,
    ErrorCode.INVALID_SECRET: 403,
    ErrorCode.MISSING_IMAGE: 400,
    ErrorCode.WRONG_EXTENSION: 400,
    ErrorCode.FILE_DOES_NOT_EXIST: 404,
    ErrorCode.READ_PERMISSION: 500,
    ErrorCode.BAD_KEY_FORMAT: 400,
    ErrorCode.INVALID_KEY: 400,
    ErrorCode.FILE_READ_ERROR: 500,
    ErrorCode.UNEXPECTED_ERROR: 500,
}


class StorageError(Exception):
    """Base exception for storage operations.

    Attributes:
        code: Discriminator for the failure kind
        message: Client-safe message (never contains paths or key material)
    """

    default_code: ErrorCode = ErrorCode.UNEXPECTED_ERROR
    default_message: str = "Unexpected error."

    def __init__(self, message: str | None = None, *, code: ErrorCode | None = None) -> None:
        self.code = code or self.default_code
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return self.code.status_code


class InvalidRequestError(StorageError):
    """Raised when an upload request is malformed or not authorized."""

    default_code = ErrorCode.NOT_FORM_DATA
    default_message = "The request's type is not multipart/form-data."


class UnsupportedExtensionError(StorageError):
    """Raised when the uploaded file's extension is not in the allow-list."""

    default_code = ErrorCode.WRONG_EXTENSION
    default_message = "Wrong extension."


class NotFoundError(StorageError):
    """Raised when a requested object does not exist."""

    default_code = ErrorCode.FILE_DOES_NOT_EXIST
    default_message = "This file does not exist."


class PathTraversalError(NotFoundError):
    """Raised when a requested name resolves outside the storage root.

    Shares the not-found code so clients cannot tell a traversal attempt
    from a missing file.
    """


class ReadPermissionError(StorageError):
    """Raised when a stored object exists but cannot be read."""

    default_code = ErrorCode.READ_PERMISSION
    default_message = "File is not readable."


class FileReadError(StorageError):
    """Raised when reading or reconstructing a stored object fails."""

    default_code = ErrorCode.FILE_READ_ERROR
    default_message = "Could not read the file!"


class StorageCorruptedError(FileReadError):
    """Raised when stored bytes are not in the expected format."""


class StorageWriteError(StorageError):
    """Raised when an upload cannot be written to storage."""

    default_code = ErrorCode.UNEXPECTED_ERROR
    default_message = "Unexpected error with file saving."
