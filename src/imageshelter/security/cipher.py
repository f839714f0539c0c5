"""AES-256 key handling and incremental CBC transforms.

Keys travel to clients as URL-safe base64 strings. Objects are encrypted
with AES in CBC mode with PKCS#7 padding and a fixed all-zero IV, the
on-disk format of every object written so far.

Note:
    The zero IV means two objects encrypted under the same key leak whether
    their leading blocks are equal. Each upload gets a fresh key, so this
    only matters if a key is ever reused. Moving to an authenticated mode
    with a per-object nonce needs a format migration for existing objects.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
import secrets

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from imageshelter.storage.errors import ErrorCode, StorageCorruptedError, StorageError

logger = logging.getLogger(__name__)

KEY_SIZE = 32  # AES-256
BLOCK_SIZE = algorithms.AES.block_size // 8
ZERO_IV = bytes(BLOCK_SIZE)

_URLSAFE_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_-]+={0,2}$")


class CipherError(StorageError):
    """Base exception for key and cipher failures."""


class KeyGenerationError(CipherError):
    """Raised when the secure random source cannot produce key material."""

    default_code = ErrorCode.UNEXPECTED_ERROR
    default_message = "Unexpected error while generating the AES key."


class MalformedKeyError(CipherError):
    """Raised when a key string is absent, not URL-safe base64, or the wrong size."""

    default_code = ErrorCode.BAD_KEY_FORMAT
    default_message = "Bad key format."


class InvalidKeyError(CipherError):
    """Raised when a key cannot be used to decrypt an object."""

    default_code = ErrorCode.INVALID_KEY
    default_message = "Invalid key provided!"


class AuthenticationOrPaddingError(InvalidKeyError):
    """Raised when decrypted data has invalid padding (almost always a wrong key)."""


def generate_key() -> bytes:
    """Generate fresh 256-bit key material from the OS CSPRNG.

    Raises:
        KeyGenerationError: If no secure random source is available
    """
    try:
        return secrets.token_bytes(KEY_SIZE)
    except (NotImplementedError, OSError) as e:
        raise KeyGenerationError() from e


def key_to_string(key: bytes) -> str:
    """Encode key material as padded URL-safe base64."""
    return base64.urlsafe_b64encode(key).decode("ascii")


def string_to_key(value: str | None) -> bytes:
    """Decode a key string produced by :func:`key_to_string`.

    Trailing ``=`` padding is optional. Characters outside the URL-safe
    alphabet are rejected rather than skipped.

    Args:
        value: Encoded key as received from a client

    Returns:
        32 bytes of key material

    Raises:
        MalformedKeyError: If the value is missing, badly encoded or not 32 bytes
    """
    if not value or not _URLSAFE_KEY_PATTERN.fullmatch(value):
        raise MalformedKeyError()

    stripped = value.rstrip("=")
    try:
        key = base64.urlsafe_b64decode(stripped + "=" * (-len(stripped) % 4))
    except (binascii.Error, ValueError) as e:
        raise MalformedKeyError() from e

    if len(key) != KEY_SIZE:
        raise MalformedKeyError()
    return key


def _check_key(key: bytes) -> None:
    if not isinstance(key, bytes | bytearray) or len(key) != KEY_SIZE:
        raise InvalidKeyError()


def _aes_cbc(key: bytes, iv: bytes = ZERO_IV) -> Cipher[modes.CBC]:
    return Cipher(algorithms.AES(bytes(key)), modes.CBC(iv))


class CipherTransform:
    """Incremental AES-CBC transform with PKCS#7 padding, one direction.

    ``update`` can be called any number of times with arbitrarily sized
    chunks; ``finalize`` must be called exactly once, after the last chunk.
    """

    def __init__(self, key: bytes, *, encrypt: bool) -> None:
        _check_key(key)
        cipher = _aes_cbc(key)
        pkcs7 = padding.PKCS7(algorithms.AES.block_size)

        self.encrypting = encrypt
        if encrypt:
            self._context = cipher.encryptor()
            self._padding = pkcs7.padder()
        else:
            self._context = cipher.decryptor()
            self._padding = pkcs7.unpadder()

    def update(self, data: bytes) -> bytes:
        if self.encrypting:
            return self._context.update(self._padding.update(data))
        return self._padding.update(self._context.update(data))

    def finalize(self) -> bytes:
        """Flush the last block.

        Raises:
            AuthenticationOrPaddingError: If decrypted padding is invalid
            StorageCorruptedError: If ciphertext length is not block aligned
        """
        if self.encrypting:
            return self._context.update(self._padding.finalize()) + self._context.finalize()

        try:
            tail = self._context.finalize()
        except ValueError as e:
            raise StorageCorruptedError("Encrypted data is truncated.") from e

        try:
            return self._padding.update(tail) + self._padding.finalize()
        except ValueError as e:
            raise AuthenticationOrPaddingError() from e


def encrypt_transform(key: bytes) -> CipherTransform:
    """Build an encrypting transform for ``key``.

    Raises:
        InvalidKeyError: If the key is not 32 bytes
    """
    return CipherTransform(key, encrypt=True)


def decrypt_transform(key: bytes) -> CipherTransform:
    """Build a decrypting transform for ``key``.

    Raises:
        InvalidKeyError: If the key is not 32 bytes
    """
    return CipherTransform(key, encrypt=False)


def decrypt_block(key: bytes, block: bytes, iv: bytes = ZERO_IV) -> bytes:
    """Decrypt a single ciphertext block without touching padding."""
    _check_key(key)
    decryptor = _aes_cbc(key, iv).decryptor()
    return decryptor.update(block) + decryptor.finalize()


def check_final_block(key: bytes, previous_block: bytes, final_block: bytes) -> None:
    """Validate the padding of the last ciphertext block.

    In CBC mode the last block decrypts independently given the block before
    it (or the IV for single-block objects), so a wrong key is detected
    without reading the whole object.

    Raises:
        InvalidKeyError: If the key is not 32 bytes
        AuthenticationOrPaddingError: If the padding is invalid
    """
    plaintext = decrypt_block(key, final_block, previous_block)
    unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
    try:
        unpadder.update(plaintext)
        unpadder.finalize()
    except ValueError as e:
        raise AuthenticationOrPaddingError() from e
