"""Security module for ImageShelter.

Provides key generation, the object cipher and key backups.
"""

from imageshelter.security.cipher import (
    BLOCK_SIZE,
    KEY_SIZE,
    ZERO_IV,
    AuthenticationOrPaddingError,
    CipherError,
    CipherTransform,
    InvalidKeyError,
    KeyGenerationError,
    MalformedKeyError,
    check_final_block,
    decrypt_block,
    decrypt_transform,
    encrypt_transform,
    generate_key,
    key_to_string,
    string_to_key,
)
from imageshelter.security.key_backup import KeyBackup

__all__ = [
    # Keys
    "KEY_SIZE",
    "BLOCK_SIZE",
    "ZERO_IV",
    "generate_key",
    "key_to_string",
    "string_to_key",
    # Cipher
    "CipherTransform",
    "encrypt_transform",
    "decrypt_transform",
    "decrypt_block",
    "check_final_block",
    # Errors
    "CipherError",
    "KeyGenerationError",
    "MalformedKeyError",
    "InvalidKeyError",
    "AuthenticationOrPaddingError",
    # Backups
    "KeyBackup",
]
