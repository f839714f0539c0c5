"""Stored-name generation.

A stored name looks like ``cat.png-<32 hex chars>.png`` with ``.gz``
appended for compressed objects. The compression marker is the only
per-object metadata: readers decide whether to decompress from the name
alone.
"""

from __future__ import annotations

import re
import secrets
from dataclasses import dataclass
from pathlib import PurePosixPath, PureWindowsPath

COMPRESSION_SUFFIX = ".gz"

# 16 random bytes: 128 bits, so collisions are not a practical concern and
# names are never checked against existing storage.
RANDOM_BYTES = 16

MAX_FILENAME_LENGTH = 100
FALLBACK_FILENAME = "file"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


@dataclass(frozen=True)
class StoredName:
    """Generated name of a stored object.

    Attributes:
        stem: Sanitized original filename plus random suffix, before the extension
        name: Full on-disk name
        compressed: Whether the name carries the compression marker
    """

    stem: str
    name: str
    compressed: bool


def final_component(filename: str) -> str:
    """Last path component under both POSIX and Windows separator rules."""
    return PureWindowsPath(PurePosixPath(filename).name).name


def sanitize_filename(filename: str) -> str:
    """Reduce an uploaded filename to a safe single path component.

    Keeps only the final component (under both POSIX and Windows separator
    rules), drops characters outside ``[A-Za-z0-9._-]`` and leading dots.

    Args:
        filename: Filename as sent by the client

    Returns:
        Safe filename, or ``"file"`` if nothing usable remains
    """
    name = _UNSAFE_CHARS.sub("", final_component(filename)).lstrip(".")
    return name[:MAX_FILENAME_LENGTH] or FALLBACK_FILENAME


def is_compressed_name(name: str) -> bool:
    return name.endswith(COMPRESSION_SUFFIX)


def strip_compression_suffix(name: str) -> str:
    if is_compressed_name(name):
        return name[: -len(COMPRESSION_SUFFIX)]
    return name


def generate(original_filename: str, extension: str, compressed: bool) -> StoredName:
    """Generate a collision-resistant stored name.

    Args:
        original_filename: Filename as uploaded (sanitized here)
        extension: Validated extension without the leading dot
        compressed: Whether the object will be compressed

    Returns:
        StoredName for the new object
    """
    stem = f"{sanitize_filename(original_filename)}-{secrets.token_hex(RANDOM_BYTES)}"
    name = f"{stem}.{extension}"
    if compressed:
        name += COMPRESSION_SUFFIX
    return StoredName(stem=stem, name=name, compressed=compressed)
