"""Containment of requested names within the storage root."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from imageshelter.storage.errors import PathTraversalError

logger = logging.getLogger(__name__)


class PathGuard:
    """Resolves client-supplied names to paths inside a storage root.

    The root is canonicalized once, at construction. Each requested name is
    joined to the root and canonicalized (symlinks followed); the result must
    lie strictly below the root.

    Example:
        ```python
        guard = PathGuard(Path("uploads"))
        path = guard.resolve("cat.png-0123abcd.png")
        guard.resolve("../../etc/passwd")  # raises PathTraversalError
        ```
    """

    def __init__(self, root: Path) -> None:
        self.root = root.resolve()
        self._prefix = str(self.root).rstrip(os.sep) + os.sep

    def resolve(self, requested_name: str) -> Path:
        """Canonicalize ``requested_name`` under the root.

        Args:
            requested_name: Relative name as received from the client

        Returns:
            Absolute, symlink-free path inside the root

        Raises:
            PathTraversalError: If the name is empty, contains a NUL byte, or
                resolves to the root itself or anywhere outside it
        """
        if not requested_name or "\x00" in requested_name:
            raise PathTraversalError()

        try:
            candidate = (self.root / requested_name).resolve()
        except (OSError, RuntimeError) as e:
            # RuntimeError: symlink loop on older Pythons
            logger.warning(f"Could not canonicalize requested name {requested_name!r}: {e}")
            raise PathTraversalError() from e

        if not str(candidate).startswith(self._prefix):
            logger.warning(f"Rejected path outside storage root: {requested_name!r}")
            raise PathTraversalError()

        return candidate
