"""Plaintext backup of issued decryption keys.

Operators can enable this to recover objects whose uploader lost the key.
Anyone who can read the backup directory can decrypt every object, so it
is disabled by default.
"""

from __future__ import annotations

import logging
from pathlib import Path

logger = logging.getLogger(__name__)

BACKUP_SUFFIX = ".txt"


class KeyBackup:
    """Writes one ``<stem>.txt`` file per upload into a backup directory.

    Backups are a side write: failures are logged and never propagate to
    the upload that triggered them.
    """

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    def path_for(self, stem: str) -> Path:
        return self.directory / f"{stem}{BACKUP_SUFFIX}"

    def save(self, stem: str, encoded_key: str) -> bool:
        """Persist ``encoded_key`` for the object identified by ``stem``.

        Returns:
            True if the backup was written
        """
        path = self.path_for(stem)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with path.open("x", encoding="utf-8") as f:
                f.write(encoded_key)
        except OSError as e:
            logger.warning(f"Failed to back up key for {stem}: {e}")
            return False

        logger.debug(f"Backed up key for {stem}")
        return True
