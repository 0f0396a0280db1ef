"""JSON file-based settings store."""

import json
import logging
import os
import tempfile
from pathlib import Path

from ..interfaces import Settings, SettingsStore

logger = logging.getLogger(__name__)


class JsonSettingsStore(SettingsStore):
    """Settings store that keeps owner and admins in a JSON file.

    File format::

        {"ownerJid": "123@s.whatsapp.net", "adminJids": ["456@s.whatsapp.net"]}
    """

    def __init__(self, path: str | Path):
        """
        Initialize with the settings file path.

        Args:
            path: JSON file to read from and write to. Created on first save.
        """
        self.path = Path(path).expanduser()

    def load(self) -> Settings:
        """
        Load settings from the file.

        A missing or unreadable file yields empty settings.

        Returns:
            The stored settings.
        """
        if not self.path.exists():
            logger.info(f"No settings file at {self.path}, starting with empty settings")
            return Settings()

        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error loading settings file {self.path}: {e}")
            return Settings()

        if not isinstance(data, dict):
            logger.error(f"Settings file {self.path} does not hold a JSON object")
            return Settings()

        owner = data.get("ownerJid") or None
        admins = data.get("adminJids") or []
        if owner is not None and not isinstance(owner, str):
            logger.error(f"Settings file {self.path} has a non-string ownerJid")
            return Settings()
        if not isinstance(admins, list) or not all(isinstance(a, str) for a in admins):
            logger.error(f"Settings file {self.path} has an adminJids that is not a list of strings")
            return Settings()

        return Settings(owner=owner, admins=admins)

    def save(self, settings: Settings) -> bool:
        """
        Write settings to the file.

        The data is flushed to disk and then moved over the old file, so a
        crash leaves either the old or the new settings in place.

        Args:
            settings: Settings to persist.

        Returns:
            True if saved, False otherwise.
        """
        data = {
            "ownerJid": settings.owner,
            "adminJids": sorted(settings.admins),
        }

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_name, self.path)
            except OSError:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            logger.error(f"Error saving settings file {self.path}: {e}")
            return False

        logger.info("Settings saved successfully")
        return True
