"""Configuration management for zotexon.

Settings are looked up in the environment first and then in a simple
``KEY=value`` file in the user's config directory.
"""

import logging
import os
from pathlib import Path
from typing import Optional

from .exceptions import ZotexonConfigError
from .utils import API_BASE_URL, STREAM_URL

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "config"
API_KEY_SETTING = "ZOTERO_API_KEY"
API_URL_SETTING = "ZOTERO_API_URL"
STREAM_URL_SETTING = "ZOTERO_STREAM_URL"


class Config:
    """Configuration for the Zotero connection."""

    def __init__(self, config_dir: Optional[Path] = None):
        """Initialize configuration.

        Args:
            config_dir: Directory holding the config file. Defaults to
                ``$ZOTEXON_CONFIG_DIR`` or ``~/.config/zotexon``.
        """
        if config_dir is None:
            env_dir = os.environ.get("ZOTEXON_CONFIG_DIR")
            config_dir = (
                Path(env_dir) if env_dir else Path.home() / ".config" / "zotexon"
            )
        self.config_dir = config_dir

    def get_config_path(self) -> Path:
        """Return the path of the config file."""
        return self.config_dir / CONFIG_FILE_NAME

    def _read_file(self) -> dict[str, str]:
        path = self.get_config_path()
        if not path.exists():
            return {}

        values: dict[str, str] = {}
        try:
            with open(path, encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if not line or line.startswith("#") or "=" not in line:
                        continue
                    key, value = line.split("=", 1)
                    values[key.strip()] = value.strip()
        except OSError as e:
            logger.warning(f"Failed to read config file {path}: {e}")
        return values

    def _get(self, key: str) -> Optional[str]:
        value = os.environ.get(key)
        if value:
            return value
        return self._read_file().get(key) or None

    @property
    def api_key(self) -> Optional[str]:
        return self._get(API_KEY_SETTING)

    @property
    def api_url(self) -> str:
        return (self._get(API_URL_SETTING) or API_BASE_URL).rstrip("/")

    @property
    def stream_url(self) -> str:
        return self._get(STREAM_URL_SETTING) or STREAM_URL

    def is_configured(self) -> bool:
        """Check whether an API key is available."""
        return self.api_key is not None

    def save_api_key(self, api_key: str) -> None:
        """Store the API key in the config file, keeping other settings.

        Raises:
            ZotexonConfigError: If the config file cannot be written
        """
        values = self._read_file()
        values[API_KEY_SETTING] = api_key

        path = self.get_config_path()
        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                for key, value in values.items():
                    f.write(f"{key}={value}\n")
            path.chmod(0o600)
        except OSError as e:
            raise ZotexonConfigError(f"Failed to write config file {path}: {e}") from e
        logger.debug(f"Saved API key to {path}")


config = Config()
