"""File-backed storage for CLI configuration and credentials."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, TypeVar

from pydantic import BaseModel, ValidationError

from meerkat.models import StoredConfig, StoredCredentials

if TYPE_CHECKING:
    from meerkat.core.config import Settings

logger = logging.getLogger(__name__)

CONFIG_FILE = "config.json"
CREDENTIALS_FILE = "credentials.json"
CREDENTIALS_MODE = 0o600

SETTABLE_KEYS = ("server_url", "currency")

ModelT = TypeVar("ModelT", bound=BaseModel)


class ConfigKeyError(Exception):
    """Raised when config-set is given a key outside the allow-list."""


class ConfigMissingError(Exception):
    """Raised when an operation needs config.json and there is none."""


class CredentialStore:
    """JSON file storage for the config and credential records.

    Every call reads or writes the files fresh; nothing is cached between
    calls.
    """

    def __init__(self, config_dir: str | Path) -> None:
        """Initialize credential store.

        Args:
            config_dir: Directory holding config.json and credentials.json
        """
        self.config_dir = Path(config_dir).expanduser()

    @classmethod
    def from_settings(cls, settings: Settings) -> CredentialStore:
        """Create a store for the configured directory."""
        return cls(settings.config_dir)

    @property
    def config_path(self) -> Path:
        """Path of config.json."""
        return self.config_dir / CONFIG_FILE

    @property
    def credentials_path(self) -> Path:
        """Path of credentials.json."""
        return self.config_dir / CREDENTIALS_FILE

    def load_config(self) -> StoredConfig | None:
        """Load the config record, or None if missing or unreadable."""
        return self._load(self.config_path, StoredConfig)

    def save_config(self, config: StoredConfig) -> None:
        """Overwrite config.json with the full record."""
        self._write(self.config_path, config.to_file_dict())
        logger.info("Saved config to %s", self.config_path)

    def load_credentials(self) -> StoredCredentials | None:
        """Load the credential record, or None if missing or unreadable."""
        return self._load(self.credentials_path, StoredCredentials)

    def save_credentials(self, credentials: StoredCredentials) -> None:
        """Overwrite credentials.json and restrict it to the owner."""
        self._write(self.credentials_path, credentials.model_dump())
        self.credentials_path.chmod(CREDENTIALS_MODE)
        logger.info(
            "Saved credentials to %s",
            self.credentials_path,
            extra={"credentials": credentials.model_dump_masked()},
        )

    def delete_credentials(self) -> None:
        """Delete credentials.json; a missing file is not an error."""
        try:
            self.credentials_path.unlink()
        except FileNotFoundError:
            logger.debug("No credentials file to delete: %s", self.credentials_path)
        else:
            logger.info("Deleted credentials file: %s", self.credentials_path)

    def update_config(self, key: str, value: str) -> StoredConfig:
        """Set one allow-listed key in the stored config.

        Args:
            key: One of ``SETTABLE_KEYS``
            value: New value

        Returns:
            The saved config

        Raises:
            ConfigKeyError: If key is not settable
            ConfigMissingError: If no config has been stored yet
        """
        if key not in SETTABLE_KEYS:
            msg = f"Unknown config key: {key}. Valid keys: {', '.join(SETTABLE_KEYS)}"
            raise ConfigKeyError(msg)

        config = self.load_config()
        if config is None:
            msg = "No configuration found. Run `meerkat login` first."
            raise ConfigMissingError(msg)

        updated = config.model_copy(update={key: value})
        self.save_config(updated)
        return updated

    def _load(self, path: Path, model: type[ModelT]) -> ModelT | None:
        if not path.exists():
            logger.debug("File does not exist: %s", path)
            return None

        try:
            with path.open(encoding="utf-8") as f:
                data: Any = json.load(f)
            return model.model_validate(data)
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            logger.warning("Ignoring corrupt file %s: %s", path, e)
            return None

    def _write(self, path: Path, data: dict[str, Any]) -> None:
        self.config_dir.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
