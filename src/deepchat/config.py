"""API configuration.

Hides where endpoint, key and model names come from: a JSON settings file,
overridden by environment variables.
"""

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_serializer

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "https://api.deepseek.com"
DEFAULT_CHAT_MODEL = "deepseek-chat"
DEFAULT_REASONER_MODEL = "deepseek-reasoner"

# Environment variable -> settings field
ENV_OVERRIDES = {
    "DEEPSEEK_API_ENDPOINT": "api_endpoint",
    "DEEPSEEK_API_KEY": "api_key",
    "DEEPSEEK_CHAT_MODEL": "chat_model",
    "DEEPSEEK_REASONER_MODEL": "reasoner_model",
}


class ConfigurationError(Exception):
    """Settings are incomplete; no request can be made."""

    def __init__(self, missing: list[str]):
        super().__init__(f"Missing configuration: {', '.join(missing)}")
        self.missing = missing


class Settings(BaseModel):
    """Immutable snapshot of the API configuration."""

    model_config = ConfigDict(frozen=True)

    api_endpoint: str = Field(default=DEFAULT_ENDPOINT, description="API base URL")
    api_key: SecretStr = Field(default=SecretStr(""), description="Bearer token")
    chat_model: str = Field(default=DEFAULT_CHAT_MODEL, description="Model for normal replies")
    reasoner_model: str = Field(
        default=DEFAULT_REASONER_MODEL,
        description="Model used when deep thinking is enabled"
    )

    def missing_fields(self) -> list[str]:
        values = {
            "api_endpoint": self.api_endpoint,
            "api_key": self.api_key.get_secret_value(),
            "chat_model": self.chat_model,
            "reasoner_model": self.reasoner_model,
        }
        return [name for name, value in values.items() if not value.strip()]

    @property
    def is_valid(self) -> bool:
        return not self.missing_fields()

    def require_valid(self) -> "Settings":
        """Return self, or raise ConfigurationError listing empty fields."""
        missing = self.missing_fields()
        if missing:
            raise ConfigurationError(missing)
        return self

    def model_for(self, deep_thinking: bool) -> str:
        return self.reasoner_model if deep_thinking else self.chat_model

    @field_serializer("api_key", when_used="json")
    def serialize_api_key(self, value: SecretStr) -> str:
        return value.get_secret_value()

    def to_json(self) -> str:
        """File representation, with the API key in clear text."""
        return self.model_dump_json(indent=2)


class SettingsProvider(Protocol):
    """Anything that can hand out the current settings snapshot."""

    def get(self) -> Settings:
        ...


class StaticSettings:
    """Fixed settings, for scripts and tests."""

    def __init__(self, settings: Settings):
        self._settings = settings

    def get(self) -> Settings:
        return self._settings


class SettingsStore:
    """Settings persisted to a JSON file, with environment overrides.

    ``get()`` returns an immutable snapshot; ``update()`` replaces it. A
    request built from an earlier snapshot is unaffected by later updates.
    Environment overrides are applied on read and never written to the file.
    """

    def __init__(self, path: str | Path, environ: Mapping[str, str] | None = None):
        self._path = Path(path)
        self._environ = os.environ if environ is None else environ
        self._stored = self._read()
        self._effective = self._apply_env(self._stored)

    @property
    def path(self) -> Path:
        return self._path

    def get(self) -> Settings:
        return self._effective

    def stored(self) -> Settings:
        """Settings as saved in the file, without environment overrides."""
        return self._stored

    def update(self, **changes: Any) -> Settings:
        """Change and persist settings fields.

        Args:
            **changes: Settings fields to replace; None values are ignored

        Returns:
            The new effective settings

        Raises:
            ValueError: If a field name is unknown or a value is invalid
        """
        changes = {k: v for k, v in changes.items() if v is not None}
        unknown = set(changes) - set(Settings.model_fields)
        if unknown:
            raise ValueError(f"Unknown settings field(s): {', '.join(sorted(unknown))}")

        data = self._stored.model_dump()
        data.update(changes)
        self._stored = Settings(**data)
        self._write(self._stored)
        self._effective = self._apply_env(self._stored)
        return self._effective

    def _read(self) -> Settings:
        if not self._path.exists():
            return Settings()
        try:
            return Settings.model_validate_json(self._path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            logger.warning("Ignoring unreadable settings file %s: %s", self._path, e)
            return Settings()

    def _write(self, settings: Settings) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(settings.to_json(), encoding="utf-8")
        logger.debug("Saved settings to %s", self._path)

    def _apply_env(self, settings: Settings) -> Settings:
        overrides = {
            field: self._environ[var]
            for var, field in ENV_OVERRIDES.items()
            if self._environ.get(var)
        }
        if not overrides:
            return settings
        data = settings.model_dump()
        data.update(overrides)
        return Settings(**data)
