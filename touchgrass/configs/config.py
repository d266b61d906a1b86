"""Configuration loader for the ingestion core."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from touchgrass.configs.settings import Settings, get_settings

logger = logging.getLogger(__name__)


class Config:
    """YAML-backed ingestion configuration (category synonyms, source aliases)."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self._ingestion_config: dict[str, Any] | None = None

    @property
    def ingestion_config_path(self) -> Path:
        """Return the absolute path to ingestion.yaml."""
        return Path(self.settings.INGESTION_CONFIG_PATH)

    def load_ingestion_config(self) -> dict[str, Any]:
        """Load the YAML configuration for the ingestion pipeline."""
        if self._ingestion_config is not None:
            return self._ingestion_config

        path = self.ingestion_config_path
        if not path.exists():
            raise FileNotFoundError(f"Missing config at {path}")

        with open(path, encoding="utf-8") as f:
            content = f.read()

        # Substitute environment variables from settings
        # This handles placeholders like ${SEARCH_INDEX} in the YAML
        for key, value in self.settings.model_dump().items():
            placeholder = f"${{{key}}}"
            if placeholder in content:
                # Handle SecretStr
                val_str = (
                    value.get_secret_value()
                    if hasattr(value, "get_secret_value")
                    else str(value)
                )
                content = content.replace(placeholder, val_str)

        self._ingestion_config = yaml.safe_load(content) or {}
        logger.debug(f"Loaded ingestion config from {path}")
        return self._ingestion_config

    def category_synonyms(self) -> dict[str, str]:
        """Lowercase token -> canonical category label."""
        raw = self.load_ingestion_config().get("category_synonyms") or {}
        return {str(k).strip().lower(): str(v) for k, v in raw.items()}

    def source_aliases(self) -> dict[str, str]:
        """Source tag -> transform kind, for tags that are not kinds themselves."""
        raw = self.load_ingestion_config().get("source_aliases") or {}
        return {str(k).strip().lower(): str(v).strip().lower() for k, v in raw.items()}

