"""Centralized settings management for the ingestion core."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy import make_url


class Settings(BaseSettings):
    """
    Application settings powered by pydantic-settings.

    Loads configuration from environment variables and a .env file located
    at the repository root.
    """

    # -------------------------------------------------------------------------
    # ENVIRONMENT
    # -------------------------------------------------------------------------
    ENV: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    # -------------------------------------------------------------------------
    # KEY-VALUE STORE
    # -------------------------------------------------------------------------
    STORE_BACKEND: str = Field(default="memory", pattern="^(memory|postgres)$")
    DATABASE_URL: str | None = None
    STORE_TABLE: str = "items"

    # -------------------------------------------------------------------------
    # SEARCH INDEX
    # -------------------------------------------------------------------------
    SEARCH_BACKEND: str = Field(default="memory", pattern="^(memory|opensearch)$")
    SEARCH_URL: str | None = None
    SEARCH_USERNAME: str | None = None
    SEARCH_PASSWORD: SecretStr | None = None
    SEARCH_INDEX: str = "events-groups-index"
    SEARCH_TIMEOUT: float = 10.0

    # -------------------------------------------------------------------------
    # PIPELINE TUNING
    # -------------------------------------------------------------------------
    BATCH_SIZE: int = Field(default=25, ge=1, le=25)
    MAX_RETRIES: int = Field(default=3, ge=0)
    RETRY_BASE_DELAY: float = Field(default=0.1, ge=0)
    WRITE_PACING_SECONDS: float = Field(default=0.1, ge=0)
    NORMALIZE_WORKERS: int = Field(default=4, ge=1)

    # -------------------------------------------------------------------------
    # PATHS
    # -------------------------------------------------------------------------
    # BASE_DIR points to the touchgrass package
    BASE_DIR: Path = Path(__file__).resolve().parents[1]

    INGESTION_CONFIG_PATH: Path = BASE_DIR / "configs" / "ingestion.yaml"
    # When unset, run history lives in memory for the life of the process
    RUN_HISTORY_DIR: Path | None = None

    # -------------------------------------------------------------------------
    # CONFIGURATION
    # -------------------------------------------------------------------------
    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).resolve().parents[2] / ".env"),
        env_file_encoding="utf-8",
        # Allow extra fields in .env but ignore them in the model
        extra="ignore",
    )

    def get_psycopg2_params(self) -> dict:
        """
        Parse DATABASE_URL into psycopg2-compatible connection parameters.

        Uses sqlalchemy.make_url for robust parsing of complex connection strings.

        Returns
        -------
        dict
            psycopg2 connection arguments (host, port, dbname, user, password).

        Raises
        ------
        ValueError
            If DATABASE_URL is not configured.
        """
        if not self.DATABASE_URL:
            raise ValueError("DATABASE_URL is required for the postgres store backend")
        url = make_url(self.DATABASE_URL)
        return {
            "host": url.host,
            "port": url.port,
            "dbname": url.database,
            "user": url.username,
            "password": url.password,
        }


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns
    -------
    Settings
        The singleton settings instance.
    """
    return Settings()
