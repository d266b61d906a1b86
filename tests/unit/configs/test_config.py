"""
Unit tests for the config module.

Tests for Config path resolution, YAML loading and the lookup tables.
"""

from pathlib import Path

import pytest

from touchgrass.configs.config import Config
from touchgrass.configs.settings import Settings


@pytest.fixture
def config_file(tmp_path):
    """Write a small ingestion.yaml and return its path."""
    path = tmp_path / "ingestion.yaml"
    path.write_text(
        "category_synonyms:\n"
        "  Jazz: Music\n"
        "  index_name: ${SEARCH_INDEX}\n"
        "source_aliases:\n"
        "  Manual: PassThrough\n",
        encoding="utf-8",
    )
    return path


class TestConfigPaths:
    """Tests for Config path attributes."""

    def test_default_path_ships_with_package(self):
        path = Config(Settings()).ingestion_config_path
        assert isinstance(path, Path)
        assert path.exists()
        assert path.parent.name == "configs"

    def test_ingestion_config_path_follows_settings(self, config_file):
        config = Config(Settings(INGESTION_CONFIG_PATH=config_file))
        assert config.ingestion_config_path == config_file


class TestLoadIngestionConfig:
    """Tests for YAML loading."""

    def test_missing_file(self, tmp_path):
        config = Config(Settings(INGESTION_CONFIG_PATH=tmp_path / "absent.yaml"))
        with pytest.raises(FileNotFoundError):
            config.load_ingestion_config()

    def test_substitutes_settings_placeholders(self, config_file):
        config = Config(Settings(INGESTION_CONFIG_PATH=config_file, SEARCH_INDEX="my-index"))
        loaded = config.load_ingestion_config()
        assert loaded["category_synonyms"]["index_name"] == "my-index"

    def test_keys_are_lowercased(self, config_file):
        config = Config(Settings(INGESTION_CONFIG_PATH=config_file))
        assert config.category_synonyms()["jazz"] == "Music"
        assert config.source_aliases() == {"manual": "passthrough"}


class TestPackagedConfig:
    """Tests for the ingestion.yaml shipped with the package."""

    def test_synonyms_loaded(self):
        synonyms = Config(Settings()).category_synonyms()
        assert synonyms["jazz"] == "Music"
        assert synonyms["food"] == "Food & Drink"

    def test_aliases_point_at_known_kinds(self):
        from touchgrass.ingestion.normalization.sources import SourceKind

        kinds = {kind.value for kind in SourceKind}
        assert set(Config(Settings()).source_aliases().values()) <= kinds
