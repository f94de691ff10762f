"""
Library configuration tests.

Real config.yaml files in temporary directories.
"""

import pytest
import yaml
from pydantic import ValidationError

from infra.config import (
    LibraryConfig,
    LibraryConfigManager,
    get_library_config,
    get_storage_root,
    reload_config,
    resolve_env_vars,
)


class TestLibraryConfigManager:
    def test_missing_file_loads_defaults(self, tmp_path):
        """Without config.yaml the defaults apply."""
        manager = LibraryConfigManager(tmp_path)
        config = manager.load()

        assert not manager.exists()
        assert config.defaults.language == "Latin"
        assert config.defaults.target_language == "English"
        assert config.pipeline.context_chars == 2000
        assert config.batch.retention_hours == 48
        assert config.split.overlap == 10
        assert "gemini" in config.api_keys

    def test_save_and_reload(self, tmp_path):
        manager = LibraryConfigManager(tmp_path)
        config = LibraryConfig.with_defaults()
        config.defaults.parallel_pages = 5
        manager.save(config)

        assert manager.exists()
        assert manager.load().defaults.parallel_pages == 5

    def test_update_merges_nested_keys(self, tmp_path):
        manager = LibraryConfigManager(tmp_path)
        manager.save(LibraryConfig.with_defaults())

        config = manager.update({"pipeline": {"context_chars": 500}})

        assert config.pipeline.context_chars == 500
        # Untouched siblings survive the merge
        assert config.pipeline.max_retries == 3
        assert manager.load().pipeline.context_chars == 500

    def test_update_rejects_invalid_values(self, tmp_path):
        manager = LibraryConfigManager(tmp_path)
        manager.save(LibraryConfig.with_defaults())

        with pytest.raises(ValidationError):
            manager.update({"defaults": {"parallel_pages": 50}})

    def test_partial_yaml_fills_defaults(self, tmp_path):
        (tmp_path / "config.yaml").write_text(yaml.safe_dump({"batch": {"max_pages": 10}}))

        config = LibraryConfigManager(tmp_path).load()

        assert config.batch.max_pages == 10
        assert config.batch.orphan_grace_hours == 24

    def test_dotted_keys(self, tmp_path):
        manager = LibraryConfigManager(tmp_path)

        manager.set_value("batch.retention_hours", 72)

        assert manager.get_value("batch.retention_hours") == 72
        assert manager.load().batch.max_pages == 100

    def test_dotted_key_errors(self, tmp_path):
        manager = LibraryConfigManager(tmp_path)

        with pytest.raises(KeyError):
            manager.set_value("retention_hours", 72)
        with pytest.raises(KeyError):
            manager.get_value("batch.no_such_field")
        with pytest.raises(ValidationError):
            manager.set_value("pipeline.context_chars", "lots")
        assert not manager.exists()

    def test_set_api_key(self, tmp_path):
        manager = LibraryConfigManager(tmp_path)
        manager.set_api_key("gemini", "literal-key")
        assert manager.load().resolve_api_key("gemini") == "literal-key"


class TestApiKeyResolution:
    def test_env_reference_resolved(self, monkeypatch):
        monkeypatch.setenv("SCRIPTORIUM_TEST_KEY", "secret")
        config = LibraryConfig(api_keys={"openrouter": "${SCRIPTORIUM_TEST_KEY}"})
        assert config.resolve_api_key("openrouter") == "secret"

    def test_unset_env_reference_is_none(self, monkeypatch):
        monkeypatch.delenv("SCRIPTORIUM_MISSING_KEY", raising=False)
        config = LibraryConfig(api_keys={"gemini": "${SCRIPTORIUM_MISSING_KEY}"})
        assert config.resolve_api_key("gemini") is None
        assert config.resolve_api_key("unknown") is None

    def test_literal_passthrough(self):
        assert resolve_env_vars("plain") == "plain"


class TestRuntime:
    def test_storage_root_from_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SCRIPTORIUM_STORAGE_ROOT", str(tmp_path))
        assert get_storage_root() == tmp_path.resolve()

    def test_cached_config_reloads(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SCRIPTORIUM_STORAGE_ROOT", str(tmp_path))
        reload_config()
        assert get_library_config().defaults.parallel_pages == 3

        manager = LibraryConfigManager(tmp_path)
        manager.save(LibraryConfig(defaults={"parallel_pages": 7}))

        # Cached until reloaded
        assert get_library_config().defaults.parallel_pages == 3
        assert reload_config().defaults.parallel_pages == 7
        get_library_config.cache_clear()
