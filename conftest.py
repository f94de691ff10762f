"""
Root pytest configuration.

Keeps tests away from the developer's real library: the storage root env
var points into a per-test temp dir and the cached runtime config is
dropped around every test.
"""

import pytest

from infra.config import get_library_config


@pytest.fixture(autouse=True)
def isolated_storage_root(tmp_path, monkeypatch):
    monkeypatch.setenv("SCRIPTORIUM_STORAGE_ROOT", str(tmp_path / "default-library"))
    get_library_config.cache_clear()
    yield
    get_library_config.cache_clear()
