"""
Process-wide configuration lookup.

SCRIPTORIUM_STORAGE_ROOT (optionally from a .env file) locates the library;
everything else, API keys included, comes from that library's config.yaml.
"""

import os
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

from .library_config import load_library_config
from .schemas import LibraryConfig

load_dotenv()

STORAGE_ROOT_ENV = 'SCRIPTORIUM_STORAGE_ROOT'
DEFAULT_STORAGE_ROOT = '~/Documents/scriptorium'


def get_storage_root() -> Path:
    return Path(os.getenv(STORAGE_ROOT_ENV) or DEFAULT_STORAGE_ROOT).expanduser().resolve()


@lru_cache(maxsize=1)
def get_library_config() -> LibraryConfig:
    return load_library_config(get_storage_root())


def reload_config() -> LibraryConfig:
    """Drop the cached config (after `config set`, or when the env var changes)."""
    get_library_config.cache_clear()
    return get_library_config()
