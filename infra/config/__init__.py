"""
Configuration management for Scriptorium.

Library config: {storage_root}/config.yaml

Usage:
    from infra.config import LibraryConfigManager, get_library_config

    manager = LibraryConfigManager(storage_root)
    config = manager.load()

    config = get_library_config()   # cached, for runtime use
"""

from .schemas import (
    LLMProviderConfig,
    DefaultsConfig,
    PipelineSettings,
    BatchSettings,
    SplitSettings,
    ModelPricing,
    LibraryConfig,
    resolve_env_vars,
)

from .library_config import (
    LibraryConfigManager,
    load_library_config,
)

from .runtime import (
    get_storage_root,
    get_library_config,
    reload_config,
)


__all__ = [
    "LLMProviderConfig",
    "DefaultsConfig",
    "PipelineSettings",
    "BatchSettings",
    "SplitSettings",
    "ModelPricing",
    "LibraryConfig",
    "resolve_env_vars",
    "LibraryConfigManager",
    "load_library_config",
    "get_storage_root",
    "get_library_config",
    "reload_config",
]
