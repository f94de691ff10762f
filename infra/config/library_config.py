"""
Reading and writing {storage_root}/config.yaml.

Values are addressed either as nested dicts (update) or as dotted keys
such as "pipeline.context_chars" (get_value / set_value). Every write goes
through LibraryConfig validation first, so a bad value never reaches disk.
"""

import os
import tempfile
from pathlib import Path
from typing import Any, Dict

import yaml

from .schemas import LibraryConfig


CONFIG_FILENAME = "config.yaml"


class LibraryConfigManager:

    def __init__(self, storage_root: Path):
        self.storage_root = Path(storage_root).expanduser().resolve()
        self.config_path = self.storage_root / CONFIG_FILENAME

    def exists(self) -> bool:
        return self.config_path.is_file()

    def load(self) -> LibraryConfig:
        """Parse config.yaml; a missing file means all defaults."""
        if not self.exists():
            return LibraryConfig.with_defaults()
        raw = yaml.safe_load(self.config_path.read_text()) or {}
        return LibraryConfig.model_validate(raw)

    def save(self, config: LibraryConfig) -> None:
        self.storage_root.mkdir(parents=True, exist_ok=True)
        text = yaml.safe_dump(
            config.model_dump(exclude_none=True),
            default_flow_style=False,
            sort_keys=False,
        )
        fd, tmp = tempfile.mkstemp(dir=self.storage_root, prefix=".config-", suffix=".yaml")
        try:
            with os.fdopen(fd, "w") as f:
                f.write(text)
            os.replace(tmp, self.config_path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def update(self, updates: Dict[str, Any]) -> LibraryConfig:
        """Merge a nested dict of changes, validate, persist."""
        merged = merge_into(self.load().model_dump(), updates)
        config = LibraryConfig.model_validate(merged)
        self.save(config)
        return config

    def get_value(self, dotted_key: str) -> Any:
        node: Any = self.load().model_dump()
        for part in dotted_key.split("."):
            if not isinstance(node, dict) or part not in node:
                raise KeyError(dotted_key)
            node = node[part]
        return node

    def set_value(self, dotted_key: str, value: Any) -> LibraryConfig:
        """set_value("batch.retention_hours", 72) == update({"batch": {"retention_hours": 72}})"""
        parts = dotted_key.split(".")
        if len(parts) < 2 or not all(parts):
            raise KeyError(dotted_key)
        updates: Dict[str, Any] = {parts[-1]: value}
        for part in reversed(parts[:-1]):
            updates = {part: updates}
        return self.update(updates)

    def set_api_key(self, key_name: str, value: str) -> None:
        self.set_value(f"api_keys.{key_name}", value)


def merge_into(target: dict, changes: dict) -> dict:
    """Recursively overlay changes onto target. Returns target."""
    for key, value in changes.items():
        current = target.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merge_into(current, value)
        else:
            target[key] = value
    return target


def load_library_config(storage_root: Path) -> LibraryConfig:
    return LibraryConfigManager(storage_root).load()
