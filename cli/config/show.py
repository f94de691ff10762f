"""
scriptorium config show - print the effective library configuration.
"""

import yaml
from rich.table import Table

from infra.config import LibraryConfigManager
from cli.helpers import console, get_library, print_json


def mask_key(value):
    if not value:
        return "(not set)"
    return "****" if len(value) <= 8 else f"{value[:4]}...{value[-4:]}"


def cmd_config_show(args):
    manager = LibraryConfigManager(get_library(args).storage_root)
    config = manager.load()

    data = config.model_dump()
    resolved = {name: config.resolve_api_key(name) for name in config.api_keys}
    data['api_keys'] = resolved if args.reveal_keys else {k: mask_key(v) for k, v in resolved.items()}

    if args.json:
        print_json(data)
        return

    origin = manager.config_path if manager.exists() else "built-in defaults (no config.yaml yet)"
    console.print(f"\n📋 Configuration from {origin}\n")

    providers = Table(title="LLM providers")
    for column in ("Name", "Type", "Model"):
        providers.add_column(column)
    for name, provider in data.pop('llm_providers').items():
        marker = " ★" if name == config.defaults.llm_provider else ""
        providers.add_row(name + marker, provider['type'], provider['model'])
    console.print(providers)

    print(yaml.safe_dump(data, default_flow_style=False, sort_keys=False))
