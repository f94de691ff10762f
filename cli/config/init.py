"""
scriptorium config init - create the library configuration file.
"""

import os

from infra.config import LibraryConfigManager, LibraryConfig
from cli.helpers import console, get_library


ENV_KEYS = {
    'OPENROUTER_API_KEY': 'openrouter',
    'GEMINI_API_KEY': 'gemini',
}


def cmd_init(args):
    library = get_library(args)
    manager = LibraryConfigManager(library.storage_root)

    if manager.exists() and not args.force:
        console.print(f"✗ Config already exists at: {manager.config_path}")
        console.print("  Use --force to overwrite")
        return

    config = LibraryConfig.with_defaults()
    manager.save(config)
    console.print(f"✓ Created config at: {manager.config_path}")

    if args.store_keys:
        stored = []
        for env_var, key_name in ENV_KEYS.items():
            value = os.getenv(env_var)
            if value:
                manager.set_api_key(key_name, value)
                stored.append(key_name)
        if stored:
            console.print(f"  Stored literal API keys for: {', '.join(stored)}")
        config = manager.load()

    console.print(f"\n  Storage root:   {library.storage_root}")
    console.print(f"  LLM provider:   {config.defaults.llm_provider} ({config.default_model()})")
    console.print(f"  Batch model:    {config.defaults.batch_model}")
    console.print(f"  Languages:      {config.defaults.language} → {config.defaults.target_language}")

    console.print("\nAPI keys:")
    for key_name, value in config.api_keys.items():
        if config.resolve_api_key(key_name):
            console.print(f"  ✓ {key_name}: configured")
        else:
            console.print(f"  ○ {key_name}: not set (using {value})")
