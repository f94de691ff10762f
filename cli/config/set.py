"""
scriptorium config set - change one configuration value.
"""

import json

from pydantic import ValidationError

from infra.config import LibraryConfigManager
from cli.helpers import console, fail, get_library


def parse_value(value: str):
    """Booleans, numbers and JSON arrays/objects; anything else is a string."""
    if value.lower() in ('true', 'false'):
        return value.lower() == 'true'
    if value.lower() in ('null', 'none'):
        return None
    try:
        return float(value) if '.' in value else int(value)
    except ValueError:
        pass
    if value[:1] in ('[', '{'):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            pass
    return value


def cmd_config_set(args):
    manager = LibraryConfigManager(get_library(args).storage_root)

    try:
        manager.set_value(args.key, parse_value(args.value))
    except KeyError:
        fail(f"Use a dotted key such as pipeline.context_chars, not {args.key!r}")
    except ValidationError as e:
        fail(f"Invalid value for {args.key}: {e}")

    console.print(f"✓ {args.key} = {manager.get_value(args.key)!r}")
