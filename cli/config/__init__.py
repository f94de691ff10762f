"""
scriptorium config {init,show,set}
"""

from cli.config.init import cmd_init
from cli.config.show import cmd_config_show
from cli.config.set import cmd_config_set


def setup_parser(subparsers):
    config_parser = subparsers.add_parser('config', help='Manage library configuration (config.yaml)')
    commands = config_parser.add_subparsers(dest='config_command', help='Config command')
    commands.required = True

    init = commands.add_parser('init', help='Write config.yaml with defaults')
    init.add_argument('--force', action='store_true', help='Replace an existing config.yaml')
    init.add_argument('--store-keys', action='store_true',
                      help='Copy API keys from the environment into config.yaml as literals')
    init.set_defaults(func=cmd_init)

    show = commands.add_parser('show', help='Print the effective configuration')
    show.add_argument('--json', action='store_true', help='Output as JSON')
    show.add_argument('--reveal-keys', action='store_true', help='Print API keys unmasked')
    show.set_defaults(func=cmd_config_show)

    set_ = commands.add_parser('set', help='Change one value, e.g. batch.retention_hours 72')
    set_.add_argument('key', help='Dotted key such as pipeline.context_chars')
    set_.add_argument('value', help='New value (numbers, true/false, null and JSON are parsed)')
    set_.set_defaults(func=cmd_config_set)


__all__ = ['setup_parser', 'cmd_init', 'cmd_config_show', 'cmd_config_set']
