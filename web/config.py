"""
Server settings from the environment.

WEB_HOST / WEB_PORT / WEB_DEBUG pick the bind address; the library itself
is located the same way the CLI does it (SCRIPTORIUM_STORAGE_ROOT).
"""

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class ServerSettings:
    host: str = "127.0.0.1"
    port: int = 1337
    debug: bool = False

    @classmethod
    def from_env(cls) -> "ServerSettings":
        return cls(
            host=os.getenv("WEB_HOST", cls.host),
            port=int(os.getenv("WEB_PORT", cls.port)),
            debug=os.getenv("WEB_DEBUG", "false").lower() in ("1", "true", "yes"),
        )


def add_server_arguments(parser) -> None:
    """--host/--port/--debug with environment-derived defaults."""
    settings = ServerSettings.from_env()
    parser.add_argument('--host', default=settings.host, help=f'Host to bind to (default: {settings.host})')
    parser.add_argument('--port', type=int, default=settings.port, help=f'Port to listen on (default: {settings.port})')
    parser.add_argument('--debug', action='store_true', default=settings.debug, help='Enable Flask debug mode')
