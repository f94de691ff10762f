"""
OpenRouter API client components.

- transport.py: HTTP requests and error classification
- response_parser.py: Response parsing
- images.py: Image encoding for vision requests
- client.py: Composes the above into one call
"""

from .transport import OpenRouterTransport
from .response_parser import ResponseParser, ParsedResponse
from .client import OpenRouterClient

__all__ = [
    'OpenRouterTransport',
    'ResponseParser',
    'ParsedResponse',
    'OpenRouterClient',
]
