from .batch_client import GeminiBatchClient

__all__ = ["GeminiBatchClient"]
