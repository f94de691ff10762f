from typing import Optional


class InferenceError(Exception):
    """Base class for failures talking to an inference provider."""


class TransientInferenceError(InferenceError):
    """Network failure, timeout or provider 5xx. Eligible for retry."""


class RateLimitError(TransientInferenceError):
    """Provider quota or rate limit hit (HTTP 429)."""

    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


class MalformedResponseError(InferenceError):
    """Empty or unparseable model output. Always a per-item failure."""


class BatchNotReadyError(InferenceError):
    """Batch results requested before the provider reported success."""

    def __init__(self, message: str, external_state: Optional[str] = None):
        super().__init__(message)
        self.external_state = external_state


class ConfigurationError(InferenceError):
    """Provider cannot be used as configured (e.g. missing API key)."""
