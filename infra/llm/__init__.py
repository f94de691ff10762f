"""
Inference subsystem.

Provides:
- InferenceGateway / ProviderGateway: OCR, translation and batch calls
- OpenRouterClient: synchronous chat completions with vision support
- GeminiBatchClient: Gemini Batch API submission, polling and results
- RetryPolicy: backoff for transient errors
- RateLimiter: request pacing
- CostCalculator: raw cost from the configured pricing table
"""

from infra.llm.errors import (
    InferenceError,
    TransientInferenceError,
    RateLimitError,
    MalformedResponseError,
    BatchNotReadyError,
    ConfigurationError,
)
from infra.llm.models import (
    InferenceResult,
    BatchRequest,
    BatchHandle,
    BatchStatus,
    BatchItemOutput,
)
from infra.llm.gateway import (
    InferenceGateway,
    ProviderGateway,
    compose_ocr_prompt,
    compose_translation_prompt,
)
from infra.llm.cost import CostCalculator
from infra.llm.rate_limiter import RateLimiter
from infra.llm.retry_policy import RetryPolicy

__all__ = [
    "InferenceError",
    "TransientInferenceError",
    "RateLimitError",
    "MalformedResponseError",
    "BatchNotReadyError",
    "ConfigurationError",
    "InferenceResult",
    "BatchRequest",
    "BatchHandle",
    "BatchStatus",
    "BatchItemOutput",
    "InferenceGateway",
    "ProviderGateway",
    "compose_ocr_prompt",
    "compose_translation_prompt",
    "CostCalculator",
    "RateLimiter",
    "RetryPolicy",
]
