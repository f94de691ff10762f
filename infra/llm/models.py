"""
Request/result containers exchanged with the inference gateway.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional, Any


@dataclass
class InferenceResult:
    text: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: float = 0.0
    processing_ms: Optional[int] = None

    def usage(self) -> Dict[str, Any]:
        return {
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "cost_usd": self.cost_usd,
            "processing_ms": self.processing_ms,
        }


@dataclass
class BatchRequest:
    """One keyed item of a batch submission. key re-associates the result."""
    key: str
    prompt: str
    image: Optional[bytes] = None
    mime_type: str = "image/jpeg"


@dataclass
class BatchHandle:
    external_ref: str
    external_state: str


@dataclass
class BatchStatus:
    external_state: str
    stats: Dict[str, Any] = field(default_factory=dict)


@dataclass
class BatchItemOutput:
    key: str
    text: Optional[str] = None
    error: Optional[str] = None
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None and bool(self.text and self.text.strip())
