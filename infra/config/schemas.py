"""
Schema of {storage_root}/config.yaml.

Every section has defaults, so a partial (or missing) file is valid.
API key values may reference the environment as ${VAR}.
"""

import os
import re
from typing import Dict, Optional

from pydantic import BaseModel, Field, field_validator


ENV_REF = re.compile(r'\$\{([^}]+)\}')


def resolve_env_vars(value: str) -> str:
    """Expand ${VAR} references; unset variables expand to ''."""
    if not isinstance(value, str):
        return value
    return ENV_REF.sub(lambda m: os.environ.get(m.group(1), ""), value)


class LLMProviderConfig(BaseModel):
    """A named inference endpoint: which API (type) and which model."""
    type: str = Field(..., description="openrouter (synchronous) or gemini (batch)")
    model: str = Field(..., description="Model identifier, e.g. google/gemini-2.5-flash")


class DefaultsConfig(BaseModel):
    """Default settings for new jobs."""
    llm_provider: str = Field(
        default="gemini-flash",
        description="Default LLM provider for synchronous OCR/translation"
    )
    batch_model: str = Field(
        default="gemini-2.5-flash",
        description="Model used for batch submissions"
    )
    language: str = Field(default="Latin", description="Default source language")
    target_language: str = Field(default="English", description="Default translation target")
    parallel_pages: int = Field(default=3, description="Pages processed concurrently per chunk")
    overwrite: bool = Field(default=False, description="Redo stages that already have output")

    @field_validator('parallel_pages')
    @classmethod
    def validate_parallel_pages(cls, v: int) -> int:
        if v < 1 or v > 10:
            raise ValueError("parallel_pages must be between 1 and 10")
        return v


class PipelineSettings(BaseModel):
    """Tuning for the streaming controller and page preparation."""
    chunk_size: Optional[int] = Field(None, description="Pages per invocation (default: parallel_pages)")
    context_chars: int = Field(2000, description="Trailing characters of continuity context")
    max_retries: int = Field(3, description="Retries for transient inference errors")
    retry_delay_base: float = Field(2.0, description="Backoff base in seconds (base ** attempt)")
    requests_per_minute: Optional[int] = Field(60, description="Inference request pacing (None = unlimited)")
    crop_max_width: int = Field(1200, description="Max width of materialized crops")
    crop_quality: int = Field(80, description="JPEG quality of materialized crops")
    batch_image_max_width: int = Field(2000, description="Max width of images embedded in batch requests")
    batch_image_quality: int = Field(90, description="JPEG quality of images embedded in batch requests")
    claim_lease_seconds: int = Field(300, description="How long a scheduler claim on a job stays valid")


class BatchSettings(BaseModel):
    """Batch submission and retention settings."""
    retention_hours: float = Field(48.0, description="Provider keeps results this long after submission")
    orphan_grace_hours: float = Field(24.0, description="Unsubmitted batches younger than this are not swept")
    max_pages: int = Field(100, description="Max pages per batch submission")


class SplitSettings(BaseModel):
    """Gutter detection and split execution settings."""
    analysis_width: int = Field(1000, description="Width images are normalized to before analysis")
    band_start: float = Field(0.35, description="Start of the gutter search band (fraction of width)")
    band_end: float = Field(0.65, description="End of the gutter search band (fraction of width)")
    smoothing_radius: int = Field(5, description="Moving-average radius in columns")
    overlap: int = Field(10, description="Overlap on each side of a split (0-1000 scale)")
    min_aspect_ratio: float = Field(0.9, description="Width/height below this is a single page")
    edge_tolerance: int = Field(20, description="Max disagreement (0-1000 scale) between methods")


class ModelPricing(BaseModel):
    """USD per million tokens."""
    input_per_million: float = 0.0
    output_per_million: float = 0.0


class LibraryConfig(BaseModel):
    api_keys: Dict[str, str] = Field(default_factory=dict, description="Literal keys or ${ENV_VAR} references")
    llm_providers: Dict[str, LLMProviderConfig] = Field(default_factory=dict)
    defaults: DefaultsConfig = Field(default_factory=DefaultsConfig)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)
    batch: BatchSettings = Field(default_factory=BatchSettings)
    split: SplitSettings = Field(default_factory=SplitSettings)
    pricing: Dict[str, ModelPricing] = Field(default_factory=dict, description="Token pricing keyed by model")

    def resolve_api_key(self, key_name: str) -> Optional[str]:
        """The usable key, or None when it is missing or its env var is unset."""
        return resolve_env_vars(self.api_keys.get(key_name, "")) or None

    def default_model(self) -> str:
        """Model of defaults.llm_provider ('' if that provider is not defined)."""
        provider = self.llm_providers.get(self.defaults.llm_provider)
        return provider.model if provider else ""

    @classmethod
    def with_defaults(cls) -> "LibraryConfig":
        """What `config init` writes."""
        return cls(
            api_keys={
                "openrouter": "${OPENROUTER_API_KEY}",
                "gemini": "${GEMINI_API_KEY}",
            },
            llm_providers={
                "gemini-flash": LLMProviderConfig(type="openrouter", model="google/gemini-2.5-flash"),
                "claude-sonnet": LLMProviderConfig(type="openrouter", model="anthropic/claude-sonnet-4.5"),
            },
            pricing={
                "google/gemini-2.5-flash": ModelPricing(input_per_million=0.30, output_per_million=2.50),
                "gemini-2.5-flash": ModelPricing(input_per_million=0.15, output_per_million=1.25),
            },
        )
