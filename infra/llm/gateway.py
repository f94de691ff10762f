"""
Inference Gateway: the only path to the external OCR/translation capability.

Callers pass prompt templates and already-truncated continuity context;
the gateway fills in the template, attaches the context and routes the
call to the synchronous client or the batch client.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from infra.config import LibraryConfig
from infra.llm.cost import CostCalculator
from infra.llm.errors import ConfigurationError
from infra.llm.models import (
    BatchHandle,
    BatchItemOutput,
    BatchRequest,
    BatchStatus,
    InferenceResult,
)


def compose_ocr_prompt(template: str, language: str, previous_text: Optional[str] = None) -> str:
    prompt = template.replace("{language}", language)
    if previous_text:
        prompt += f"\n\n**Previous page transcription for context:**\n...{previous_text}"
    return prompt


def compose_translation_prompt(
    template: str,
    text: str,
    source_language: str,
    target_language: str,
    previous_translation: Optional[str] = None
) -> str:
    prompt = (
        template
        .replace("{source_language}", source_language)
        .replace("{target_language}", target_language)
    )
    prompt += f"\n\n**Text to translate:**\n{text}"
    if previous_translation:
        prompt += f"\n\n**Previous page translation for continuity:**\n...{previous_translation}"
    return prompt


class InferenceGateway(ABC):

    @abstractmethod
    def transcribe(
        self,
        image: bytes,
        language: str,
        previous_text: Optional[str],
        prompt: str,
        model: str
    ) -> InferenceResult:
        ...

    @abstractmethod
    def translate(
        self,
        text: str,
        source_language: str,
        target_language: str,
        previous_translation: Optional[str],
        prompt: str,
        model: str
    ) -> InferenceResult:
        ...

    @abstractmethod
    def submit_batch(self, model: str, requests: List[BatchRequest], display_name: str = "scriptorium") -> BatchHandle:
        ...

    @abstractmethod
    def poll_batch(self, external_ref: str) -> BatchStatus:
        ...

    @abstractmethod
    def fetch_batch_results(self, external_ref: str) -> List[BatchItemOutput]:
        ...

    @abstractmethod
    def cancel_batch(self, external_ref: str) -> None:
        ...


class ProviderGateway(InferenceGateway):
    """OpenRouter for synchronous calls, Gemini Batch API for bulk work.

    Clients are built lazily so a missing key for one side does not block
    the other.
    """

    def __init__(
        self,
        config: LibraryConfig,
        sync_client=None,
        batch_client=None,
        logger: Optional[logging.Logger] = None
    ):
        self.config = config
        self._sync_client = sync_client
        self._batch_client = batch_client
        self.logger = logger or logging.getLogger(__name__)

    @property
    def sync_client(self):
        if self._sync_client is None:
            from infra.llm.openrouter import OpenRouterClient, OpenRouterTransport
            api_key = self.config.resolve_api_key("openrouter")
            if not api_key:
                raise ConfigurationError("api_keys.openrouter is not set")
            self._sync_client = OpenRouterClient(
                OpenRouterTransport(api_key, logger=self.logger),
                cost_calculator=CostCalculator(self.config.pricing),
                logger=self.logger,
            )
        return self._sync_client

    @property
    def batch_client(self):
        if self._batch_client is None:
            from infra.llm.gemini import GeminiBatchClient
            api_key = self.config.resolve_api_key("gemini")
            if not api_key:
                raise ConfigurationError("api_keys.gemini is not set")
            self._batch_client = GeminiBatchClient(api_key, logger=self.logger)
        return self._batch_client

    def transcribe(self, image, language, previous_text, prompt, model) -> InferenceResult:
        full_prompt = compose_ocr_prompt(prompt, language, previous_text)
        return self.sync_client.call(model, full_prompt, image=image)

    def translate(self, text, source_language, target_language, previous_translation, prompt, model) -> InferenceResult:
        full_prompt = compose_translation_prompt(
            prompt, text, source_language, target_language, previous_translation
        )
        return self.sync_client.call(model, full_prompt)

    def submit_batch(self, model, requests, display_name="scriptorium") -> BatchHandle:
        return self.batch_client.submit(model, requests, display_name)

    def poll_batch(self, external_ref) -> BatchStatus:
        return self.batch_client.poll(external_ref)

    def fetch_batch_results(self, external_ref) -> List[BatchItemOutput]:
        return self.batch_client.fetch_results(external_ref)

    def cancel_batch(self, external_ref) -> None:
        self.batch_client.cancel(external_ref)
