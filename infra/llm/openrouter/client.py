import time
import logging
from typing import Optional

from infra.llm.cost import CostCalculator
from infra.llm.models import InferenceResult
from .images import user_message
from .response_parser import ResponseParser
from .transport import OpenRouterTransport


class OpenRouterClient:
    """
    Single synchronous chat-completion call through OpenRouter.

    Components:
    - OpenRouterTransport: HTTP request, error classification
    - ResponseParser: content/usage extraction, malformed detection
    - CostCalculator: raw cost from the configured pricing table

    Retries are left to the caller (see RetryPolicy).
    """

    def __init__(
        self,
        transport: OpenRouterTransport,
        cost_calculator: Optional[CostCalculator] = None,
        timeout: int = 120,
        logger: Optional[logging.Logger] = None
    ):
        self.transport = transport
        self.parser = ResponseParser(logger=logger)
        self.cost_calculator = cost_calculator or CostCalculator()
        self.timeout = timeout

    def call(
        self,
        model: str,
        prompt: str,
        image: Optional[bytes] = None,
        temperature: float = 0.0,
        max_tokens: Optional[int] = None
    ) -> InferenceResult:
        payload = {
            "model": model,
            "messages": user_message(prompt, image),
            "temperature": temperature,
        }
        if max_tokens:
            payload["max_tokens"] = max_tokens

        started = time.monotonic()
        result = self.transport.post(payload, self.timeout)
        parsed = self.parser.parse_chat_completion(result, model)
        elapsed_ms = int((time.monotonic() - started) * 1000)

        cost = self.cost_calculator.calculate_cost(
            model,
            parsed.prompt_tokens,
            parsed.completion_tokens
        )

        return InferenceResult(
            text=parsed.content,
            model=model,
            input_tokens=parsed.prompt_tokens,
            output_tokens=parsed.completion_tokens,
            cost_usd=cost,
            processing_ms=elapsed_ms,
        )
