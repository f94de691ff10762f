import logging
from typing import Dict, Any, Optional
from dataclasses import dataclass

from infra.llm.errors import MalformedResponseError


@dataclass
class ParsedResponse:
    content: str
    prompt_tokens: int
    completion_tokens: int
    model_used: str


class ResponseParser:
    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    def parse_chat_completion(self, result: Dict[str, Any], model: str) -> ParsedResponse:
        try:
            content = result['choices'][0]['message']['content']
            usage = result.get('usage') or {}
        except (KeyError, IndexError, TypeError) as e:
            response_keys = list(result.keys()) if isinstance(result, dict) else type(result).__name__
            raise MalformedResponseError(
                f"Unexpected chat completion shape ({type(e).__name__}: {e}); keys={response_keys}"
            )

        if isinstance(content, list):
            content = "".join(part.get('text', '') for part in content if isinstance(part, dict))

        if not content or not content.strip():
            raise MalformedResponseError(f"Empty completion from {model}")

        parsed = ParsedResponse(
            content=content.strip(),
            prompt_tokens=usage.get('prompt_tokens', 0) or 0,
            completion_tokens=usage.get('completion_tokens', 0) or 0,
            model_used=result.get('model') or model,
        )

        self.logger.debug(
            f"Parsed chat completion: model={parsed.model_used}, "
            f"content_length={len(parsed.content)}, "
            f"prompt_tokens={parsed.prompt_tokens}, completion_tokens={parsed.completion_tokens}"
        )

        return parsed
