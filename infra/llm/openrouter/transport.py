import logging
import requests
from typing import Dict, Any, Optional

from infra.llm.errors import (
    ConfigurationError,
    InferenceError,
    RateLimitError,
    TransientInferenceError,
)


OPENROUTER_URL = "https://openrouter.ai/api/v1/chat/completions"


def _retry_after(response: requests.Response) -> Optional[float]:
    value = response.headers.get("Retry-After")
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


class OpenRouterTransport:
    def __init__(
        self,
        api_key: str,
        site_url: str = "https://github.com/scriptorium",
        site_name: str = "Scriptorium",
        session: Optional[requests.Session] = None,
        logger: Optional[logging.Logger] = None
    ):
        if not api_key:
            raise ConfigurationError("OpenRouter API key is not configured (api_keys.openrouter)")
        self.logger = logger or logging.getLogger(__name__)
        self.api_key = api_key
        self.site_url = site_url
        self.site_name = site_name
        self.session = session or requests.Session()
        self.base_url = OPENROUTER_URL

    def post(self, payload: Dict[str, Any], timeout: int = 120) -> Dict[str, Any]:
        model = payload.get('model', 'unknown')

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": self.site_url,
            "X-Title": self.site_name
        }

        try:
            response = self.session.post(
                self.base_url,
                headers=headers,
                json=payload,
                timeout=timeout
            )
        except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
            raise TransientInferenceError(f"OpenRouter request failed: {e}") from e

        self.logger.debug(f"OpenRouter response model={model} status={response.status_code}")

        status = response.status_code
        if status == 429:
            raise RateLimitError("OpenRouter rate limit (429)", retry_after=_retry_after(response))
        if status >= 500:
            raise TransientInferenceError(f"OpenRouter server error ({status})")
        if not response.ok:
            raise InferenceError(f"OpenRouter request rejected ({status}): {response.text[:500]}")

        try:
            return response.json()
        except ValueError as e:
            raise TransientInferenceError(f"OpenRouter returned non-JSON body ({status})") from e
