#!/usr/bin/env python3
"""
Gemini Batch API client (REST).

Submits inline batchGenerateContent requests, polls the long-running
operation, downloads inlined or file-based responses and cancels.
"""

import base64
import json
import logging
from typing import Any, Dict, List, Optional

import requests

from infra.llm.errors import (
    BatchNotReadyError,
    ConfigurationError,
    InferenceError,
    RateLimitError,
    TransientInferenceError,
)
from infra.llm.models import BatchHandle, BatchItemOutput, BatchRequest, BatchStatus


GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta"
GEMINI_DOWNLOAD_BASE = "https://generativelanguage.googleapis.com/download/v1beta"


class GeminiBatchClient:
    def __init__(
        self,
        api_key: str,
        session: Optional[requests.Session] = None,
        base_url: str = GEMINI_API_BASE,
        download_url: str = GEMINI_DOWNLOAD_BASE,
        timeout: int = 120,
        logger: Optional[logging.Logger] = None
    ):
        if not api_key:
            raise ConfigurationError("Gemini API key is not configured (api_keys.gemini)")
        self.api_key = api_key
        self.session = session or requests.Session()
        self.base_url = base_url.rstrip('/')
        self.download_url = download_url.rstrip('/')
        self.timeout = timeout
        self.logger = logger or logging.getLogger(__name__)

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        headers = {"x-goog-api-key": self.api_key, "Content-Type": "application/json"}
        try:
            response = self.session.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
        except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
            raise TransientInferenceError(f"Gemini request failed: {e}") from e

        self.logger.debug(f"Gemini {method} {url} -> {response.status_code}")

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitError(
                "Gemini rate limit (429)",
                retry_after=float(retry_after) if retry_after and retry_after.isdigit() else None
            )
        if response.status_code >= 500:
            raise TransientInferenceError(f"Gemini server error ({response.status_code})")
        if not response.ok:
            raise InferenceError(f"Gemini request rejected ({response.status_code}): {response.text[:500]}")
        return response

    @staticmethod
    def build_inline_request(request: BatchRequest) -> Dict[str, Any]:
        parts: List[Dict[str, Any]] = [{"text": request.prompt}]
        if request.image is not None:
            parts.append({
                "inline_data": {
                    "mime_type": request.mime_type,
                    "data": base64.b64encode(request.image).decode('utf-8'),
                }
            })
        return {
            "request": {"contents": [{"role": "user", "parts": parts}]},
            "metadata": {"key": request.key},
        }

    def submit(self, model: str, requests_: List[BatchRequest], display_name: str) -> BatchHandle:
        body = {
            "batch": {
                "display_name": display_name,
                "input_config": {
                    "requests": {
                        "requests": [self.build_inline_request(r) for r in requests_]
                    }
                },
            }
        }
        response = self._request("POST", f"{self.base_url}/models/{model}:batchGenerateContent", json=body)
        data = response.json()

        name = data.get("name")
        if not name:
            raise InferenceError(f"Gemini batch creation returned no name: {list(data.keys())}")

        state = self._extract_state(data) or "JOB_STATE_PENDING"
        return BatchHandle(external_ref=name, external_state=state)

    def get(self, name: str) -> Dict[str, Any]:
        return self._request("GET", f"{self.base_url}/{name}").json()

    def poll(self, name: str) -> BatchStatus:
        data = self.get(name)
        metadata = data.get("metadata") or {}
        stats = metadata.get("batchStats") or data.get("batchStats") or {}
        return BatchStatus(external_state=self._extract_state(data) or "", stats=stats)

    def cancel(self, name: str) -> None:
        self._request("POST", f"{self.base_url}/{name}:cancel")

    def fetch_results(self, name: str) -> List[BatchItemOutput]:
        data = self.get(name)
        state = self._extract_state(data)
        if not (state or "").endswith("SUCCEEDED"):
            raise BatchNotReadyError(f"Batch {name} is not complete: {state}", external_state=state)

        output = self._find_output(data)

        inlined = output.get("inlinedResponses")
        if isinstance(inlined, dict):
            inlined = inlined.get("inlinedResponses")
        if inlined:
            return [self.parse_item(item, index) for index, item in enumerate(inlined)]

        responses_file = output.get("responsesFile") or output.get("fileName")
        if responses_file:
            return self._download_file(responses_file)

        raise InferenceError(f"No results found in batch {name}")

    def _download_file(self, file_name: str) -> List[BatchItemOutput]:
        response = self._request("GET", f"{self.download_url}/{file_name}:download", params={"alt": "media"})
        items = []
        for index, line in enumerate(response.text.splitlines()):
            if not line.strip():
                continue
            try:
                items.append(self.parse_item(json.loads(line), index))
            except ValueError:
                items.append(BatchItemOutput(key=f"#{index}", error="unparseable result line"))
        return items

    @staticmethod
    def _extract_state(data: Dict[str, Any]) -> Optional[str]:
        metadata = data.get("metadata") or {}
        return metadata.get("state") or data.get("state")

    @staticmethod
    def _find_output(data: Dict[str, Any]) -> Dict[str, Any]:
        metadata = data.get("metadata") or {}
        for candidate in (
            metadata.get("output"),
            (data.get("response") or {}).get("output"),
            data.get("response"),
            data.get("dest"),
            data.get("output"),
        ):
            if isinstance(candidate, dict) and candidate:
                return candidate
        return {}

    @staticmethod
    def parse_item(item: Dict[str, Any], index: int = 0) -> BatchItemOutput:
        key = item.get("key") or (item.get("metadata") or {}).get("key") or f"#{index}"

        error = item.get("error")
        if error:
            message = error.get("message") if isinstance(error, dict) else str(error)
            return BatchItemOutput(key=key, error=message or "provider error")

        response = item.get("response") or {}
        usage = response.get("usageMetadata") or {}
        input_tokens = usage.get("promptTokenCount", 0) or 0
        output_tokens = usage.get("candidatesTokenCount", 0) or 0

        try:
            parts = response["candidates"][0]["content"]["parts"]
            text = "".join(p.get("text", "") for p in parts)
        except (KeyError, IndexError, TypeError):
            text = ""

        if not text.strip():
            return BatchItemOutput(
                key=key,
                error="no response text",
                input_tokens=input_tokens,
                output_tokens=output_tokens,
            )

        return BatchItemOutput(
            key=key,
            text=text.strip(),
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )
