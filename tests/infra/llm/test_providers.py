"""
Provider transport tests.

The HTTP session is the only thing mocked: requests go nowhere, and
responses are shaped like the real OpenRouter and Gemini payloads.
"""

import base64
import json
from unittest.mock import Mock

import pytest
import requests

from infra.config import LibraryConfig, ModelPricing
from infra.llm import (
    BatchNotReadyError,
    BatchRequest,
    ConfigurationError,
    CostCalculator,
    InferenceError,
    MalformedResponseError,
    ProviderGateway,
    RateLimitError,
    TransientInferenceError,
)
from infra.llm.gemini import GeminiBatchClient
from infra.llm.openrouter import OpenRouterClient, OpenRouterTransport


def http_response(status=200, body=None, text=None, headers=None):
    response = Mock()
    response.status_code = status
    response.ok = status < 400
    response.headers = headers or {}
    response.json.return_value = body if body is not None else {}
    response.text = text if text is not None else json.dumps(body or {})
    return response


def completion(content, prompt_tokens=120, completion_tokens=40):
    return {
        "model": "google/gemini-2.5-flash",
        "choices": [{"message": {"role": "assistant", "content": content}}],
        "usage": {"prompt_tokens": prompt_tokens, "completion_tokens": completion_tokens},
    }


class TestOpenRouter:
    def make_client(self, session, pricing=None):
        transport = OpenRouterTransport("key", session=session)
        return OpenRouterClient(transport, cost_calculator=CostCalculator(pricing))

    def test_call_with_image(self):
        session = Mock()
        session.post.return_value = http_response(body=completion("  Gallia est omnis divisa  "))
        pricing = {"google/gemini-2.5-flash": ModelPricing(input_per_million=1.0, output_per_million=2.0)}
        client = self.make_client(session, pricing)

        result = client.call("google/gemini-2.5-flash", "Transcribe", image=b"\xff\xd8jpeg")

        assert result.text == "Gallia est omnis divisa"
        assert result.input_tokens == 120
        assert result.output_tokens == 40
        assert result.cost_usd == pytest.approx(120 / 1e6 + 80 / 1e6)

        payload = session.post.call_args.kwargs["json"]
        content = payload["messages"][0]["content"]
        assert content[0] == {"type": "text", "text": "Transcribe"}
        assert content[1]["image_url"]["url"] == "data:image/jpeg;base64," + base64.b64encode(b"\xff\xd8jpeg").decode()
        assert session.post.call_args.kwargs["headers"]["Authorization"] == "Bearer key"

    @pytest.mark.parametrize("status,error", [
        (429, RateLimitError),
        (502, TransientInferenceError),
        (400, InferenceError),
    ])
    def test_status_classification(self, status, error):
        session = Mock()
        session.post.return_value = http_response(status=status, text="nope", headers={"Retry-After": "3"})

        with pytest.raises(error) as exc:
            self.make_client(session).call("m", "p")
        if status == 429:
            assert exc.value.retry_after == 3.0
        if status == 400:
            assert not isinstance(exc.value, TransientInferenceError)

    def test_timeout_is_transient(self):
        session = Mock()
        session.post.side_effect = requests.exceptions.Timeout("slow")
        with pytest.raises(TransientInferenceError):
            self.make_client(session).call("m", "p")

    @pytest.mark.parametrize("body", [completion("   "), {"choices": []}, {"error": "x"}])
    def test_malformed_output(self, body):
        session = Mock()
        session.post.return_value = http_response(body=body)
        with pytest.raises(MalformedResponseError):
            self.make_client(session).call("m", "p")

    def test_missing_key(self):
        with pytest.raises(ConfigurationError):
            OpenRouterTransport("")


class TestGeminiBatchClient:
    def test_submit_inline_requests(self):
        session = Mock()
        session.request.return_value = http_response(body={
            "name": "batches/abc123",
            "metadata": {"state": "BATCH_STATE_PENDING"},
        })
        client = GeminiBatchClient("gkey", session=session)

        handle = client.submit("gemini-2.5-flash", [
            BatchRequest(key="p1", prompt="Transcribe", image=b"img"),
            BatchRequest(key="p2", prompt="Translate this"),
        ], "book-ocr")

        assert handle.external_ref == "batches/abc123"
        assert handle.external_state == "BATCH_STATE_PENDING"

        method, url = session.request.call_args.args
        assert method == "POST"
        assert url.endswith("/models/gemini-2.5-flash:batchGenerateContent")
        assert session.request.call_args.kwargs["headers"]["x-goog-api-key"] == "gkey"

        body = session.request.call_args.kwargs["json"]["batch"]
        items = body["input_config"]["requests"]["requests"]
        assert body["display_name"] == "book-ocr"
        assert [i["metadata"]["key"] for i in items] == ["p1", "p2"]
        parts = items[0]["request"]["contents"][0]["parts"]
        assert parts[1]["inline_data"]["data"] == base64.b64encode(b"img").decode()
        assert len(items[1]["request"]["contents"][0]["parts"]) == 1

    def test_poll_reads_state_and_stats(self):
        session = Mock()
        session.request.return_value = http_response(body={
            "name": "batches/abc",
            "metadata": {"state": "JOB_STATE_RUNNING", "batchStats": {"requestCount": "10"}},
        })
        status = GeminiBatchClient("k", session=session).poll("batches/abc")

        assert status.external_state == "JOB_STATE_RUNNING"
        assert status.stats == {"requestCount": "10"}

    def test_fetch_inlined_results(self):
        session = Mock()
        session.request.return_value = http_response(body={
            "name": "batches/abc",
            "metadata": {"state": "BATCH_STATE_SUCCEEDED"},
            "response": {"inlinedResponses": {"inlinedResponses": [
                {
                    "metadata": {"key": "p1"},
                    "response": {
                        "candidates": [{"content": {"parts": [{"text": "Arma virumque"}]}}],
                        "usageMetadata": {"promptTokenCount": 900, "candidatesTokenCount": 30},
                    },
                },
                {"metadata": {"key": "p2"}, "error": {"code": 3, "message": "blocked"}},
                {"metadata": {"key": "p3"}, "response": {"candidates": [{"content": {"parts": [{"text": " "}]}}]}},
            ]}},
        })

        items = GeminiBatchClient("k", session=session).fetch_results("batches/abc")

        assert [i.key for i in items] == ["p1", "p2", "p3"]
        assert items[0].ok and items[0].text == "Arma virumque"
        assert items[0].input_tokens == 900
        assert items[1].error == "blocked"
        assert not items[2].ok

    def test_fetch_results_file(self):
        session = Mock()
        lines = "\n".join([
            json.dumps({"key": "p1", "response": {"candidates": [{"content": {"parts": [{"text": "one"}]}}]}}),
            "not json",
        ])
        session.request.side_effect = [
            http_response(body={
                "name": "batches/abc",
                "metadata": {"state": "JOB_STATE_SUCCEEDED"},
                "response": {"responsesFile": "files/out-1"},
            }),
            http_response(text=lines),
        ]

        items = GeminiBatchClient("k", session=session).fetch_results("batches/abc")

        assert items[0].key == "p1" and items[0].text == "one"
        assert items[1].error == "unparseable result line"
        download_url = session.request.call_args_list[1].args[1]
        assert download_url.endswith("/files/out-1:download")

    def test_fetch_before_success(self):
        session = Mock()
        session.request.return_value = http_response(body={"name": "b", "metadata": {"state": "JOB_STATE_RUNNING"}})

        with pytest.raises(BatchNotReadyError) as exc:
            GeminiBatchClient("k", session=session).fetch_results("b")
        assert exc.value.external_state == "JOB_STATE_RUNNING"

    def test_cancel_posts(self):
        session = Mock()
        session.request.return_value = http_response(body={})
        GeminiBatchClient("k", session=session).cancel("batches/abc")
        assert session.request.call_args.args == ("POST", "https://generativelanguage.googleapis.com/v1beta/batches/abc:cancel")


class TestProviderGateway:
    def test_missing_keys_are_configuration_errors(self, monkeypatch):
        monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        gateway = ProviderGateway(LibraryConfig.with_defaults())

        with pytest.raises(ConfigurationError):
            gateway.transcribe(b"img", "Latin", None, "Transcribe {language}", "m")
        with pytest.raises(ConfigurationError):
            gateway.poll_batch("batches/x")

    def test_prompt_composition(self):
        client = Mock()
        gateway = ProviderGateway(LibraryConfig(), sync_client=client)

        gateway.translate("Lorem", "Latin", "English", "previous text", "From {source_language} to {target_language}", "m")

        prompt = client.call.call_args.args[1]
        assert prompt.startswith("From Latin to English")
        assert "Lorem" in prompt
        assert prompt.endswith("...previous text")
