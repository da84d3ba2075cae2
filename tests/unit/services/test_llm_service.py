"""
Unit Tests for the LLM provider and factory

The Gemini provider is exercised against httpx.MockTransport; no network.
"""

import json

import httpx
import pytest
from unittest.mock import patch

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent.parent.parent / "src"))

import nova.services.llm as llm_module
from nova.core.config import Config
from nova.core.error_handling import ConfigurationError, EmptyResponseError
from nova.services.llm import close_llm_service, get_llm_service
from nova.services.llm_gemini import GeminiLLMProvider
from nova.services.responder import CONFIG_ERROR_RESPONSE, QueryResponder


def gemini_payload(text):
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def make_provider(handler) -> GeminiLLMProvider:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GeminiLLMProvider(
        api_key="test-key",
        model="gemini-test",
        base_url="https://llm.test/v1beta/",
        client=client,
    )


@pytest.fixture
def reset_llm_singleton():
    """Isolate the module-level provider cache"""
    llm_module._llm_service = None
    yield
    llm_module._llm_service = None


class TestGeminiProvider:
    """generateContent request and reply handling"""

    def test_endpoint(self):
        provider = make_provider(lambda request: httpx.Response(200))
        assert provider.endpoint == "https://llm.test/v1beta/models/gemini-test:generateContent"

    async def test_request_shape(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["key"] = request.url.params.get("key")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=gemini_payload("Hello!"))

        provider = make_provider(handler)
        await provider.generate("Say hello")
        await provider.aclose()

        assert seen["method"] == "POST"
        assert seen["path"] == "/v1beta/models/gemini-test:generateContent"
        assert seen["key"] == "test-key"
        assert seen["body"] == {"contents": [{"parts": [{"text": "Say hello"}]}]}

    async def test_text_is_stripped(self):
        provider = make_provider(lambda request: httpx.Response(200, json=gemini_payload("  Hi there \n")))

        assert await provider.generate("hi") == "Hi there"

    @pytest.mark.parametrize("payload", [
        {},
        {"candidates": []},
        {"candidates": [{"content": {"parts": []}}]},
        gemini_payload("   "),
        gemini_payload(None),
    ])
    async def test_empty_reply_raises(self, payload):
        provider = make_provider(lambda request: httpx.Response(200, json=payload))

        with pytest.raises(EmptyResponseError):
            await provider.generate("hi")

    async def test_http_error_status_raises(self):
        provider = make_provider(lambda request: httpx.Response(503, json={"error": "unavailable"}))

        with pytest.raises(httpx.HTTPStatusError):
            await provider.generate("hi")


class TestLLMFactory:
    """Provider selection from configuration"""

    def test_missing_key_raises_configuration_error(self, reset_llm_singleton):
        with patch.object(Config, "GEMINI_API_KEY", None), \
             patch.object(Config, "GEMINI_MODEL", "gemini-test"):
            with pytest.raises(ConfigurationError):
                get_llm_service()

    def test_missing_model_raises_configuration_error(self, reset_llm_singleton):
        with patch.object(Config, "GEMINI_API_KEY", "key"), \
             patch.object(Config, "GEMINI_MODEL", None):
            with pytest.raises(ConfigurationError):
                get_llm_service()

    def test_unknown_provider(self, reset_llm_singleton):
        with patch.object(Config, "LLM_PROVIDER", "mystery"):
            with pytest.raises(ConfigurationError, match="Unknown LLM provider"):
                get_llm_service()

    async def test_unknown_provider_yields_config_reply(self, reset_llm_singleton, fixed_clock, mock_sleep):
        responder = QueryResponder(clock=fixed_clock, sleep=mock_sleep)

        with patch.object(Config, "LLM_PROVIDER", "mystery"):
            reply = await responder.respond("tell me a joke", "Nova", "Ada")

        assert reply.type == "general"
        assert reply.response == CONFIG_ERROR_RESPONSE
        mock_sleep.assert_not_awaited()

    async def test_singleton_and_close(self, reset_llm_singleton):
        with patch.object(Config, "GEMINI_API_KEY", "key"), \
             patch.object(Config, "GEMINI_MODEL", "gemini-test"):
            first = get_llm_service()
            second = get_llm_service()

        assert isinstance(first, GeminiLLMProvider)
        assert first is second
        assert first.model == "gemini-test"

        await close_llm_service()
        assert llm_module._llm_service is None
