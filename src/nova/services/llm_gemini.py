"""
Gemini text-generation provider

Thin async client for the ``models/{model}:generateContent`` endpoint.
One call is one attempt; retries are the responder's concern.
"""

from typing import Optional

import httpx
import structlog

from nova.core.error_handling import EmptyResponseError

logger = structlog.get_logger()


class GeminiLLMProvider:
    """Google Generative Language API over httpx"""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    async def generate(self, prompt: str, **kwargs) -> str:
        """
        Single generateContent call

        Raises:
            httpx.HTTPError: Transport failure or non-2xx status
            EmptyResponseError: No candidate text in the reply
        """
        response = await self._client.post(
            self.endpoint,
            params={"key": self.api_key},
            json={"contents": [{"parts": [{"text": prompt}]}]},
        )
        response.raise_for_status()

        text = self._extract_text(response.json())
        if not text:
            raise EmptyResponseError("Empty response from Gemini API")

        logger.debug("llm.gemini.generated", model=self.model, chars=len(text))
        return text

    @staticmethod
    def _extract_text(payload: dict) -> str:
        """candidates[0].content.parts[0].text, or "" when any level is missing"""
        try:
            text = payload["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            return ""
        return text.strip() if isinstance(text, str) else ""

    async def aclose(self) -> None:
        await self._client.aclose()
