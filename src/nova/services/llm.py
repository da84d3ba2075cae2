"""
LLM Service Factory

Returns appropriate LLM provider based on NOVA_LLM_PROVIDER configuration.
"""
import structlog
from nova.core.config import config
from nova.core.error_handling import ConfigurationError
from nova.services.protocols import LLMProvider

logger = structlog.get_logger()

_llm_service: LLMProvider | None = None


def get_llm_service() -> LLMProvider:
    """
    Get LLM service instance (singleton)

    Supported providers:
    - gemini: Google Gemini via the Generative Language REST API

    Returns:
        LLMProvider implementation

    Raises:
        ConfigurationError: API key or model missing, or unknown provider
    """
    global _llm_service

    if _llm_service is not None:
        return _llm_service

    provider = config.LLM_PROVIDER.lower()

    if provider == "gemini":
        if not config.llm_configured():
            raise ConfigurationError("GEMINI_API_KEY and GEMINI_MODEL must be set")

        from nova.services.llm_gemini import GeminiLLMProvider
        logger.info("llm.factory.init",
                    provider="gemini",
                    model=config.GEMINI_MODEL)
        _llm_service = GeminiLLMProvider(
            api_key=config.GEMINI_API_KEY,
            model=config.GEMINI_MODEL,
            base_url=config.LLM_API_BASE_URL,
            timeout=config.LLM_TIMEOUT_SEC,
        )

    else:
        raise ConfigurationError(
            f"Unknown LLM provider: '{provider}'\n"
            f"Supported providers: gemini"
        )

    logger.info("llm.factory.ready", provider=provider)
    return _llm_service


async def close_llm_service() -> None:
    """Close the cached provider, if any"""
    global _llm_service

    if _llm_service is not None:
        await _llm_service.aclose()
        _llm_service = None
