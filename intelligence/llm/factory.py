"""
LLM Factory
Build the configured provider from LLMSettings.
"""
from typing import Optional
import logging

from utils.exceptions import ConfigurationError

from .anthropic_llm import AnthropicLLM
from .base import BaseLLM
from .gemini_llm import GeminiLLM
from .openai_llm import OpenAILLM


logger = logging.getLogger(__name__)


DEFAULT_MODELS = {
    "gemini": "gemini-1.5-pro-latest",
    "openai": "gpt-4o-mini",
    "anthropic": "claude-3-5-sonnet-20241022",
}


def get_llm(
    provider: Optional[str] = None,
    model: Optional[str] = None,
    **kwargs,
) -> BaseLLM:
    """
    Create an LLM instance.

    Args:
        provider: gemini, openai or anthropic (defaults to ``LLM_PROVIDER``)
        model: model name (defaults to ``LLM_MODEL_NAME`` or the provider default)
        **kwargs: temperature, max_tokens, timeout, api_key, base_url overrides

    Returns:
        BaseLLM instance

    Raises:
        ConfigurationError: unknown provider or missing API key
    """
    from config import get_llm_settings

    settings = get_llm_settings()

    provider = (provider or settings.provider or "").strip().lower()
    if provider not in DEFAULT_MODELS:
        raise ConfigurationError(f"Unsupported LLM provider: {provider}")

    model = model or settings.model_name or DEFAULT_MODELS[provider]

    api_keys = {
        "gemini": settings.gemini_api_key,
        "openai": settings.openai_api_key,
        "anthropic": settings.anthropic_api_key,
    }
    api_key = kwargs.pop("api_key", None) or api_keys.get(provider)
    if not api_key:
        raise ConfigurationError(
            f"Missing API key for provider {provider}",
            {"env": f"LLM_{provider.upper()}_API_KEY"},
        )

    defaults = {
        "temperature": settings.temperature,
        "max_tokens": settings.max_tokens,
        "timeout": settings.timeout,
    }
    for key, value in defaults.items():
        kwargs.setdefault(key, value)

    logger.debug("llm_created provider=%s model=%s", provider, model)

    if provider == "openai":
        return OpenAILLM(model=model, api_key=api_key, base_url=kwargs.pop("base_url", None), **kwargs)
    if provider == "anthropic":
        return AnthropicLLM(model=model, api_key=api_key, **kwargs)
    return GeminiLLM(model=model, api_key=api_key, **kwargs)
