"""
LLM Factory
Build the configured model client
"""
from typing import Optional
import logging

from .base import BaseLLM
from .gemini_llm import GeminiLLM


logger = logging.getLogger(__name__)


DEFAULT_MODELS = {
    "gemini": "gemini-2.5-flash",
}


def get_llm(
    provider: Optional[str] = None,
    model: Optional[str] = None,
    **kwargs,
) -> BaseLLM:
    """
    Return a model client built from ``LLM_*`` settings.

    Args:
        provider: LLM provider (gemini)
        model: Model name (provider default when omitted)
        **kwargs: Overrides (api_key, temperature, max_tokens, ...)

    Example:
        llm = get_llm()
        llm = get_llm(model="gemini-2.5-pro", temperature=0.1)
    """
    from config import get_llm_settings

    settings = get_llm_settings()

    provider = provider or settings.provider
    model = model or settings.model_name or DEFAULT_MODELS.get(provider)

    api_key = kwargs.pop("api_key", None) or settings.api_key

    default_params = {
        "temperature": settings.temperature,
        "max_tokens": settings.max_tokens,
        "timeout": settings.timeout_sec,
        "top_p": settings.top_p,
        "top_k": settings.top_k,
    }
    for key, value in default_params.items():
        if key not in kwargs:
            kwargs[key] = value

    if provider == "gemini":
        return GeminiLLM(model=model, api_key=api_key, **kwargs)
    raise ValueError(f"Unsupported LLM provider: {provider}")
