"""
Google Gemini LLM
Gemini client with optional Google Search grounding
"""
from typing import List, Optional, Tuple
import asyncio
import logging

from utils.exceptions import ConfigurationError, LLMError

from .base import BaseLLM, GroundingInfo, LLMResponse, Message, MessageRole


logger = logging.getLogger(__name__)


class GeminiLLM(BaseLLM):
    """
    Google Gemini client

    With ``grounding=True`` the model may issue Google searches and cite what
    it found; the search metadata is returned in ``LLMResponse.grounding``.
    """

    def __init__(
        self,
        model: str = "gemini-2.5-flash",
        api_key: Optional[str] = None,
        temperature: float = 0.2,
        max_tokens: int = 16384,
        timeout: float = 120.0,
        top_p: float = 0.8,
        top_k: int = 30,
        **kwargs,
    ):
        super().__init__(model, temperature, max_tokens, timeout, **kwargs)
        self.api_key = api_key
        self.top_p = top_p
        self.top_k = top_k

    @property
    def provider(self) -> str:
        return "gemini"

    def _convert_messages(self, messages: List[Message]) -> Tuple[Optional[str], str]:
        """Fold messages into (system_instruction, prompt)."""
        system_instruction = None
        parts = []
        for msg in messages:
            if msg.role == MessageRole.SYSTEM:
                system_instruction = msg.content
            else:
                parts.append(msg.content)
        return system_instruction, "\n\n".join(parts)

    def _build_config(self, system_instruction: Optional[str], grounding: bool, **kwargs):
        from google.genai import types

        return types.GenerateContentConfig(
            system_instruction=system_instruction,
            temperature=kwargs.get("temperature", self.temperature),
            top_p=kwargs.get("top_p", self.top_p),
            top_k=kwargs.get("top_k", self.top_k),
            max_output_tokens=kwargs.get("max_tokens", self.max_tokens),
            tools=[types.Tool(google_search=types.GoogleSearch())] if grounding else None,
        )

    async def acomplete(
        self,
        messages: List[Message],
        *,
        grounding: bool = False,
        **kwargs,
    ) -> LLMResponse:
        if not self.api_key:
            raise ConfigurationError(
                "LLM_API_KEY is not set. Get a key from https://aistudio.google.com/app/apikey"
            )

        from google import genai

        client = genai.Client(api_key=self.api_key)
        system_instruction, prompt = self._convert_messages(messages)
        config = self._build_config(system_instruction, grounding, **kwargs)

        logger.info(f"Calling Gemini ({self.model}, grounding={'on' if grounding else 'off'})")
        try:
            response = await asyncio.wait_for(
                client.aio.models.generate_content(model=self.model, contents=prompt, config=config),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise LLMError(f"Gemini API call timed out after {self.timeout:.0f} seconds", provider=self.provider) from e
        except Exception as e:
            raise LLMError(f"Gemini API error: {e}", provider=self.provider) from e

        content = response.text or ""
        if not content.strip():
            raise LLMError("Empty response from Gemini API", provider=self.provider)

        usage = {}
        if getattr(response, "usage_metadata", None):
            usage = {
                "prompt_tokens": response.usage_metadata.prompt_token_count or 0,
                "completion_tokens": response.usage_metadata.candidates_token_count or 0,
                "total_tokens": response.usage_metadata.total_token_count or 0,
            }

        candidate = response.candidates[0] if response.candidates else None
        grounding_info = self._grounding_info(candidate)
        if grounding_info is not None:
            logger.info(
                f"Grounding: {len(grounding_info.search_queries)} queries, "
                f"{grounding_info.source_count} sources"
            )

        finish_reason = getattr(candidate, "finish_reason", None) if candidate is not None else None
        return LLMResponse(
            content=content,
            model=self.model,
            usage=usage,
            finish_reason=getattr(finish_reason, "name", None),
            grounding=grounding_info,
            raw_response=response,
        )

    @staticmethod
    def _grounding_info(candidate) -> Optional[GroundingInfo]:
        metadata = getattr(candidate, "grounding_metadata", None) if candidate is not None else None
        if not metadata:
            return None
        return GroundingInfo(
            search_queries=list(getattr(metadata, "web_search_queries", None) or []),
            source_count=len(getattr(metadata, "grounding_chunks", None) or []),
            has_supports=bool(getattr(metadata, "grounding_supports", None)),
        )
