"""
Intelligence Module
Model clients and the grounded country summary generator
"""
from .llm import BaseLLM, GeminiLLM, LLMResponse, get_llm
from .response_parser import parse_summary_response
from .summary_editing import sanitize_summary_edit, validate_summary_edit
from .summary_generator import GenerationResult, SummaryGenerator, build_prompt

__all__ = [
    "BaseLLM",
    "GeminiLLM",
    "LLMResponse",
    "get_llm",
    "parse_summary_response",
    "GenerationResult",
    "SummaryGenerator",
    "build_prompt",
    "sanitize_summary_edit",
    "validate_summary_edit",
]
