"""
LLM Module
Multi-provider chat completion layer.
"""
from .base import BaseLLM, LLMResponse, Message, MessageRole
from .openai_llm import OpenAILLM
from .anthropic_llm import AnthropicLLM
from .gemini_llm import GeminiLLM
from .factory import DEFAULT_MODELS, get_llm

__all__ = [
    "BaseLLM",
    "LLMResponse",
    "Message",
    "MessageRole",
    "OpenAILLM",
    "AnthropicLLM",
    "GeminiLLM",
    "DEFAULT_MODELS",
    "get_llm",
]
