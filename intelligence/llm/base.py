"""
Base LLM
Provider-neutral chat completion interface used by the idea generator.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class MessageRole(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class Message:
    """Chat message"""
    role: MessageRole
    content: str

    def to_dict(self) -> Dict[str, Any]:
        return {"role": self.role.value, "content": self.content}

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=MessageRole.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=MessageRole.USER, content=content)

    @classmethod
    def assistant(cls, content: str) -> "Message":
        return cls(role=MessageRole.ASSISTANT, content=content)


@dataclass
class LLMResponse:
    """Completion result"""
    content: str
    model: str
    usage: Dict[str, int] = field(default_factory=dict)  # prompt_tokens, completion_tokens, total_tokens
    finish_reason: Optional[str] = None
    raw_response: Optional[Any] = None


class BaseLLM(ABC):
    """
    Abstract LLM provider

    Implementations wrap one vendor SDK. SDK failures surface as ``LLMError``.
    """

    def __init__(
        self,
        model: str,
        temperature: float = 0.7,
        max_tokens: int = 4096,
        timeout: float = 60.0,
        **kwargs,
    ):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.extra_config = kwargs

    @property
    @abstractmethod
    def provider(self) -> str:
        """Provider name"""
        pass

    @abstractmethod
    async def acomplete(
        self,
        messages: List[Message],
        *,
        json_mode: bool = False,
        **kwargs,
    ) -> LLMResponse:
        """
        Generate a completion.

        Args:
            messages: conversation so far
            json_mode: ask the provider for a JSON-only response
            **kwargs: per-call overrides (temperature, max_tokens)

        Returns:
            LLMResponse
        """
        pass

    async def achat(
        self,
        user_message: str,
        system_prompt: Optional[str] = None,
        *,
        json_mode: bool = False,
    ) -> LLMResponse:
        """Single-turn convenience wrapper."""
        messages = []
        if system_prompt:
            messages.append(Message.system(system_prompt))
        messages.append(Message.user(user_message))
        return await self.acomplete(messages, json_mode=json_mode)

    async def aclose(self) -> None:
        """Release client resources (no-op by default)."""
        return None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(model={self.model}, provider={self.provider})"
