"""
Anthropic LLM
Claude models through the official async SDK.
"""
from typing import Dict, List, Optional, Tuple
import inspect
import logging

from utils.exceptions import LLMError

from .base import BaseLLM, LLMResponse, Message, MessageRole


logger = logging.getLogger(__name__)

JSON_ONLY_INSTRUCTION = "Respond with a single JSON object and nothing else."


class AnthropicLLM(BaseLLM):
    """
    Anthropic Claude implementation

    The Messages API has no JSON switch, so JSON mode is requested through
    the system prompt.
    """

    def __init__(
        self,
        model: str = "claude-3-5-sonnet-20241022",
        api_key: Optional[str] = None,
        temperature: float = 0.9,
        max_tokens: int = 4096,
        timeout: float = 60.0,
        **kwargs,
    ):
        super().__init__(model, temperature, max_tokens, timeout, **kwargs)
        self.api_key = api_key
        self._async_client = None

    @property
    def provider(self) -> str:
        return "anthropic"

    def _get_async_client(self):
        if self._async_client is None:
            from anthropic import AsyncAnthropic
            self._async_client = AsyncAnthropic(
                api_key=self.api_key,
                timeout=self.timeout,
            )
        return self._async_client

    @staticmethod
    def _convert_messages(messages: List[Message]) -> Tuple[Optional[str], List[Dict]]:
        """Pull the system prompt out of the message list."""
        system_prompt = None
        converted = []
        for msg in messages:
            if msg.role == MessageRole.SYSTEM:
                system_prompt = msg.content
            else:
                converted.append({"role": msg.role.value, "content": msg.content})
        return system_prompt, converted

    async def acomplete(
        self,
        messages: List[Message],
        *,
        json_mode: bool = False,
        **kwargs,
    ) -> LLMResponse:
        client = self._get_async_client()
        system_prompt, converted_messages = self._convert_messages(messages)
        if json_mode:
            system_prompt = f"{system_prompt}\n\n{JSON_ONLY_INSTRUCTION}" if system_prompt else JSON_ONLY_INSTRUCTION

        request_params = {
            "model": self.model,
            "messages": converted_messages,
            "temperature": kwargs.get("temperature", self.temperature),
            "max_tokens": kwargs.get("max_tokens", self.max_tokens),
        }
        if system_prompt:
            request_params["system"] = system_prompt

        try:
            response = await client.messages.create(**request_params)
        except Exception as exc:
            raise LLMError(f"Anthropic request failed: {exc}", provider=self.provider) from exc

        content = "".join(block.text for block in response.content if block.type == "text")

        return LLMResponse(
            content=content,
            model=response.model,
            usage={
                "prompt_tokens": response.usage.input_tokens,
                "completion_tokens": response.usage.output_tokens,
                "total_tokens": response.usage.input_tokens + response.usage.output_tokens,
            },
            finish_reason=response.stop_reason,
            raw_response=response,
        )

    async def aclose(self) -> None:
        client = self._async_client
        self._async_client = None
        if client is None:
            return
        close_fn = getattr(client, "close", None)
        if callable(close_fn):
            maybe_awaitable = close_fn()
            if inspect.isawaitable(maybe_awaitable):
                await maybe_awaitable
