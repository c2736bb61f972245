"""
Google Gemini LLM
Default provider for idea generation.
"""
from typing import Dict, List, Optional, Tuple
import logging

from utils.exceptions import LLMError

from .base import BaseLLM, LLMResponse, Message, MessageRole


logger = logging.getLogger(__name__)


class GeminiLLM(BaseLLM):
    """
    Google Gemini implementation

    JSON mode maps to ``response_mime_type="application/json"``.
    """

    def __init__(
        self,
        model: str = "gemini-1.5-pro-latest",
        api_key: Optional[str] = None,
        temperature: float = 0.9,
        max_tokens: int = 4096,
        timeout: float = 60.0,
        **kwargs,
    ):
        super().__init__(model, temperature, max_tokens, timeout, **kwargs)
        self.api_key = api_key
        self._configured = False

    @property
    def provider(self) -> str:
        return "gemini"

    def _configure(self):
        import google.generativeai as genai

        if not self._configured:
            genai.configure(api_key=self.api_key)
            self._configured = True
        return genai

    @staticmethod
    def _convert_messages(messages: List[Message]) -> Tuple[Optional[str], List[Dict], str]:
        """Split into (system_instruction, history, last user message)."""
        system_instruction = None
        history: List[Dict] = []
        last_message = ""

        for msg in messages:
            if msg.role == MessageRole.SYSTEM:
                system_instruction = msg.content
            elif msg.role == MessageRole.USER:
                if last_message:
                    history.append({"role": "user", "parts": [last_message]})
                last_message = msg.content
            elif msg.role == MessageRole.ASSISTANT:
                if last_message:
                    history.append({"role": "user", "parts": [last_message]})
                    last_message = ""
                history.append({"role": "model", "parts": [msg.content]})

        return system_instruction, history, last_message

    async def acomplete(
        self,
        messages: List[Message],
        *,
        json_mode: bool = False,
        **kwargs,
    ) -> LLMResponse:
        genai = self._configure()
        system_instruction, history, last_message = self._convert_messages(messages)

        generation_config = {
            "temperature": kwargs.get("temperature", self.temperature),
            "max_output_tokens": kwargs.get("max_tokens", self.max_tokens),
        }
        if json_mode:
            generation_config["response_mime_type"] = "application/json"

        try:
            model = genai.GenerativeModel(
                model_name=self.model,
                generation_config=generation_config,
                system_instruction=system_instruction,
            )
            chat = model.start_chat(history=history)
            response = await chat.send_message_async(
                last_message,
                request_options={"timeout": self.timeout},
            )
        except Exception as exc:
            raise LLMError(f"Gemini request failed: {exc}", provider=self.provider) from exc

        content = ""
        candidates = getattr(response, "candidates", None) or []
        if candidates and candidates[0].content and candidates[0].content.parts:
            content = "".join(getattr(part, "text", "") or "" for part in candidates[0].content.parts)

        usage = {}
        metadata = getattr(response, "usage_metadata", None)
        if metadata:
            usage = {
                "prompt_tokens": metadata.prompt_token_count,
                "completion_tokens": metadata.candidates_token_count,
                "total_tokens": metadata.total_token_count,
            }

        return LLMResponse(
            content=content,
            model=self.model,
            usage=usage,
            finish_reason=candidates[0].finish_reason.name if candidates else None,
            raw_response=response,
        )
