from __future__ import annotations

from types import SimpleNamespace

import pytest

from config.settings import LLMSettings
from intelligence.llm import AnthropicLLM, GeminiLLM, Message, OpenAILLM, get_llm
from utils.exceptions import ConfigurationError, LLMError


def _use_settings(monkeypatch, **values) -> None:
    values.setdefault("model_name", None)
    settings = LLMSettings(**values)
    monkeypatch.setattr("config.get_llm_settings", lambda: settings)


def test_factory_builds_configured_provider(monkeypatch) -> None:
    _use_settings(monkeypatch, provider="openai", openai_api_key="sk-test", temperature=0.3)
    llm = get_llm()

    assert isinstance(llm, OpenAILLM)
    assert llm.model == "gpt-4o-mini"
    assert llm.temperature == 0.3


def test_factory_defaults_to_gemini(monkeypatch) -> None:
    monkeypatch.delenv("LLM_PROVIDER", raising=False)
    _use_settings(monkeypatch, gemini_api_key="g-test")
    llm = get_llm()
    assert isinstance(llm, GeminiLLM)
    assert llm.provider == "gemini"


def test_factory_honours_overrides(monkeypatch) -> None:
    _use_settings(monkeypatch, provider="gemini", anthropic_api_key="a-test")
    llm = get_llm(provider="anthropic", model="claude-custom")
    assert isinstance(llm, AnthropicLLM)
    assert llm.model == "claude-custom"


def test_factory_rejects_unknown_provider_and_missing_key(monkeypatch) -> None:
    _use_settings(monkeypatch, provider="deepthought")
    with pytest.raises(ConfigurationError):
        get_llm()

    _use_settings(monkeypatch, provider="openai", openai_api_key=None)
    with pytest.raises(ConfigurationError) as excinfo:
        get_llm()
    assert excinfo.value.details["env"] == "LLM_OPENAI_API_KEY"


class _FakeCompletions:
    def __init__(self, error: Exception = None) -> None:
        self.calls = []
        self.error = error

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        return SimpleNamespace(
            model=kwargs["model"],
            choices=[SimpleNamespace(message=SimpleNamespace(content='{"ideas": []}'), finish_reason="stop")],
            usage=SimpleNamespace(prompt_tokens=3, completion_tokens=4, total_tokens=7),
        )


def _openai_with(completions: _FakeCompletions) -> OpenAILLM:
    llm = OpenAILLM(model="gpt-test", api_key="sk-test")
    llm._async_client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return llm


@pytest.mark.asyncio
async def test_openai_json_mode_and_usage() -> None:
    completions = _FakeCompletions()
    llm = _openai_with(completions)

    response = await llm.acomplete([Message.user("hi")], json_mode=True)

    assert completions.calls[0]["response_format"] == {"type": "json_object"}
    assert response.content == '{"ideas": []}'
    assert response.usage == {"prompt_tokens": 3, "completion_tokens": 4, "total_tokens": 7}


@pytest.mark.asyncio
async def test_openai_errors_become_llm_errors() -> None:
    llm = _openai_with(_FakeCompletions(error=RuntimeError("503")))
    with pytest.raises(LLMError) as excinfo:
        await llm.achat("hi", json_mode=True)
    assert excinfo.value.provider == "openai"


class _FakeGeminiChat:
    def __init__(self, history) -> None:
        self.history = history
        self.sent = []

    async def send_message_async(self, message, request_options=None):
        self.sent.append((message, request_options))
        part = SimpleNamespace(text='{"ideas": []}')
        return SimpleNamespace(
            candidates=[
                SimpleNamespace(content=SimpleNamespace(parts=[part]), finish_reason=SimpleNamespace(name="STOP"))
            ],
            usage_metadata=SimpleNamespace(prompt_token_count=2, candidates_token_count=3, total_token_count=5),
        )


class _FakeGenAI:
    def __init__(self) -> None:
        self.models = []
        self.chats = []

    def GenerativeModel(self, **kwargs):
        self.models.append(kwargs)
        return SimpleNamespace(start_chat=self._start_chat)

    def _start_chat(self, history):
        chat = _FakeGeminiChat(history)
        self.chats.append(chat)
        return chat


@pytest.mark.asyncio
async def test_gemini_json_mode_history_and_usage() -> None:
    genai = _FakeGenAI()
    llm = GeminiLLM(model="gemini-test", api_key="g-test", timeout=12.0)
    llm._configure = lambda: genai

    response = await llm.acomplete(
        [
            Message.system("Be concise."),
            Message.user("first"),
            Message.assistant("noted"),
            Message.user("list ideas"),
        ],
        json_mode=True,
    )

    model_kwargs = genai.models[0]
    assert model_kwargs["model_name"] == "gemini-test"
    assert model_kwargs["system_instruction"] == "Be concise."
    assert model_kwargs["generation_config"]["response_mime_type"] == "application/json"

    chat = genai.chats[0]
    assert chat.history == [{"role": "user", "parts": ["first"]}, {"role": "model", "parts": ["noted"]}]
    assert chat.sent == [("list ideas", {"timeout": 12.0})]

    assert response.content == '{"ideas": []}'
    assert response.finish_reason == "STOP"
    assert response.usage == {"prompt_tokens": 2, "completion_tokens": 3, "total_tokens": 5}


@pytest.mark.asyncio
async def test_gemini_plain_mode_and_errors() -> None:
    genai = _FakeGenAI()
    llm = GeminiLLM(model="gemini-test", api_key="g-test")
    llm._configure = lambda: genai

    await llm.acomplete([Message.user("hi")])
    assert "response_mime_type" not in genai.models[0]["generation_config"]

    broken = GeminiLLM(model="gemini-test", api_key="g-test")
    broken._configure = lambda: SimpleNamespace(GenerativeModel=lambda **kwargs: 1 / 0)
    with pytest.raises(LLMError) as excinfo:
        await broken.acomplete([Message.user("hi")])
    assert excinfo.value.provider == "gemini"
