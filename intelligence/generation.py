"""
Idea Generation
Adapter between the pipeline and the generation service: prompt building,
response validation, and the retry-once-on-invalid-output policy.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
import json
import logging
import re
from typing import Callable, List, Optional

from pydantic import BaseModel, Field, ValidationError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from core import GenerationUsage, Idea, SanitizedSeed
from utils.exceptions import GenerationError, InvalidOutputError, LLMError

from .llm import BaseLLM, get_llm


logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "You are an expert creative strategist helping brainstorm product and campaign concepts."
STRICT_JSON_NOTE = "STRICTLY return valid JSON ONLY. No prose."
MAX_ATTEMPTS = 2

_FENCE_PATTERN = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)


@dataclass
class GenerationResult:
    ideas: List[Idea]
    usage: GenerationUsage
    raw: str


class IdeaGenerator(ABC):
    """Contract of the external idea generation service."""

    @abstractmethod
    async def generate(self, seed: SanitizedSeed, count: int, *, strict: bool = False) -> GenerationResult:
        """
        Make one generation attempt.

        Args:
            seed: sanitized seed
            count: number of ideas to ask for
            strict: add the strengthened JSON-only constraint

        Raises:
            GenerationError: the service call failed
            InvalidOutputError: the response did not parse into ideas
        """
        pass


def build_idea_prompt(seed: SanitizedSeed, count: int, *, strict: bool = False) -> str:
    lines = [
        f"Generate {count} diverse ideas based on the seed data.",
        "Return a JSON object with this exact shape:",
        '{"ideas": [{"title": string, "description": string, "rationale": string, "risk": string}]}',
        "Rules:",
        "- titles under 10 words",
        "- description 2-3 sentences",
        "- rationale 1 sentence",
        "- risk summarises a key execution risk in 1 sentence",
        f"Goal: {seed.goal}",
        f"Audience: {seed.audience}",
        f"Constraints: {seed.constraints}",
    ]
    if strict:
        lines.append(STRICT_JSON_NOTE)
    return "\n".join(lines)


class _IdeaBatch(BaseModel):
    ideas: List[Idea] = Field(min_length=1)


def _strip_fences(text: str) -> str:
    match = _FENCE_PATTERN.match(text)
    return match.group(1) if match else text


def parse_ideas(raw: Optional[str]) -> List[Idea]:
    """
    Parse ``{"ideas": [...]}`` into validated ideas.

    Raises:
        InvalidOutputError: empty text, bad JSON, missing ``ideas`` or an idea
            without a non-empty title, description or rationale
    """
    text = _strip_fences(str(raw or "").strip())
    if not text:
        raise InvalidOutputError("Generation response missing text content.", raw=raw)

    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise InvalidOutputError("Generation response was not valid JSON.", raw=raw) from exc

    if not isinstance(data, dict) or "ideas" not in data:
        raise InvalidOutputError('Generation JSON missing "ideas" field.', raw=raw)

    try:
        batch = _IdeaBatch.model_validate(data)
    except ValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        raise InvalidOutputError(
            f"Generation JSON failed validation at {location}: {first.get('msg')}",
            raw=raw,
        ) from exc
    return list(batch.ideas)


class LLMIdeaGenerator(IdeaGenerator):
    """Idea generator backed by a chat LLM in JSON mode."""

    def __init__(
        self,
        llm: Optional[BaseLLM] = None,
        llm_factory: Callable[[], BaseLLM] = get_llm,
    ) -> None:
        self._llm = llm
        self._llm_factory = llm_factory

    def _get_llm(self) -> BaseLLM:
        if self._llm is None:
            self._llm = self._llm_factory()
        return self._llm

    async def generate(self, seed: SanitizedSeed, count: int, *, strict: bool = False) -> GenerationResult:
        llm = self._get_llm()
        prompt = build_idea_prompt(seed, count, strict=strict)
        try:
            response = await llm.achat(prompt, system_prompt=SYSTEM_PROMPT, json_mode=True)
        except LLMError as exc:
            raise GenerationError(exc.message, {"provider": exc.provider}) from exc

        ideas = parse_ideas(response.content)
        usage = GenerationUsage(
            prompt_token_count=response.usage.get("prompt_tokens"),
            candidates_token_count=response.usage.get("completion_tokens"),
            total_token_count=response.usage.get("total_tokens"),
            model=response.model,
            provider=llm.provider,
        )
        return GenerationResult(ideas=ideas, usage=usage, raw=response.content)

    async def aclose(self) -> None:
        if self._llm is not None:
            await self._llm.aclose()


def _log_retry(retry_state) -> None:
    logger.warning(
        "generation_retry attempt=%d error=%s",
        retry_state.attempt_number,
        retry_state.outcome.exception() if retry_state.outcome else None,
    )


async def generate_with_retry(
    generator: IdeaGenerator,
    seed: SanitizedSeed,
    count: int,
    *,
    max_attempts: int = MAX_ATTEMPTS,
) -> GenerationResult:
    """
    Generate ideas under the narrow retry policy.

    Only ``InvalidOutputError`` is retried, once, with the strict JSON note.
    ``GenerationError`` and the second invalid response propagate.
    """
    attempt_number = 0
    result: Optional[GenerationResult] = None
    async for attempt in AsyncRetrying(
        retry=retry_if_exception_type(InvalidOutputError),
        stop=stop_after_attempt(max_attempts),
        before_sleep=_log_retry,
        reraise=True,
    ):
        with attempt:
            attempt_number = attempt.retry_state.attempt_number
            result = await generator.generate(seed, count, strict=attempt_number > 1)

    result.usage = result.usage.model_copy(update={"attempts": attempt_number})
    return result
