"""Seed sanitization: trim, validate and clamp a caller's seed before a run exists."""

from __future__ import annotations

from typing import Any, List, Mapping, Optional, Union

from pydantic import ValidationError

from config.settings import PipelineSettings
from core import SanitizedSeed, SeedInput, SeedSummary
from utils.exceptions import SeedValidationError


_TEXT_FIELDS = ("goal", "audience", "constraints")


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def coerce_seed(payload: Union[SeedInput, Mapping[str, Any]]) -> SeedInput:
    """Validate a raw mapping into ``SeedInput``; malformed input raises ``SeedValidationError``."""
    if isinstance(payload, SeedInput):
        return payload
    if not isinstance(payload, Mapping):
        raise SeedValidationError("Seed must be a JSON object.")
    try:
        return SeedInput.model_validate(dict(payload))
    except ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or None
        raise SeedValidationError(f"Invalid seed: {first.get('msg')}", field=field) from exc


def sanitize_seed(
    payload: Union[SeedInput, Mapping[str, Any]],
    settings: Optional[PipelineSettings] = None,
) -> SanitizedSeed:
    """
    Trim text fields and clamp the requested counts.

    ``idea_count`` lands in ``[1, max_ideas]`` and ``top_k`` in
    ``[1, idea_count]``. Every clamp is recorded in ``adjustments``; clamping
    is never an error.

    Raises:
        SeedValidationError: a text field is missing or blank
    """
    settings = settings or PipelineSettings()
    seed = coerce_seed(payload)

    cleaned = {}
    for name in _TEXT_FIELDS:
        text = str(getattr(seed, name) or "").strip()
        if not text:
            raise SeedValidationError(f"Seed field '{name}' must not be empty.", field=name)
        cleaned[name] = text

    adjustments: List[str] = []

    wanted_ideas = settings.default_n if seed.requested_idea_count is None else seed.requested_idea_count
    idea_count = _clamp(wanted_ideas, 1, settings.max_ideas)
    if idea_count != wanted_ideas:
        adjustments.append(f"requestedIdeaCount {wanted_ideas} clamped to {idea_count}")

    wanted_top_k = settings.default_k if seed.requested_top_k is None else seed.requested_top_k
    top_k = _clamp(wanted_top_k, 1, idea_count)
    if top_k != wanted_top_k:
        adjustments.append(f"requestedTopK {wanted_top_k} clamped to {top_k}")

    return SanitizedSeed(
        **cleaned,
        idea_count=idea_count,
        top_k=top_k,
        requested_idea_count=seed.requested_idea_count,
        requested_top_k=seed.requested_top_k,
        clamped=bool(adjustments),
        adjustments=adjustments,
    )


def summarize_seed(seed: SanitizedSeed) -> SeedSummary:
    """Seed stage output; deterministic and local."""
    summary = (
        f"Brainstorm {seed.idea_count} ideas for '{seed.goal}' aimed at {seed.audience}, "
        f"packaging the top {seed.top_k}. Constraints: {seed.constraints}."
    )
    if seed.adjustments:
        summary += " Adjusted: " + "; ".join(seed.adjustments) + "."
    return SeedSummary(
        goal=seed.goal,
        audience=seed.audience,
        constraints=seed.constraints,
        idea_count=seed.idea_count,
        top_k=seed.top_k,
        summary=summary,
        adjustments=list(seed.adjustments),
    )
