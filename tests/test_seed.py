from __future__ import annotations

import pytest

from config.settings import PipelineSettings
from orchestrator.seed import sanitize_seed, summarize_seed
from utils.exceptions import SeedValidationError


def _settings() -> PipelineSettings:
    return PipelineSettings(default_n=6, default_k=3, max_ideas=6)


def _seed(**overrides) -> dict:
    seed = {
        "goal": "  Launch a loyalty app ",
        "audience": "frequent commuters",
        "constraints": "must launch in 6 weeks",
    }
    seed.update(overrides)
    return seed


def test_sanitize_trims_and_applies_defaults() -> None:
    seed = sanitize_seed(_seed(), _settings())

    assert seed.goal == "Launch a loyalty app"
    assert seed.idea_count == 6
    assert seed.top_k == 3
    assert seed.clamped is False
    assert seed.adjustments == []


def test_sanitize_clamps_counts_without_error() -> None:
    seed = sanitize_seed(_seed(requestedIdeaCount=100, requestedTopK=10), _settings())

    assert seed.idea_count == 6
    assert seed.top_k == 6
    assert seed.clamped is True
    assert seed.requested_idea_count == 100
    assert len(seed.adjustments) == 2


def test_sanitize_clamps_non_positive_counts_to_one() -> None:
    seed = sanitize_seed(_seed(n=0, k=-3), _settings())
    assert seed.idea_count == 1
    assert seed.top_k == 1


def test_top_k_never_exceeds_idea_count() -> None:
    seed = sanitize_seed(_seed(n=2), _settings())
    assert seed.idea_count == 2
    assert seed.top_k == 2


@pytest.mark.parametrize("field", ["goal", "audience", "constraints"])
def test_blank_text_field_is_rejected(field: str) -> None:
    with pytest.raises(SeedValidationError) as excinfo:
        sanitize_seed(_seed(**{field: "   "}), _settings())
    assert excinfo.value.field == field


def test_missing_field_and_non_object_are_rejected() -> None:
    payload = _seed()
    payload.pop("audience")
    with pytest.raises(SeedValidationError):
        sanitize_seed(payload, _settings())
    with pytest.raises(SeedValidationError):
        sanitize_seed(["not", "a", "seed"], _settings())


def test_summary_mentions_goal_and_adjustments() -> None:
    summary = summarize_seed(sanitize_seed(_seed(n=100), _settings()))

    assert "Launch a loyalty app" in summary.summary
    assert summary.idea_count == 6
    assert summary.adjustments
    assert "clamped" in summary.summary
