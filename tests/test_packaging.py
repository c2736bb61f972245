from __future__ import annotations

from config.settings import PipelineSettings
from core import Idea
from orchestrator.packaging import build_brief, select_top_k
from orchestrator.seed import sanitize_seed


def _ideas(count: int):
    return [
        Idea(
            title=f"Idea {i}",
            description=f"Description {i}.",
            rationale=f"Rationale {i}.",
            risk=f"Risk {i}." if i % 2 else None,
        )
        for i in range(1, count + 1)
    ]


def _seed():
    return sanitize_seed(
        {"goal": "Launch a loyalty app", "audience": "frequent commuters", "constraints": "must launch in 6 weeks"},
        PipelineSettings(),
    )


def test_select_top_k_keeps_generation_order_and_clamps() -> None:
    ideas = _ideas(4)
    assert [idea.title for idea in select_top_k(ideas, 2)] == ["Idea 1", "Idea 2"]
    assert len(select_top_k(ideas, 10)) == 4
    assert len(select_top_k(ideas, 0)) == 1
    assert select_top_k([], 3) == []


def test_build_brief_structure_and_markdown() -> None:
    brief = build_brief(_seed(), _ideas(6), 3)

    assert brief.title == "Brainstorm Brief"
    assert brief.metadata.selected_count == 3
    assert brief.metadata.total_generated == 6
    assert [section.title for section in brief.sections] == ["Seed", "1. Idea 1", "2. Idea 2", "3. Idea 3"]

    text = brief.rendered_text
    assert text.startswith("# Brainstorm Brief\n")
    assert "**Goal:** Launch a loyalty app" in text
    assert "## Top Concepts" in text
    assert "1. **Idea 1**" in text
    assert "   - Risk: Risk 1." in text
    assert "Idea 4" not in text
    # Idea 2 has no risk line
    assert "Risk 2." not in text


def test_build_brief_is_deterministic() -> None:
    first = build_brief(_seed(), _ideas(5), 2)
    second = build_brief(_seed(), _ideas(5), 2)
    assert first.to_wire() == second.to_wire()
