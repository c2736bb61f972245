"""Compose the packaged brief from the selected ideas."""

from __future__ import annotations

from typing import List, Sequence

from core import BriefMetadata, BriefSection, Idea, PackagedBrief, SanitizedSeed


BRIEF_TITLE = "Brainstorm Brief"
BRIEF_FOOTER = "Generated via Node-Graph Brainstormer"


def select_top_k(ideas: Sequence[Idea], requested_k: int) -> List[Idea]:
    """First ``k`` ideas in generation order, ``k`` clamped to ``[1, len(ideas)]``."""
    if not ideas:
        return []
    k = max(1, min(len(ideas), int(requested_k)))
    return list(ideas[:k])


def _idea_body(idea: Idea) -> str:
    lines = [f"Overview: {idea.description}", f"Rationale: {idea.rationale}"]
    if idea.risk:
        lines.append(f"Risk: {idea.risk}")
    return "\n".join(lines)


def render_brief_markdown(seed: SanitizedSeed, selected: Sequence[Idea]) -> str:
    lines = [
        f"# {BRIEF_TITLE}",
        "",
        f"**Goal:** {seed.goal}",
        f"**Audience:** {seed.audience}",
        f"**Constraints:** {seed.constraints}",
        "",
        "## Top Concepts",
        "",
    ]
    for index, idea in enumerate(selected, start=1):
        lines.append(f"{index}. **{idea.title}**")
        lines.append(f"   - Overview: {idea.description}")
        lines.append(f"   - Rationale: {idea.rationale}")
        if idea.risk:
            lines.append(f"   - Risk: {idea.risk}")
        lines.append("")
    lines.append("---")
    lines.append(BRIEF_FOOTER)
    return "\n".join(lines) + "\n"


def build_brief(seed: SanitizedSeed, ideas: Sequence[Idea], k: int) -> PackagedBrief:
    """
    Build the structured brief and its markdown rendering.

    The same seed and ideas always produce the same brief.
    """
    selected = select_top_k(ideas, k)
    sections = [BriefSection(title="Seed", body=f"Goal: {seed.goal}\nAudience: {seed.audience}\nConstraints: {seed.constraints}")]
    sections.extend(
        BriefSection(title=f"{index}. {idea.title}", body=_idea_body(idea))
        for index, idea in enumerate(selected, start=1)
    )
    summary = f"Top {len(selected)} of {len(ideas)} concepts for '{seed.goal}' aimed at {seed.audience}."
    return PackagedBrief(
        title=BRIEF_TITLE,
        summary=summary,
        metadata=BriefMetadata(selected_count=len(selected), total_generated=len(ideas)),
        sections=sections,
        rendered_text=render_brief_markdown(seed, selected),
    )
