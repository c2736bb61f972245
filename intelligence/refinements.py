"""
Idea Refinements
Expand one generated idea into a structured worksheet (UI flow, capability
breakdown or experience polish checklist).
"""
from __future__ import annotations

from dataclasses import dataclass
import json
import logging
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from core import GenerationUsage
from utils.exceptions import LLMError, RefinementError

from .llm import BaseLLM, get_llm


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RefinementField:
    key: str
    label: str
    placeholder: str


@dataclass(frozen=True)
class RefinementTemplate:
    label: str
    description: str
    fields: List[RefinementField]


TEMPLATES: Dict[str, RefinementTemplate] = {
    "ui-flow": RefinementTemplate(
        label="UI Flow Sketch",
        description="Outline the user journey so design can turn it into flow diagrams or wireframes.",
        fields=[
            RefinementField("entryPoints", "Entry points", "Where does the user first meet this idea?"),
            RefinementField("primaryInteractions", "Primary interactions", "Key screens, steps or components in order."),
            RefinementField("edgeCases", "Edge cases", "Failure states and alternate flows to watch."),
            RefinementField("successCriteria", "Success criteria", "What a good outcome looks like for users and the business."),
        ],
    ),
    "capability-breakdown": RefinementTemplate(
        label="Capability Breakdown",
        description="Identify the technical, operational and data capabilities the idea needs.",
        fields=[
            RefinementField("apis", "APIs & services", "New or existing APIs and services required."),
            RefinementField("dataModels", "Data models", "Data structures or storage changes needed."),
            RefinementField("integrations", "Integrations", "Internal or third-party integrations."),
            RefinementField("dependencies", "Dependencies & sequencing", "Cross-team dependencies, ordering and blockers."),
        ],
    ),
    "experience-polish": RefinementTemplate(
        label="Experience Polish Checklist",
        description="Experience-level considerations needed to ship the idea at the right quality.",
        fields=[
            RefinementField("accessibility", "Accessibility", "Contrast, keyboard paths, semantics, assistive tech."),
            RefinementField("performance", "Performance", "Targets, instrumentation, perceived-performance tactics."),
            RefinementField("localization", "Localization & voice", "Language, tone, regional content, formatting."),
            RefinementField("analytics", "Analytics & learning", "Event naming, dashboards, cohorts, feedback loops."),
        ],
    ),
}


class RefinementIdea(BaseModel):
    title: str
    description: Optional[str] = None
    rationale: Optional[str] = None
    risk: Optional[str] = None

    @field_validator("title")
    @classmethod
    def _required_title(cls, value: str) -> str:
        text = str(value or "").strip()
        if not text:
            raise ValueError("Idea title is required.")
        return text

    @field_validator("description", "rationale", "risk", mode="before")
    @classmethod
    def _optional_text(cls, value):
        text = str(value or "").strip()
        return text or None


class RefinementContext(BaseModel):
    goal: Optional[str] = None
    audience: Optional[str] = None
    constraints: Optional[str] = None

    @field_validator("goal", "audience", "constraints", mode="before")
    @classmethod
    def _optional_text(cls, value):
        text = str(value or "").strip()
        return text or None


class RefinementResult(BaseModel):
    kind: str
    label: str
    fields: Dict[str, str] = Field(default_factory=dict)
    usage: GenerationUsage = Field(default_factory=GenerationUsage)


def list_refinement_kinds() -> List[Dict[str, object]]:
    return [
        {
            "kind": kind,
            "label": template.label,
            "description": template.description,
            "fields": [{"key": f.key, "label": f.label} for f in template.fields],
        }
        for kind, template in TEMPLATES.items()
    ]


def build_refinement_prompt(kind: str, idea: RefinementIdea, context: Optional[RefinementContext] = None) -> str:
    template = TEMPLATES[kind]
    sections = [
        f"Generate a structured {template.label.lower()} for the following concept.",
        "Respond with JSON only.",
        "",
        "Concept Details:",
        f"- Title: {idea.title}",
    ]
    if idea.description:
        sections.append(f"- Description: {idea.description}")
    if idea.rationale:
        sections.append(f"- Rationale: {idea.rationale}")
    if idea.risk:
        sections.append(f"- Risk: {idea.risk}")

    if context and (context.goal or context.audience or context.constraints):
        sections.extend(["", "Seed Context:"])
        if context.goal:
            sections.append(f"- Goal: {context.goal}")
        if context.audience:
            sections.append(f"- Audience: {context.audience}")
        if context.constraints:
            sections.append(f"- Constraints: {context.constraints}")

    sections.extend(["", "Return a JSON object with exactly these string keys:"])
    for index, field in enumerate(template.fields, start=1):
        sections.append(f"{index}. {field.key} ({field.label}): {field.placeholder}")
    return "\n".join(sections)


def parse_refinement(kind: str, raw: str) -> Dict[str, str]:
    try:
        parsed = json.loads(str(raw or "").strip())
    except json.JSONDecodeError as exc:
        raise RefinementError("Refinement response was not valid JSON.") from exc
    if not isinstance(parsed, dict):
        raise RefinementError("Refinement JSON must be an object.")

    output: Dict[str, str] = {}
    for field in TEMPLATES[kind].fields:
        value = parsed.get(field.key)
        if not isinstance(value, str) or not value.strip():
            raise RefinementError(f'Refinement field "{field.key}" missing or empty.')
        output[field.key] = value.strip()
    return output


async def generate_refinement(
    kind: str,
    idea: RefinementIdea,
    context: Optional[RefinementContext] = None,
    *,
    llm: Optional[BaseLLM] = None,
    llm_factory: Callable[[], BaseLLM] = get_llm,
) -> RefinementResult:
    """
    Ask the generation service for one refinement worksheet.

    Raises:
        RefinementError: unknown kind, failed call or malformed response
    """
    if kind not in TEMPLATES:
        raise RefinementError(f"Unsupported refinement kind: {kind}")

    llm = llm or llm_factory()
    prompt = build_refinement_prompt(kind, idea, context)
    try:
        response = await llm.achat(
            prompt,
            system_prompt="You are a senior product strategist and UX collaborator shaping a shippable app experience.",
            json_mode=True,
        )
    except LLMError as exc:
        raise RefinementError(exc.message, {"provider": exc.provider}) from exc

    fields = parse_refinement(kind, response.content)
    logger.info("refinement_generated kind=%s title=%s", kind, idea.title)
    return RefinementResult(
        kind=kind,
        label=TEMPLATES[kind].label,
        fields=fields,
        usage=GenerationUsage(
            prompt_token_count=response.usage.get("prompt_tokens"),
            candidates_token_count=response.usage.get("completion_tokens"),
            total_token_count=response.usage.get("total_tokens"),
            model=response.model,
            provider=llm.provider,
        ),
    )
