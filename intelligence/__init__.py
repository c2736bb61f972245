"""
Intelligence Module
LLM providers, the idea generation adapter and idea refinements.
"""
from .llm import (
    BaseLLM,
    AnthropicLLM,
    GeminiLLM,
    OpenAILLM,
    get_llm,
)
from .generation import (
    GenerationResult,
    IdeaGenerator,
    LLMIdeaGenerator,
    build_idea_prompt,
    generate_with_retry,
    parse_ideas,
)
from .refinements import (
    RefinementContext,
    RefinementIdea,
    RefinementResult,
    generate_refinement,
    list_refinement_kinds,
)

__all__ = [
    # LLM
    "BaseLLM",
    "AnthropicLLM",
    "GeminiLLM",
    "OpenAILLM",
    "get_llm",
    # Generation
    "GenerationResult",
    "IdeaGenerator",
    "LLMIdeaGenerator",
    "build_idea_prompt",
    "generate_with_retry",
    "parse_ideas",
    # Refinements
    "RefinementContext",
    "RefinementIdea",
    "RefinementResult",
    "generate_refinement",
    "list_refinement_kinds",
]
