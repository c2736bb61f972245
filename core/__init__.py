"""Core contracts and shared types for brainstorm runs."""

from .contracts import (
    PIPELINE_GRAPH,
    STAGE_LABELS,
    STAGE_ORDER,
    BriefMetadata,
    BriefSection,
    GenerateInput,
    GenerateOutput,
    GenerationUsage,
    Idea,
    PackageInput,
    PackageReadyEvent,
    PackagedBrief,
    PipelineGraph,
    RunEvent,
    RunStages,
    RunState,
    RunStatus,
    RunStatusEvent,
    SanitizedSeed,
    SeedInput,
    SeedSummary,
    StageArtifact,
    StageId,
    StageOutputEvent,
    StageState,
    StageStatus,
    StageStatusEvent,
    parse_run_event,
    utcnow,
)

__all__ = [
    "PIPELINE_GRAPH",
    "STAGE_LABELS",
    "STAGE_ORDER",
    "BriefMetadata",
    "BriefSection",
    "GenerateInput",
    "GenerateOutput",
    "GenerationUsage",
    "Idea",
    "PackageInput",
    "PackageReadyEvent",
    "PackagedBrief",
    "PipelineGraph",
    "RunEvent",
    "RunStages",
    "RunState",
    "RunStatus",
    "RunStatusEvent",
    "SanitizedSeed",
    "SeedInput",
    "SeedSummary",
    "StageArtifact",
    "StageId",
    "StageOutputEvent",
    "StageState",
    "StageStatus",
    "StageStatusEvent",
    "parse_run_event",
    "utcnow",
]
