"""Canonical data contracts for brainstorm runs, stages, events and briefs."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, Generic, Iterator, List, Literal, Optional, Tuple, TypeVar, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic.alias_generators import to_camel

from utils.exceptions import InvalidTransitionError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ContractModel(BaseModel):
    """Base model: snake_case in Python, camelCase on the wire and on disk."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class StageId(str, Enum):
    """The three fixed pipeline stages, in execution order."""

    SEED = "seed"
    GENERATE = "generate"
    PACKAGE = "package"


class StageStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class RunStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


STAGE_ORDER: Tuple[StageId, ...] = (StageId.SEED, StageId.GENERATE, StageId.PACKAGE)

STAGE_LABELS: Dict[StageId, str] = {
    StageId.SEED: "Seed",
    StageId.GENERATE: "Generate",
    StageId.PACKAGE: "Package",
}

_ALLOWED_TRANSITIONS: Dict[StageStatus, Tuple[StageStatus, ...]] = {
    StageStatus.PENDING: (StageStatus.RUNNING,),
    StageStatus.RUNNING: (StageStatus.COMPLETED, StageStatus.FAILED),
    StageStatus.COMPLETED: (),
    StageStatus.FAILED: (),
}


# --- Seed ---


class SeedInput(ContractModel):
    """Caller-supplied problem statement that starts a run."""

    goal: str
    audience: str
    constraints: str
    requested_idea_count: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices("requestedIdeaCount", "requested_idea_count", "n"),
    )
    requested_top_k: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices("requestedTopK", "requested_top_k", "k"),
    )

    model_config = ConfigDict(frozen=True)


class SanitizedSeed(ContractModel):
    """Trimmed, clamped copy of a seed; this is what flows downstream."""

    goal: str
    audience: str
    constraints: str
    idea_count: int
    top_k: int
    requested_idea_count: Optional[int] = None
    requested_top_k: Optional[int] = None
    clamped: bool = False
    adjustments: List[str] = Field(default_factory=list)


class SeedSummary(ContractModel):
    goal: str
    audience: str
    constraints: str
    idea_count: int
    top_k: int
    summary: str
    adjustments: List[str] = Field(default_factory=list)


# --- Ideas ---


class Idea(ContractModel):
    """One generated concept."""

    title: str
    description: str
    rationale: str
    risk: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @field_validator("title", "description", "rationale")
    @classmethod
    def _required_text(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("must be a string")
        text = value.strip()
        if not text:
            raise ValueError("must not be empty")
        return text

    @field_validator("risk", mode="before")
    @classmethod
    def _optional_text(cls, value: Any) -> Optional[str]:
        if not isinstance(value, str):
            return None
        text = value.strip()
        return text or None


class GenerateInput(ContractModel):
    count: int
    seed: SanitizedSeed


class GenerateOutput(ContractModel):
    ideas: List[Idea] = Field(default_factory=list)


class GenerationUsage(ContractModel):
    """Token accounting reported by the generation service."""

    prompt_token_count: Optional[int] = None
    candidates_token_count: Optional[int] = None
    total_token_count: Optional[int] = None
    model: Optional[str] = None
    provider: Optional[str] = None
    attempts: int = 1


# --- Brief ---


class PackageInput(ContractModel):
    k: int
    ideas: List[Idea] = Field(default_factory=list)


class BriefSection(ContractModel):
    title: str
    body: str


class BriefMetadata(ContractModel):
    selected_count: int
    total_generated: int


class PackagedBrief(ContractModel):
    """Final deliverable for one run."""

    title: str
    summary: str
    metadata: BriefMetadata
    sections: List[BriefSection] = Field(default_factory=list)
    rendered_text: str


# --- Stage / run state ---

InT = TypeVar("InT")
OutT = TypeVar("OutT")


class StageState(ContractModel, Generic[InT, OutT]):
    """Status and typed input/output of one stage."""

    id: StageId
    label: str
    status: StageStatus = StageStatus.PENDING
    input: Optional[InT] = None
    output: Optional[OutT] = None
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (StageStatus.COMPLETED, StageStatus.FAILED)

    def transition(self, status: StageStatus, *, at: Optional[datetime] = None, **changes: Any) -> "StageState[InT, OutT]":
        """Return a copy moved to ``status``. Only forward moves are legal."""
        if status not in _ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"Stage {self.id.value} cannot move from {self.status.value} to {status.value}"
            )
        timestamp = at or utcnow()
        update: Dict[str, Any] = dict(changes)
        update["status"] = status
        if status == StageStatus.RUNNING:
            update["started_at"] = timestamp
        else:
            update["finished_at"] = timestamp
        return self.model_copy(update=update)


SeedStage = StageState[SanitizedSeed, SeedSummary]
GenerateStage = StageState[GenerateInput, GenerateOutput]
PackageStage = StageState[PackageInput, PackagedBrief]


class RunStages(ContractModel):
    seed: SeedStage = Field(default_factory=lambda: SeedStage(id=StageId.SEED, label=STAGE_LABELS[StageId.SEED]))
    generate: GenerateStage = Field(
        default_factory=lambda: GenerateStage(id=StageId.GENERATE, label=STAGE_LABELS[StageId.GENERATE])
    )
    package: PackageStage = Field(
        default_factory=lambda: PackageStage(id=StageId.PACKAGE, label=STAGE_LABELS[StageId.PACKAGE])
    )

    def get(self, stage_id: StageId) -> StageState:
        return getattr(self, stage_id.value)

    def replace(self, stage_id: StageId, stage: StageState) -> "RunStages":
        return self.model_copy(update={stage_id.value: stage})

    def ordered(self) -> Iterator[StageState]:
        for stage_id in STAGE_ORDER:
            yield self.get(stage_id)


class RunState(ContractModel):
    """Snapshot of one run; persisted as state.json after every transition."""

    id: str
    created_at: datetime = Field(default_factory=utcnow)
    status: RunStatus = RunStatus.RUNNING
    error: Optional[str] = None
    stages: RunStages = Field(default_factory=RunStages)
    usage: Optional[GenerationUsage] = None

    @property
    def is_terminal(self) -> bool:
        return self.status != RunStatus.RUNNING

    def derived_status(self) -> RunStatus:
        statuses = [stage.status for stage in self.stages.ordered()]
        if StageStatus.FAILED in statuses:
            return RunStatus.FAILED
        if all(status == StageStatus.COMPLETED for status in statuses):
            return RunStatus.COMPLETED
        return RunStatus.RUNNING

    def with_stage(self, stage: StageState) -> "RunState":
        return self.model_copy(update={"stages": self.stages.replace(stage.id, stage)})

    def settle(self, error: Optional[str] = None) -> "RunState":
        """Copy with ``status`` recomputed from the stages."""
        status = self.derived_status()
        update: Dict[str, Any] = {"status": status}
        if status == RunStatus.FAILED:
            update["error"] = error or self.error or _first_stage_error(self)
        return self.model_copy(update=update)


def _first_stage_error(state: RunState) -> Optional[str]:
    for stage in state.stages.ordered():
        if stage.error:
            return stage.error
    return None


class StageTimestamps(ContractModel):
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None


class StageArtifact(ContractModel):
    """Self-contained per-stage snapshot written under stage_io/."""

    stage_id: StageId
    label: str
    status: StageStatus
    input: Any = None
    output: Any = None
    error: Optional[str] = None
    raw: Optional[str] = None
    timestamps: StageTimestamps = Field(default_factory=StageTimestamps)

    @classmethod
    def from_stage(cls, stage: StageState, *, raw: Optional[str] = None) -> "StageArtifact":
        return cls(
            stage_id=stage.id,
            label=stage.label,
            status=stage.status,
            input=stage.input.to_wire() if isinstance(stage.input, ContractModel) else stage.input,
            output=stage.output.to_wire() if isinstance(stage.output, ContractModel) else stage.output,
            error=stage.error,
            raw=raw,
            timestamps=StageTimestamps(started_at=stage.started_at, finished_at=stage.finished_at),
        )


# --- Events ---


class StageStatusEvent(ContractModel):
    type: Literal["stage-status"] = "stage-status"
    run_id: str
    stage_id: StageId
    status: StageStatus
    error: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)


class RunStatusEvent(ContractModel):
    type: Literal["run-status"] = "run-status"
    run_id: str
    status: RunStatus
    error: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.status != RunStatus.RUNNING


class StageOutputEvent(ContractModel):
    type: Literal["stage-output"] = "stage-output"
    run_id: str
    stage_id: StageId
    payload: Any = None
    timestamp: datetime = Field(default_factory=utcnow)


class PackageReadyEvent(ContractModel):
    type: Literal["package-ready"] = "package-ready"
    run_id: str
    brief: PackagedBrief
    timestamp: datetime = Field(default_factory=utcnow)


RunEvent = Annotated[
    Union[StageStatusEvent, RunStatusEvent, StageOutputEvent, PackageReadyEvent],
    Field(discriminator="type"),
]

RUN_EVENT_ADAPTER: TypeAdapter = TypeAdapter(RunEvent)


def parse_run_event(payload: Any) -> Union[StageStatusEvent, RunStatusEvent, StageOutputEvent, PackageReadyEvent]:
    """Parse a wire dict (or JSON string) back into a typed event."""
    if isinstance(payload, (str, bytes)):
        return RUN_EVENT_ADAPTER.validate_json(payload)
    return RUN_EVENT_ADAPTER.validate_python(payload)


# --- Graph description ---


class GraphNode(ContractModel):
    id: StageId
    label: str
    type: Literal["seed", "diverge", "package"]


class GraphEdge(ContractModel):
    source: StageId
    target: StageId


class PipelineGraph(ContractModel):
    nodes: List[GraphNode] = Field(default_factory=list)
    edges: List[GraphEdge] = Field(default_factory=list)


PIPELINE_GRAPH = PipelineGraph(
    nodes=[
        GraphNode(id=StageId.SEED, label=STAGE_LABELS[StageId.SEED], type="seed"),
        GraphNode(id=StageId.GENERATE, label=STAGE_LABELS[StageId.GENERATE], type="diverge"),
        GraphNode(id=StageId.PACKAGE, label=STAGE_LABELS[StageId.PACKAGE], type="package"),
    ],
    edges=[
        GraphEdge(source=StageId.SEED, target=StageId.GENERATE),
        GraphEdge(source=StageId.GENERATE, target=StageId.PACKAGE),
    ],
)
