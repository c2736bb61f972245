"""Run orchestration engine: drives one run through seed, generate and package."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import logging
from threading import Lock
from typing import Any, Dict, List, Mapping, Optional, Union

from config.settings import PipelineSettings
from core import (
    PIPELINE_GRAPH,
    GenerateInput,
    GenerateOutput,
    PackageInput,
    PackageReadyEvent,
    RunState,
    RunStatus,
    RunStatusEvent,
    SanitizedSeed,
    SeedInput,
    StageArtifact,
    StageId,
    StageOutputEvent,
    StageStatus,
    StageStatusEvent,
)
from intelligence.generation import MAX_ATTEMPTS, IdeaGenerator, generate_with_retry
from storage.run_store import FileRunStore
from utils.exceptions import BrainstormError, InvalidOutputError, StorageError

from .events import RunEventHub
from .packaging import build_brief
from .seed import sanitize_seed, summarize_seed


logger = logging.getLogger(__name__)

RUN_ID_FORMAT = "run_%Y%m%d_%H%M%S_%f"
STORAGE_FAILURE_MESSAGE = "Run storage failure; the run could not be persisted."


@dataclass
class _RunTracker:
    """Latest committed state of a run plus the stage currently being driven."""

    run_id: str
    state: RunState
    current: StageId = StageId.SEED


class RunEngine:
    """
    Accepts seeds and executes runs as background asyncio tasks.

    State changes are copy-on-commit: a candidate ``RunState`` is persisted
    first and only then becomes the tracked state, so a failed write leaves
    the stage where it was and it can still move to ``failed``.
    """

    def __init__(
        self,
        *,
        store: FileRunStore,
        hub: RunEventHub,
        generator: IdeaGenerator,
        settings: Optional[PipelineSettings] = None,
        max_attempts: int = MAX_ATTEMPTS,
    ) -> None:
        self.store = store
        self.hub = hub
        self.generator = generator
        self.settings = settings or PipelineSettings()
        self.max_attempts = max_attempts
        self._tasks: Dict[str, asyncio.Task] = {}
        self._last_stamp: Optional[datetime] = None
        self._id_lock = Lock()

    # --- public API ---

    def new_run_id(self, now: Optional[datetime] = None) -> str:
        """Time-derived id; strictly increasing within this process."""
        return self._next_stamp(now).strftime(RUN_ID_FORMAT)

    async def start_run(self, payload: Union[SeedInput, Mapping[str, Any]]) -> str:
        """
        Validate the seed, create the run and schedule its execution.

        Returns as soon as the initial state is persisted; the pipeline runs
        in a separate task.

        Raises:
            SeedValidationError: malformed seed, nothing is created
            StorageError: the initial state could not be written
        """
        seed = sanitize_seed(payload, self.settings)
        created_at = self._next_stamp()
        run_id = created_at.strftime(RUN_ID_FORMAT)
        state = self._initialize(run_id, seed, created_at=created_at)

        task = asyncio.create_task(self.execute_run(run_id, seed, state=state), name=f"brainstorm-{run_id}")
        self._tasks[run_id] = task
        task.add_done_callback(lambda _task, key=run_id: self._tasks.pop(key, None))
        return run_id

    async def execute_run(self, run_id: str, seed: SanitizedSeed, *, state: Optional[RunState] = None) -> RunState:
        """Drive a run to a terminal status. Stage failures never escape."""
        if state is None:
            state = self._initialize(run_id, seed)
        tracker = _RunTracker(run_id=run_id, state=state)

        self._publish(run_id, RunStatusEvent(run_id=run_id, status=RunStatus.RUNNING))
        logger.info("run_start run_id=%s ideas=%d top_k=%d", run_id, seed.idea_count, seed.top_k)

        try:
            self._run_seed(tracker, seed)
            ideas = await self._run_generate(tracker, seed)
            self._run_package(tracker, seed, ideas)
            self._finish(tracker)
        except Exception as exc:
            self._fail(tracker, exc)
        return tracker.state

    async def wait_for_run(self, run_id: str) -> RunState:
        task = self._tasks.get(run_id)
        if task is not None:
            await asyncio.shield(task)
        return self.store.read_run_state(run_id)

    async def run(self, payload: Union[SeedInput, Mapping[str, Any]]) -> RunState:
        """Start a run and wait for it to finish."""
        run_id = await self.start_run(payload)
        return await self.wait_for_run(run_id)

    def active_runs(self) -> List[str]:
        return [run_id for run_id, task in self._tasks.items() if not task.done()]

    async def drain(self) -> None:
        """Wait for every in-flight run."""
        tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # --- stages ---

    def _run_seed(self, tracker: _RunTracker, seed: SanitizedSeed) -> None:
        tracker.current = StageId.SEED
        self._transition(tracker, StageId.SEED, StageStatus.RUNNING)
        summary = summarize_seed(seed)
        self._transition(tracker, StageId.SEED, StageStatus.COMPLETED, write_artifact=True, output=summary)
        self._publish(tracker.run_id, StageOutputEvent(run_id=tracker.run_id, stage_id=StageId.SEED, payload=summary.to_wire()))
        logger.info("stage_completed run_id=%s stage=seed clamped=%s", tracker.run_id, seed.clamped)

    async def _run_generate(self, tracker: _RunTracker, seed: SanitizedSeed):
        tracker.current = StageId.GENERATE
        stage_input = GenerateInput(count=seed.idea_count, seed=seed)
        self._transition(tracker, StageId.GENERATE, StageStatus.RUNNING, input=stage_input)

        result = await generate_with_retry(
            self.generator,
            seed,
            seed.idea_count,
            max_attempts=self.max_attempts,
        )
        ideas = list(result.ideas[: seed.idea_count])
        output = GenerateOutput(ideas=ideas)

        self.store.write_usage(tracker.run_id, result.usage)
        self._transition(
            tracker,
            StageId.GENERATE,
            StageStatus.COMPLETED,
            write_artifact=True,
            raw=result.raw,
            run_update={"usage": result.usage},
            output=output,
        )
        self._publish(tracker.run_id, StageOutputEvent(run_id=tracker.run_id, stage_id=StageId.GENERATE, payload=output.to_wire()))
        logger.info(
            "stage_completed run_id=%s stage=generate ideas=%d attempts=%d",
            tracker.run_id,
            len(ideas),
            result.usage.attempts,
        )
        return ideas

    def _run_package(self, tracker: _RunTracker, seed: SanitizedSeed, ideas) -> None:
        tracker.current = StageId.PACKAGE
        k = max(1, min(seed.top_k, len(ideas)))
        self._transition(tracker, StageId.PACKAGE, StageStatus.RUNNING, input=PackageInput(k=k, ideas=ideas))

        brief = build_brief(seed, ideas, k)
        self.store.write_brief(tracker.run_id, brief.rendered_text)
        self.store.write_packaged_brief(tracker.run_id, brief)
        self._transition(tracker, StageId.PACKAGE, StageStatus.COMPLETED, write_artifact=True, output=brief)

        self._publish(tracker.run_id, StageOutputEvent(run_id=tracker.run_id, stage_id=StageId.PACKAGE, payload=brief.to_wire()))
        self._publish(tracker.run_id, PackageReadyEvent(run_id=tracker.run_id, brief=brief))
        logger.info(
            "stage_completed run_id=%s stage=package selected=%d",
            tracker.run_id,
            brief.metadata.selected_count,
        )

    def _finish(self, tracker: _RunTracker) -> None:
        # if this write fails the run is failed while every stage stays completed
        self._commit(tracker, tracker.state.settle())
        self._publish(tracker.run_id, RunStatusEvent(run_id=tracker.run_id, status=tracker.state.status))
        logger.info("run_completed run_id=%s status=%s", tracker.run_id, tracker.state.status.value)

    # --- state plumbing ---

    def _next_stamp(self, now: Optional[datetime] = None) -> datetime:
        stamp = now or _utcnow()
        with self._id_lock:
            if self._last_stamp is not None and stamp <= self._last_stamp:
                stamp = self._last_stamp + timedelta(microseconds=1)
            self._last_stamp = stamp
        return stamp

    def _initialize(self, run_id: str, seed: SanitizedSeed, *, created_at: Optional[datetime] = None) -> RunState:
        # the id and createdAt share one stamp so both orderings agree
        state = RunState(id=run_id, created_at=created_at or _utcnow())
        state = state.with_stage(state.stages.seed.model_copy(update={"input": seed}))
        self.store.write_run_state(run_id, state)
        try:
            self.store.write_graph(run_id, PIPELINE_GRAPH)
        except StorageError:
            logger.warning("graph_write_failed run_id=%s", run_id, exc_info=True)
        self.hub.open_channel(run_id)
        return state

    def _commit(self, tracker: _RunTracker, candidate: RunState) -> None:
        self.store.write_run_state(tracker.run_id, candidate)
        tracker.state = candidate

    def _transition(
        self,
        tracker: _RunTracker,
        stage_id: StageId,
        status: StageStatus,
        *,
        write_artifact: bool = False,
        raw: Optional[str] = None,
        run_update: Optional[Dict[str, Any]] = None,
        **changes: Any,
    ) -> None:
        stage = tracker.state.stages.get(stage_id).transition(status, **changes)
        candidate = tracker.state.with_stage(stage)
        if run_update:
            candidate = candidate.model_copy(update=run_update)
        if write_artifact:
            self.store.write_stage_artifact(tracker.run_id, stage_id, StageArtifact.from_stage(stage, raw=raw))
        self._commit(tracker, candidate)
        self._publish(
            tracker.run_id,
            StageStatusEvent(run_id=tracker.run_id, stage_id=stage_id, status=status, error=stage.error),
        )

    def _fail(self, tracker: _RunTracker, exc: Exception) -> None:
        run_id = tracker.run_id
        stage_id = tracker.current
        message = _failure_message(exc, stage_id)

        if isinstance(exc, StorageError):
            logger.exception("stage_failed run_id=%s stage=%s error=storage", run_id, stage_id.value)
        elif isinstance(exc, BrainstormError):
            logger.error("stage_failed run_id=%s stage=%s error=%s", run_id, stage_id.value, message)
        else:
            logger.exception("stage_failed run_id=%s stage=%s error=unexpected", run_id, stage_id.value)

        stage = tracker.state.stages.get(stage_id)
        stage_events: List[StageStatusEvent] = []
        candidate = tracker.state
        if not stage.is_terminal:
            if stage.status == StageStatus.PENDING:
                stage = stage.transition(StageStatus.RUNNING)
                stage_events.append(StageStatusEvent(run_id=run_id, stage_id=stage_id, status=StageStatus.RUNNING))
            stage = stage.transition(StageStatus.FAILED, error=message)
            stage_events.append(
                StageStatusEvent(run_id=run_id, stage_id=stage_id, status=StageStatus.FAILED, error=message)
            )
            candidate = candidate.with_stage(stage)
        candidate = candidate.model_copy(update={"status": RunStatus.FAILED, "error": message})

        if stage_events and stage_id == StageId.PACKAGE:
            try:
                self.store.discard_brief(run_id)
            except StorageError:
                logger.exception("brief_discard_failed run_id=%s", run_id)

        try:
            if stage_events:
                raw = exc.raw if isinstance(exc, InvalidOutputError) else None
                self.store.write_stage_artifact(run_id, stage_id, StageArtifact.from_stage(stage, raw=raw))
            self.store.write_run_state(run_id, candidate)
        except StorageError:
            logger.exception("run_state_unpersisted run_id=%s", run_id)
        tracker.state = candidate

        for event in stage_events:
            self._publish(run_id, event)
        self._publish(run_id, RunStatusEvent(run_id=run_id, status=RunStatus.FAILED, error=message))
        logger.info("run_failed run_id=%s stage=%s error=%s", run_id, stage_id.value, message)

    def _publish(self, run_id: str, event) -> None:
        self.hub.publish(run_id, event)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _failure_message(exc: Exception, stage_id: StageId) -> str:
    if isinstance(exc, StorageError):
        return STORAGE_FAILURE_MESSAGE
    if isinstance(exc, BrainstormError):
        return exc.message
    return f"Unexpected error in {stage_id.value} stage: {exc}"
