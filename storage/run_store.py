"""Directory-per-run persistence for run state, stage snapshots and briefs."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
import re
from typing import Any, Dict, List, Optional, Union
from uuid import uuid4

from pydantic import ValidationError

from core import GenerationUsage, PackagedBrief, PipelineGraph, RunState, StageArtifact, StageId
from utils.exceptions import RunNotFoundError, StorageError


logger = logging.getLogger(__name__)

STATE_FILE = "state.json"
USAGE_FILE = "token_usage.json"
BRIEF_FILE = "brief.md"
PACKAGED_BRIEF_FILE = "packaged_brief.json"
GRAPH_FILE = "graph.json"
STAGE_DIR = "stage_io"

_RUN_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


def _dump_json(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False) + "\n"


class FileRunStore:
    """
    Durable run storage rooted at ``runs_dir``.

    Every write replaces a whole file through a temp file and ``os.replace``,
    so readers only ever see complete snapshots. A run directory without
    ``state.json`` is reported as not found.
    """

    def __init__(self, runs_dir: Union[str, Path]) -> None:
        self.root = Path(runs_dir)
        self.root.mkdir(parents=True, exist_ok=True)

    def run_dir(self, run_id: str) -> Path:
        text = str(run_id or "").strip()
        if not _RUN_ID_PATTERN.match(text) or ".." in text:
            raise RunNotFoundError(text)
        return self.root / text

    # --- writes ---

    def write_run_state(self, run_id: str, state: RunState) -> Path:
        return self._write(self.run_dir(run_id) / STATE_FILE, _dump_json(state.to_wire()))

    def write_stage_artifact(self, run_id: str, stage_id: StageId, artifact: StageArtifact) -> Path:
        path = self.run_dir(run_id) / STAGE_DIR / f"{StageId(stage_id).value}.json"
        return self._write(path, _dump_json(artifact.to_wire()))

    def write_brief(self, run_id: str, rendered_text: str) -> Path:
        return self._write(self.run_dir(run_id) / BRIEF_FILE, rendered_text)

    def write_packaged_brief(self, run_id: str, brief: PackagedBrief) -> Path:
        return self._write(self.run_dir(run_id) / PACKAGED_BRIEF_FILE, _dump_json(brief.to_wire()))

    def write_usage(self, run_id: str, usage: GenerationUsage) -> Path:
        return self._write(self.run_dir(run_id) / USAGE_FILE, _dump_json(usage.to_wire()))

    def write_graph(self, run_id: str, graph: PipelineGraph) -> Path:
        return self._write(self.run_dir(run_id) / GRAPH_FILE, _dump_json(graph.to_wire()))

    # --- reads ---

    def read_run_state(self, run_id: str) -> RunState:
        path = self.run_dir(run_id) / STATE_FILE
        if not path.is_file():
            raise RunNotFoundError(run_id)
        try:
            return RunState.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as exc:
            raise StorageError(f"Unreadable run state for {run_id}: {exc}", path=str(path)) from exc

    def list_runs(self) -> List[RunState]:
        """All persisted runs, newest first."""
        states: List[RunState] = []
        for entry in self.root.iterdir():
            if not entry.is_dir() or not (entry / STATE_FILE).is_file():
                continue
            try:
                states.append(self.read_run_state(entry.name))
            except StorageError as exc:
                logger.warning("list_runs_skip run_id=%s error=%s", entry.name, exc)
        states.sort(key=lambda state: (state.created_at, state.id), reverse=True)
        return states

    def read_stage_artifacts(self, run_id: str) -> Dict[str, StageArtifact]:
        stage_dir = self.run_dir(run_id) / STAGE_DIR
        artifacts: Dict[str, StageArtifact] = {}
        if not stage_dir.is_dir():
            return artifacts
        for path in sorted(stage_dir.glob("*.json")):
            try:
                artifacts[path.stem] = StageArtifact.model_validate_json(path.read_text(encoding="utf-8"))
            except (OSError, ValidationError) as exc:
                raise StorageError(f"Unreadable stage artifact {path.name} for {run_id}: {exc}", path=str(path)) from exc
        return artifacts

    def read_brief(self, run_id: str) -> Optional[str]:
        path = self.brief_path(run_id)
        if not path.is_file():
            return None
        return path.read_text(encoding="utf-8")

    def read_packaged_brief(self, run_id: str) -> Optional[PackagedBrief]:
        return self._read_model(self.run_dir(run_id) / PACKAGED_BRIEF_FILE, PackagedBrief)

    def read_usage(self, run_id: str) -> Optional[GenerationUsage]:
        return self._read_model(self.run_dir(run_id) / USAGE_FILE, GenerationUsage)

    def brief_path(self, run_id: str) -> Path:
        return self.run_dir(run_id) / BRIEF_FILE

    # --- removal ---

    def discard_brief(self, run_id: str) -> None:
        """Remove brief files left behind by a package stage that did not complete."""
        run_dir = self.run_dir(run_id)
        for name in (BRIEF_FILE, PACKAGED_BRIEF_FILE):
            path = run_dir / name
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            except OSError as exc:
                raise StorageError(f"Failed to remove {name}: {exc}", path=str(path)) from exc

    # --- helpers ---

    def _read_model(self, path: Path, model: Any) -> Optional[Any]:
        if not path.is_file():
            return None
        try:
            return model.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as exc:
            raise StorageError(f"Unreadable file {path.name}: {exc}", path=str(path)) from exc

    @staticmethod
    def _write(path: Path, text: str) -> Path:
        tmp = path.parent / f".{path.name}.{uuid4().hex}.tmp"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as handle:
                handle.write(text)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp, path)
        except OSError as exc:
            if tmp.exists():
                tmp.unlink()
            raise StorageError(f"Failed to write {path.name}: {exc}", path=str(path)) from exc
        return path
