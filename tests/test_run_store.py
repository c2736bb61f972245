from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from core import (
    PIPELINE_GRAPH,
    GenerationUsage,
    RunState,
    StageArtifact,
    StageId,
    StageStatus,
)
from storage import FileRunStore
from storage.run_store import GRAPH_FILE, STATE_FILE
from utils.exceptions import RunNotFoundError, StorageError


def _state(run_id: str, minutes: int = 0) -> RunState:
    created = datetime(2026, 1, 1, tzinfo=timezone.utc) + timedelta(minutes=minutes)
    return RunState(id=run_id, created_at=created)


def test_state_round_trip_and_byte_identical_rewrites(tmp_path: Path) -> None:
    store = FileRunStore(tmp_path)
    state = _state("run_a")

    path = store.write_run_state("run_a", state)
    first = path.read_bytes()
    store.write_run_state("run_a", state)
    assert path.read_bytes() == first

    loaded = store.read_run_state("run_a")
    assert loaded == state
    assert not [p for p in path.parent.iterdir() if p.name.endswith(".tmp")]


def test_missing_run_is_not_found(tmp_path: Path) -> None:
    store = FileRunStore(tmp_path)
    with pytest.raises(RunNotFoundError):
        store.read_run_state("run_missing")

    # a directory without state.json is still "not found", not corrupt
    (tmp_path / "run_empty").mkdir()
    with pytest.raises(RunNotFoundError):
        store.read_run_state("run_empty")

    with pytest.raises(RunNotFoundError):
        store.read_run_state("../etc")


def test_corrupt_state_is_a_storage_error(tmp_path: Path) -> None:
    store = FileRunStore(tmp_path)
    run_dir = tmp_path / "run_bad"
    run_dir.mkdir()
    (run_dir / STATE_FILE).write_text("{not json", encoding="utf-8")

    with pytest.raises(StorageError) as excinfo:
        store.read_run_state("run_bad")
    assert not isinstance(excinfo.value, RunNotFoundError)


def test_list_runs_is_newest_first_and_skips_broken(tmp_path: Path) -> None:
    store = FileRunStore(tmp_path)
    store.write_run_state("run_old", _state("run_old", minutes=0))
    store.write_run_state("run_new", _state("run_new", minutes=5))
    store.write_run_state("run_mid", _state("run_mid", minutes=2))
    (tmp_path / "run_broken").mkdir()
    (tmp_path / "run_broken" / STATE_FILE).write_text("[]", encoding="utf-8")
    (tmp_path / "not_a_run").mkdir()

    assert [state.id for state in store.list_runs()] == ["run_new", "run_mid", "run_old"]


def test_stage_artifacts_brief_usage_and_graph(tmp_path: Path) -> None:
    store = FileRunStore(tmp_path)
    state = _state("run_b")
    store.write_run_state("run_b", state)

    assert store.read_stage_artifacts("run_b") == {}
    assert store.read_brief("run_b") is None
    assert store.read_usage("run_b") is None
    assert store.read_packaged_brief("run_b") is None

    seed = state.stages.seed.transition(StageStatus.RUNNING).transition(StageStatus.COMPLETED)
    store.write_stage_artifact("run_b", StageId.SEED, StageArtifact.from_stage(seed))
    store.write_brief("run_b", "# Brainstorm Brief\n")
    store.write_usage("run_b", GenerationUsage(total_token_count=12, model="m", provider="p"))
    store.write_graph("run_b", PIPELINE_GRAPH)

    artifacts = store.read_stage_artifacts("run_b")
    assert list(artifacts) == ["seed"]
    assert artifacts["seed"].status == StageStatus.COMPLETED
    assert artifacts["seed"].timestamps.finished_at is not None
    assert (tmp_path / "run_b" / "stage_io" / "seed.json").is_file()
    assert store.read_brief("run_b") == "# Brainstorm Brief\n"
    assert store.read_usage("run_b").total_token_count == 12
    assert (tmp_path / "run_b" / GRAPH_FILE).is_file()


def test_discard_brief_removes_both_brief_files(tmp_path: Path) -> None:
    store = FileRunStore(tmp_path)
    store.write_run_state("run_d", _state("run_d"))
    store.write_brief("run_d", "# Brainstorm Brief\n")

    store.discard_brief("run_d")
    assert store.read_brief("run_d") is None
    assert store.read_packaged_brief("run_d") is None
    assert store.read_run_state("run_d").id == "run_d"

    # nothing left to remove is fine
    store.discard_brief("run_d")


def test_write_failure_raises_storage_error(tmp_path: Path) -> None:
    store = FileRunStore(tmp_path)
    # a file where the run directory should be makes every write fail
    (tmp_path / "run_c").write_text("occupied", encoding="utf-8")

    with pytest.raises(StorageError):
        store.write_run_state("run_c", _state("run_c"))
