"""Tests for the FastAPI + SSE brainstorm API."""

from __future__ import annotations

import asyncio
import importlib
import json
from pathlib import Path
import time
from typing import List, Optional

from fastapi.testclient import TestClient

from config.settings import EventSettings, Settings
from core import GenerationUsage
from intelligence.generation import GenerationResult, IdeaGenerator, parse_ideas
from intelligence.llm import BaseLLM, LLMResponse
from webapp.runtime import BrainstormRuntime, build_runtime

webapp_module = importlib.import_module("webapp.app")

LOYALTY_SEED = {
    "goal": "Launch a loyalty app",
    "audience": "frequent commuters",
    "constraints": "must launch in 6 weeks",
}


def _ideas_json(count: int) -> str:
    return json.dumps(
        {
            "ideas": [
                {"title": f"Idea {i}", "description": f"Description {i}.", "rationale": f"Rationale {i}."}
                for i in range(1, count + 1)
            ]
        }
    )


class FixedGenerator(IdeaGenerator):
    async def generate(self, seed, count, *, strict=False) -> GenerationResult:
        raw = _ideas_json(count)
        return GenerationResult(ideas=parse_ideas(raw), usage=GenerationUsage(total_token_count=21, model="fixed"), raw=raw)


class WaitForSubscriberGenerator(FixedGenerator):
    """Holds generation until someone is listening on the run's channel."""

    def __init__(self) -> None:
        self.runtime: Optional[BrainstormRuntime] = None
        self.run_id: Optional[str] = None
        self.linger = 0.0

    async def generate(self, seed, count, *, strict=False) -> GenerationResult:
        while self.run_id is None or self.runtime.hub.subscriber_count(self.run_id) == 0:
            await asyncio.sleep(0.01)
        await asyncio.sleep(self.linger)
        return await super().generate(seed, count, strict=strict)


class FakeLLM(BaseLLM):
    def __init__(self, reply: str) -> None:
        super().__init__(model="fake-model")
        self.reply = reply

    @property
    def provider(self) -> str:
        return "fake"

    async def acomplete(self, messages, *, json_mode: bool = False, **kwargs) -> LLMResponse:
        return LLMResponse(content=self.reply, model=self.model, usage={"total_tokens": 5})


def _client(monkeypatch, tmp_path: Path, generator: IdeaGenerator = None, *, keepalive: float = 25.0, llm_reply: str = "{}"):
    settings = Settings(events=EventSettings(cleanup_grace=0.0, keepalive_interval=keepalive))
    runtime = build_runtime(
        settings,
        generator=generator or FixedGenerator(),
        runs_dir=str(tmp_path / "runs"),
        llm_factory=lambda: FakeLLM(llm_reply),
    )
    monkeypatch.setattr(webapp_module, "get_runtime", lambda: runtime)
    return TestClient(webapp_module.app), runtime


def _wait_for_run(client: TestClient, run_id: str, timeout_sec: float = 3.0) -> dict:
    deadline = time.time() + timeout_sec
    while time.time() < deadline:
        payload = client.get(f"/runs/{run_id}").json()
        if payload["state"]["status"] != "running":
            return payload
        time.sleep(0.02)
    return client.get(f"/runs/{run_id}").json()


def _data_frames(body: str) -> List[dict]:
    return [json.loads(line[len("data: "):]) for line in body.splitlines() if line.startswith("data: ")]


def test_health_and_graph(monkeypatch, tmp_path: Path) -> None:
    client, _ = _client(monkeypatch, tmp_path)
    with client:
        assert client.get("/health").json()["status"] == "ok"
        graph = client.get("/graph").json()
        assert [node["id"] for node in graph["nodes"]] == ["seed", "generate", "package"]
        assert graph["edges"][0] == {"source": "seed", "target": "generate"}


def test_run_lifecycle_over_http(monkeypatch, tmp_path: Path) -> None:
    client, _ = _client(monkeypatch, tmp_path)
    with client:
        created = client.post("/run", json=LOYALTY_SEED)
        assert created.status_code == 202
        run_id = created.json()["runId"]

        payload = _wait_for_run(client, run_id)
        assert payload["state"]["status"] == "completed"
        assert sorted(payload["stageIO"]) == ["generate", "package", "seed"]
        assert payload["packagedBrief"]["metadata"]["selectedCount"] == 3
        assert payload["usage"]["totalTokenCount"] == 21
        assert "Launch a loyalty app" in payload["brief"]

        listed = client.get("/runs").json()
        assert [item["id"] for item in listed] == [run_id]

        brief = client.get(f"/runs/{run_id}/brief")
        assert brief.status_code == 200
        assert brief.headers["content-type"].startswith("text/markdown")
        assert brief.text.startswith("# Brainstorm Brief")


def test_run_rejects_invalid_seed(monkeypatch, tmp_path: Path) -> None:
    client, runtime = _client(monkeypatch, tmp_path)
    with client:
        blank = client.post("/run", json={**LOYALTY_SEED, "constraints": " "})
        assert blank.status_code == 400
        assert client.post("/run", json=["goal"]).status_code == 400
        assert client.post("/run", content=b"{oops", headers={"content-type": "application/json"}).status_code == 400
        assert runtime.store.list_runs() == []


def test_unknown_run_is_404(monkeypatch, tmp_path: Path) -> None:
    client, _ = _client(monkeypatch, tmp_path)
    with client:
        assert client.get("/runs/run_missing").status_code == 404
        assert client.get("/runs/run_missing/brief").status_code == 404
        assert client.get("/runs/run_missing/events").status_code == 404


def test_event_stream_delivers_frames_and_heartbeats(monkeypatch, tmp_path: Path) -> None:
    generator = WaitForSubscriberGenerator()
    generator.linger = 0.1
    client, runtime = _client(monkeypatch, tmp_path, generator, keepalive=0.02)
    generator.runtime = runtime
    with client:
        run_id = client.post("/run", json=LOYALTY_SEED).json()["runId"]
        generator.run_id = run_id

        response = client.get(f"/runs/{run_id}/events")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")

        body = response.text
        assert body.startswith("retry: 3000")
        assert ":heartbeat" in body
        frames = _data_frames(body)
        assert all(frame["runId"] == run_id for frame in frames)
        assert "package-ready" in [frame["type"] for frame in frames]
        assert frames[-1]["type"] == "run-status"
        assert frames[-1]["status"] == "completed"

        # the channel is released once the run is over
        assert client.get(f"/runs/{run_id}/events").status_code == 404


def test_refinements(monkeypatch, tmp_path: Path) -> None:
    reply = json.dumps(
        {
            "entryPoints": "Home screen banner",
            "primaryInteractions": "Tap in, see streak",
            "edgeCases": "Offline validators",
            "successCriteria": "30% weekly return",
        }
    )
    client, _ = _client(monkeypatch, tmp_path, llm_reply=reply)
    with client:
        kinds = client.get("/refinements").json()
        assert len(kinds) == 3

        ok = client.post(
            "/refinements",
            json={"kind": "ui-flow", "idea": {"title": "Commuter streaks"}, "context": {"goal": "Launch a loyalty app"}},
        )
        assert ok.status_code == 200
        assert ok.json()["fields"]["edgeCases"] == "Offline validators"
        assert ok.json()["usage"]["totalTokenCount"] == 5

        assert client.post("/refinements", json={"kind": "moodboard", "idea": {"title": "x"}}).status_code == 400
        assert client.post("/refinements", json={"kind": "ui-flow", "idea": {"title": " "}}).status_code == 400
        assert client.post("/refinements", json={"kind": "capability-breakdown", "idea": {"title": "x"}}).status_code == 400
