"""Shared runtime singletons for the web app and CLI entrypoints."""

from __future__ import annotations

from dataclasses import dataclass
from threading import Lock
from typing import Callable, Optional

from config import Settings, get_settings
from intelligence.generation import IdeaGenerator, LLMIdeaGenerator
from intelligence.llm import BaseLLM, get_llm
from orchestrator import RunEngine, RunEventHub
from storage import FileRunStore


@dataclass
class BrainstormRuntime:
    settings: Settings
    store: FileRunStore
    hub: RunEventHub
    generator: IdeaGenerator
    engine: RunEngine
    llm_factory: Callable[[], BaseLLM] = get_llm


def build_runtime(
    settings: Optional[Settings] = None,
    *,
    generator: Optional[IdeaGenerator] = None,
    runs_dir: Optional[str] = None,
    llm_factory: Callable[[], BaseLLM] = get_llm,
) -> BrainstormRuntime:
    """Wire store, hub, generator and engine from settings."""
    settings = settings or get_settings()
    store = FileRunStore(runs_dir or settings.storage.runs_dir)
    hub = RunEventHub(
        cleanup_grace=settings.events.cleanup_grace,
        keepalive_interval=settings.events.keepalive_interval,
        subscriber_queue_size=settings.events.subscriber_queue_size,
    )
    generator = generator or LLMIdeaGenerator(llm_factory=llm_factory)
    engine = RunEngine(store=store, hub=hub, generator=generator, settings=settings.pipeline)
    return BrainstormRuntime(
        settings=settings,
        store=store,
        hub=hub,
        generator=generator,
        engine=engine,
        llm_factory=llm_factory,
    )


_RUNTIME: Optional[BrainstormRuntime] = None
_LOCK = Lock()


def get_runtime() -> BrainstormRuntime:
    global _RUNTIME
    with _LOCK:
        if _RUNTIME is None:
            _RUNTIME = build_runtime()
        return _RUNTIME
