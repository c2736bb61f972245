"""Run orchestration: seed sanitization, the run engine, packaging and live events."""

from .engine import RUN_ID_FORMAT, RunEngine
from .events import RunChannel, RunEventHub, Subscription
from .packaging import build_brief, render_brief_markdown, select_top_k
from .seed import coerce_seed, sanitize_seed, summarize_seed

__all__ = [
    "RUN_ID_FORMAT",
    "RunEngine",
    "RunChannel",
    "RunEventHub",
    "Subscription",
    "build_brief",
    "render_brief_markdown",
    "select_top_k",
    "coerce_seed",
    "sanitize_seed",
    "summarize_seed",
]
