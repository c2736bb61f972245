"""CLI entrypoint: serve the API, execute a run in-process, inspect stored runs."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from utils import BrainstormError, setup_package_logging


def _print(payload) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2, default=str))


def _serve(args) -> None:
    import uvicorn

    from config import get_server_settings

    server = get_server_settings()
    uvicorn.run(
        "webapp.app:app",
        host=args.host or server.host,
        port=int(args.port or server.port),
        reload=bool(args.reload),
    )


async def _run_once(args) -> dict:
    from webapp.runtime import build_runtime

    runtime = build_runtime(runs_dir=args.runs_dir)
    seed = {
        "goal": args.goal,
        "audience": args.audience,
        "constraints": args.constraints,
        "requestedIdeaCount": args.n,
        "requestedTopK": args.k,
    }
    try:
        state = await runtime.engine.run(seed)
    finally:
        await runtime.engine.drain()
        runtime.hub.close_all()
    brief = runtime.store.read_packaged_brief(state.id)
    return {
        "runId": state.id,
        "status": state.status.value,
        "error": state.error,
        "stages": {stage.id.value: stage.status.value for stage in state.stages.ordered()},
        "selectedCount": brief.metadata.selected_count if brief else None,
        "briefPath": str(runtime.store.brief_path(state.id)) if brief else None,
    }


def main() -> None:
    parser = argparse.ArgumentParser(description="Node-Graph Brainstormer CLI")
    parser.add_argument("--log-level", default="INFO")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve")
    serve.add_argument("--host", default="")
    serve.add_argument("--port", type=int, default=0)
    serve.add_argument("--reload", action="store_true")

    run = sub.add_parser("run")
    run.add_argument("--goal", required=True)
    run.add_argument("--audience", required=True)
    run.add_argument("--constraints", required=True)
    run.add_argument("--n", type=int, default=None, help="requested idea count")
    run.add_argument("--k", type=int, default=None, help="requested top-K")
    run.add_argument("--runs-dir", default=None)

    listing = sub.add_parser("list")
    listing.add_argument("--runs-dir", default=None)

    show = sub.add_parser("show")
    show.add_argument("--run-id", required=True)
    show.add_argument("--runs-dir", default=None)

    args = parser.parse_args()
    setup_package_logging(level=getattr(logging, str(args.log_level).upper(), logging.INFO))

    if args.command == "serve":
        _serve(args)
        return

    try:
        if args.command == "run":
            _print(asyncio.run(_run_once(args)))
            return

        from config import get_storage_settings
        from storage import FileRunStore

        store = FileRunStore(args.runs_dir or get_storage_settings().runs_dir)

        if args.command == "list":
            _print(
                [
                    {"runId": state.id, "createdAt": state.created_at, "status": state.status.value, "error": state.error}
                    for state in store.list_runs()
                ]
            )
            return

        if args.command == "show":
            state = store.read_run_state(args.run_id)
            _print({"state": state.to_wire(), "brief": store.read_brief(args.run_id)})
    except BrainstormError as exc:
        print(json.dumps({"error": str(exc)}, ensure_ascii=False), file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
