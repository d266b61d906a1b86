#!/usr/bin/env python3
"""Command-line interface for the TouchGrass ingestion core.

Commands:
  - touchgrass ingest       : Run one ingestion batch from a JSON file (or stdin)
  - touchgrass reindex      : Rebuild the search index from the store
  - touchgrass init-schema  : Create the store table and the search index
  - touchgrass runs list    : List recorded runs
  - touchgrass runs show    : Show one recorded run

Typical usage:
  touchgrass ingest events.json --source crawler --run-name crawl-2024-06-15
  cat groups.json | touchgrass ingest - --source seed --event-type group
  touchgrass runs show crawl-2024-06-15
"""

from __future__ import annotations

import argparse
import json
import sys
import uuid
from pathlib import Path
from typing import Any

from touchgrass.configs.settings import get_settings
from touchgrass.ingestion.errors import (
    DuplicateRunError,
    IngestionError,
    RequestValidationError,
    RunNotFoundError,
)
from touchgrass.ingestion.orchestrator import IngestionOrchestrator, build_orchestrator
from touchgrass.monitoring.logging import configure_logging


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="touchgrass", description="TouchGrass ingestion CLI")
    p.add_argument("--version", action="store_true", help="Print version and exit")
    p.add_argument("--json-logs", action="store_true", help="Emit JSON logs")
    sub = p.add_subparsers(dest="cmd")

    # ingest
    pi = sub.add_parser("ingest", help="Run one ingestion batch")
    pi.add_argument("input", help="Path to a JSON file, or '-' for stdin")
    pi.add_argument(
        "--source",
        "-s",
        default=None,
        help="Source tag (overrides the file's 'source' when it is an object)",
    )
    pi.add_argument(
        "--event-type",
        "-t",
        default=None,
        choices=["event", "group"],
        help="Kind of records in the batch (default: event)",
    )
    pi.add_argument("--run-name", "-n", default=None, help="Unique run name")

    # reindex
    pr = sub.add_parser("reindex", help="Drop and rebuild the search index from the store")
    pr.add_argument("--page-size", type=int, default=100, help="Store scan page size")

    # init-schema
    sub.add_parser("init-schema", help="Create the store table and the search index")

    # runs
    pruns = sub.add_parser("runs", help="Inspect recorded runs")
    runs_sub = pruns.add_subparsers(dest="runs_cmd")
    runs_sub.add_parser("list", help="List recorded runs")
    pshow = runs_sub.add_parser("show", help="Show one recorded run")
    pshow.add_argument("run_name", help="Run name")

    return p.parse_args(argv)


def _read_json(path: str) -> Any:
    if path == "-":
        return json.load(sys.stdin)
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Input not found: {p}")
    with p.open("r", encoding="utf-8") as f:
        return json.load(f)


def _build_payload(data: Any, args: argparse.Namespace) -> dict[str, Any]:
    """Accept either a full request object or a bare list of records."""
    payload = dict(data) if isinstance(data, dict) else {"events": data}
    if args.source:
        payload["source"] = args.source
    if args.event_type:
        payload["eventType"] = args.event_type
    return payload


def _print_json(value: Any) -> None:
    print(json.dumps(value, indent=2, ensure_ascii=False, default=str))


def main(argv: list[str] | None = None) -> int:
    """Run the CLI with the given arguments."""
    try:
        return _main_impl(argv)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except json.JSONDecodeError as e:
        print(f"Error: Invalid JSON input: {e}", file=sys.stderr)
        return 1
    except IngestionError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def _main_impl(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    if args.version:
        from touchgrass import __version__

        print(f"touchgrass version {__version__}")
        return 0

    if not args.cmd:
        print("Error: Command required. Use --help for usage info.", file=sys.stderr)
        return 1

    settings = get_settings()
    configure_logging(settings.LOG_LEVEL, json_logs=args.json_logs or settings.LOG_JSON)
    orchestrator = build_orchestrator(settings)

    try:
        return _dispatch(args, orchestrator)
    finally:
        orchestrator.repository.store.close()
        orchestrator.indexer.engine.close()


def _dispatch(args: argparse.Namespace, orchestrator: IngestionOrchestrator) -> int:
    if args.cmd == "ingest":
        payload = _build_payload(_read_json(args.input), args)
        run_name = args.run_name or f"run-{uuid.uuid4().hex}"
        try:
            result = orchestrator.run(payload, run_name)
        except DuplicateRunError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 3

        _print_json(
            {
                "runName": result.run_name,
                "status": result.status.value,
                "output": result.output,
            }
        )
        return 0 if result.succeeded else 2

    if args.cmd == "reindex":
        report = orchestrator.indexer.rebuild_all(
            orchestrator.repository, page_size=args.page_size
        )
        _print_json(
            {
                "indexedCount": report.indexed_count,
                "failedIds": report.failed_ids,
                "duplicateIds": report.duplicate_ids,
            }
        )
        return 0 if not report.failed_ids else 2

    if args.cmd == "init-schema":
        orchestrator.repository.store.ensure_schema()
        created = orchestrator.indexer.ensure_schema()
        state = "created" if created else "already present"
        print(f"Store schema ensured; index '{orchestrator.indexer.index_name}' {state}.")
        return 0

    if args.cmd == "runs":
        if args.runs_cmd == "list":
            for run in orchestrator.registry.list_runs():
                print(f"{run.run_name:<40} {run.status.value:<10} {run.stage or '-'}")
            return 0

        if args.runs_cmd == "show":
            try:
                record = orchestrator.registry.get(args.run_name)
            except (RunNotFoundError, RequestValidationError) as e:
                print(f"Error: {e}", file=sys.stderr)
                return 1
            _print_json(record.model_dump(mode="json"))
            return 0

        print("Error: runs requires 'list' or 'show'.", file=sys.stderr)
        return 1

    print(f"Error: Unknown command {args.cmd}", file=sys.stderr)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
