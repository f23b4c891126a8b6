#!/usr/bin/env python3
"""
CLI entrypoint for running a structured query against a configured database.
"""
import argparse
import json
import pathlib
import sys
from typing import Any, Dict, List, Optional

from queryproc.common.settings import settings


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a structured query through the query processor.")
    parser.add_argument("--config", type=pathlib.Path, default=pathlib.Path(settings.database_config_path), help="Path to databases YAML")
    parser.add_argument("--database", type=int, default=None, help="Database id to query")
    parser.add_argument("--query", type=str, default=None, help="Query description as JSON, or a path to a JSON file")
    parser.add_argument("--timeout", type=float, default=None, help="Execution timeout in seconds")
    parser.add_argument("--verbose", action="store_true", help="Log progress at INFO level")
    parser.add_argument("--debug", action="store_true", help="Log state transitions at DEBUG level")
    parser.add_argument("--list-drivers", action="store_true", help="List all installed drivers")
    return parser.parse_args(argv)


def _load_query(raw: str) -> Dict[str, Any]:
    text = raw
    if not raw.lstrip().startswith("{"):
        text = pathlib.Path(raw).read_text(encoding="utf-8")
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise ValueError(f"Query is not valid JSON: {e}") from e


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    if args.list_drivers:
        from queryproc.drivers.discovery import discover_drivers
        for name, driver_cls in sorted(discover_drivers().items()):
            print(f"{name}\t{driver_cls.__module__}.{driver_cls.__name__}")
        return 0

    if args.database is None or args.query is None:
        print("--database and --query are required", file=sys.stderr)
        return 2

    from queryproc.common.logger import configure_logging
    from queryproc.common.metrics import configure_metrics

    level = "WARNING"
    if args.debug:
        level = "DEBUG"
    elif args.verbose:
        level = "INFO"
    configure_logging(level=level, json_format=settings.log_json)
    configure_metrics(settings.observability_exporter, settings.otlp_endpoint)

    from queryproc.common.errors import QueryProcessorError
    from queryproc.databases.registry import DatabaseRegistry
    from queryproc.pipeline.contracts import ResultEnvelope
    from queryproc.pipeline.runtime import QueryProcessor

    try:
        query = _load_query(args.query)
        registry = DatabaseRegistry.from_config_file(args.config)
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    try:
        try:
            registry.sync(args.database)
        except QueryProcessorError as e:
            envelope = ResultEnvelope.failed(e.error_code.value.lower(), e.message)
        else:
            with QueryProcessor(registry) as processor:
                envelope = processor.process(
                    {"database": args.database, "type": "query", "query": query},
                    timeout_sec=args.timeout,
                )
    finally:
        registry.close()

    print(json.dumps(envelope.to_response(), indent=2, default=str))
    return 0 if envelope.succeeded else 1


if __name__ == "__main__":
    sys.exit(main())
