"""Run a metadata audit from the command line and print the JSON result.

Metadata comes from ``--input`` (a JSON file, ``-`` for stdin) and/or
individual flags; flags win over file values. ``--fragments`` points at a
YAML fragment directory laid out as ``<dir>/<scope>/<selector>.yaml``.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from metadata_audit.core.exceptions import MetadataAuditError
from metadata_audit.core.logging import setup_logging
from metadata_audit.integrations.fragment_store import YamlFragmentStore
from metadata_audit.services.metadata_audit import MetadataAuditEngine
from metadata_audit.services.ruleset.resolver import RulesetResolver

METADATA_FLAGS = (
    "app_id",
    "title",
    "subtitle",
    "description",
    "category",
    "locale",
    "platform",
    "organization_id",
    "vertical",
)


def load_metadata(args: argparse.Namespace) -> dict[str, Any]:
    """Merge the JSON input (if any) with command-line overrides."""
    payload: dict[str, Any] = {}
    if args.input:
        raw = sys.stdin.read() if args.input == "-" else Path(args.input).read_text(encoding="utf-8")
        loaded = json.loads(raw)
        if not isinstance(loaded, dict):
            raise ValueError("metadata input must be a JSON object")
        payload.update(loaded)
    for name in METADATA_FLAGS:
        value = getattr(args, name)
        if value is not None:
            payload[name] = value
    return payload


def build_engine(fragments: str | None) -> MetadataAuditEngine:
    if fragments:
        return MetadataAuditEngine(RulesetResolver(YamlFragmentStore(fragments)))
    return MetadataAuditEngine.from_settings()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Audit app-store listing metadata")
    parser.add_argument("--input", help="JSON file with metadata ('-' reads stdin)")
    parser.add_argument("--fragments", help="Directory of YAML ruleset fragments")
    parser.add_argument("--top-n", type=int, default=None, help="Number of recommendations")
    parser.add_argument("--log-level", default=None, help="Log level (default from settings)")
    parser.add_argument("--indent", type=int, default=2, help="JSON indent")
    for name in METADATA_FLAGS:
        parser.add_argument(f"--{name.replace('_', '-')}", dest=name, default=None)
    args = parser.parse_args(argv)

    # stdout carries the JSON result
    setup_logging(args.log_level, stream=sys.stderr)

    try:
        metadata = load_metadata(args)
        engine = build_engine(args.fragments)
        result = engine.evaluate(metadata, top_n=args.top_n)
    except MetadataAuditError as exc:
        print(json.dumps({"error": exc.message, **exc.details}, indent=args.indent), file=sys.stderr)
        return 2
    except (OSError, ValueError) as exc:
        print(json.dumps({"error": str(exc)}, indent=args.indent), file=sys.stderr)
        return 2

    print(json.dumps(result.to_dict(), indent=args.indent, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
