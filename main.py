#!/usr/bin/env python3
"""Project engine command line entry point."""

import asyncio
import logging
import argparse
import json
import sys
from typing import Any, Dict, List

from config.settings import settings
from project_engine.services.project_engine import ProjectEngine
from project_engine.utils.database import cleanup_connections, init_database


# Setup logging
logging.basicConfig(
    level=logging.DEBUG if settings.agent.debug_mode else getattr(logging, settings.agent.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)


def _load_json(path: str) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def _emit(data: Dict[str, Any], output: str = None):
    text = json.dumps(data, indent=2, default=str)
    if output:
        with open(output, "w", encoding="utf-8") as f:
            f.write(text + "\n")
        logger.info(f"Wrote {output}")
    else:
        print(text)


def _proposals_from(data: Any) -> List[Dict[str, Any]]:
    """Accept either a bare list of proposals or a saved preview document."""
    if isinstance(data, dict):
        return data.get("proposedConsolidations", [])
    return data


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Project relationship and consolidation engine")
    subparsers = parser.add_subparsers(dest="command", required=True)

    analyze = subparsers.add_parser("analyze-meeting", help="Reconcile one meeting's project mentions")
    analyze.add_argument("--owner", required=True, help="Owner whose projects are affected")
    analyze.add_argument("--meeting-id", type=int, required=True)
    analyze.add_argument("--mentions", required=True, help="JSON file with a list of project mentions")
    analyze.add_argument("--title", default="", help="Meeting title")
    analyze.add_argument("--date", default=None, help="Meeting date (defaults to today)")

    preview = subparsers.add_parser("preview", help="Propose duplicate project merges")
    preview.add_argument("--owner", required=True)
    preview.add_argument("--output", help="Write the preview to this file instead of stdout")

    execute = subparsers.add_parser("execute", help="Apply approved merge proposals")
    execute.add_argument("--owner", required=True)
    execute.add_argument("--proposals", required=True,
                         help="JSON file with approved proposals or a saved preview")

    subparsers.add_parser("init-db", help="Create database tables")
    return parser


def main(argv=None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    try:
        return run(args)
    finally:
        cleanup_connections()


def run(args) -> int:
    if args.command == "init-db":
        return 0 if init_database() else 1

    engine = ProjectEngine()

    if args.command == "analyze-meeting":
        result = asyncio.run(engine.analyze_meeting_projects(
            owner_id=args.owner,
            meeting_id=args.meeting_id,
            mentions=_load_json(args.mentions),
            meeting_title=args.title,
            meeting_date=args.date,
        ))
        _emit(result.to_dict())
        return 0

    if args.command == "preview":
        preview = asyncio.run(engine.preview_consolidation(args.owner))
        _emit(preview.to_dict(), args.output)
        return 0 if preview.success else 1

    if args.command == "execute":
        proposals = _proposals_from(_load_json(args.proposals))
        result = engine.execute_consolidation(proposals, args.owner)
        _emit(result.to_dict())
        return 0 if result.success else 1

    return 2


if __name__ == "__main__":
    sys.exit(main())
