#!/usr/bin/env python3
"""
XHE kernel - command line entry point

Owns one kernel instance for the duration of a single intent.

Usage:
    python run.py                                    # Print kernel stats
    python run.py generate_address --params '{"content": "hello world"}'
    python run.py resolve_address --params '{"address": "xhe://..."}'
    python run.py transfer --params '{"to_did": "did:xhe:...", "amount": 30}'
    python run.py export_state --out snapshot.json
    python run.py import_state --snapshot snapshot.json
    python run.py reset --params '{"preserve_identity": true}'

Environment (also read from .env):
    XHE_CONFIG  path to config file (default: config/config.yaml)
    XHE_DB      path to the kernel database (overrides storage.path)
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from xhe.config import get_validated_config, load_config, set_config_value
from xhe.kernel import IntentHandler, IntentType, Kernel, KernelIntent, MemoryStore
from xhe.kernel.snapshot import write_snapshot_file

# Load environment variables
load_dotenv()

logger = logging.getLogger("xhe.run")


def build_parser() -> argparse.ArgumentParser:
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="Send one intent to the XHE kernel"
    )
    parser.add_argument(
        "intent",
        nargs="?",
        default=IntentType.GET_STATS.value,
        choices=[t.value for t in IntentType],
        help="Intent to execute (default: get_stats)",
    )
    parser.add_argument(
        "--config",
        default=os.environ.get("XHE_CONFIG", "config/config.yaml"),
        help="Path to config file",
    )
    parser.add_argument(
        "--db",
        default=os.environ.get("XHE_DB"),
        help="Kernel database path (overrides storage.path)",
    )
    parser.add_argument("--params", default="{}", help="Intent params as a JSON object")
    parser.add_argument(
        "--snapshot",
        type=Path,
        default=None,
        help="Snapshot file to read for import_state",
    )
    parser.add_argument(
        "--out",
        type=Path,
        default=None,
        help="Write export_state output to this file instead of stdout",
    )
    parser.add_argument("--quiet", action="store_true", help="Only log warnings and errors")
    return parser


def open_kernel() -> Kernel:
    config = get_validated_config()
    if config.storage.backend == "memory":
        return Kernel(MemoryStore(), config)
    return Kernel.open(config.storage.path, config)


async def execute(kernel: Kernel, intent: KernelIntent) -> dict[str, Any]:
    return await IntentHandler(kernel).handle(intent)


def main() -> None:
    args: argparse.Namespace = build_parser().parse_args()

    load_config(args.config)
    if args.db:
        set_config_value("storage.path", args.db)
    config = get_validated_config()

    logging.basicConfig(
        level=logging.WARNING if args.quiet else config.logging.level,
        format=config.logging.format,
    )

    try:
        params: dict[str, Any] = json.loads(args.params)
    except json.JSONDecodeError as e:
        print(f"--params is not valid JSON: {e}", file=sys.stderr)
        sys.exit(2)
    if args.snapshot is not None:
        params["snapshot"] = args.snapshot.read_text(encoding="utf-8")

    intent = KernelIntent(IntentType(args.intent), params)
    with open_kernel() as kernel:
        result = asyncio.run(execute(kernel, intent))

    if result.get("success") and intent.intent_type == IntentType.EXPORT_STATE and args.out:
        path = write_snapshot_file(result["data"]["snapshot"], args.out)
        logger.info("Snapshot written to %s", path)
        result = {"success": True, "data": {"path": str(path)}}

    print(json.dumps(result, indent=2, ensure_ascii=False))
    if not result.get("success"):
        sys.exit(1)


if __name__ == "__main__":
    main()
