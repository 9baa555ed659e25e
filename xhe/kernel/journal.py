"""Reset journal - append-only JSONL record of kernel lifecycle events.

The journal lives outside the durable kernel store, so it survives
reset(). Each KERNEL_RESET pulse is written here before the pulse store
is wiped. Unlike the store, the file is never truncated.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .models import Pulse

logger = logging.getLogger(__name__)


class ResetJournal:
    """Append-only JSONL journal with a monotonic sequence across reopens."""

    output_path: Path
    _sequence: int

    def __init__(self, path: str | Path) -> None:
        self.output_path = Path(path)
        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        self._sequence = len(self.read())

    def log(self, event_type: str, data: dict[str, Any]) -> bool:
        """Append one record. Returns False if the write failed (logged)."""
        self._sequence += 1
        record: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "sequence": self._sequence,
            "event_type": event_type,
            **data,
        }
        try:
            with open(self.output_path, "a", encoding="utf-8") as f:
                f.write(json.dumps(record, ensure_ascii=False) + "\n")
        except OSError as e:
            logger.error("Reset journal write failed (%s): %s", self.output_path, e)
            return False
        return True

    def log_init(self, did: str, version: str) -> bool:
        return self.log("kernel_init", {"did": did, "version": version})

    def log_reset(self, pulse: Pulse, preserve_identity: bool, pulse_count: int) -> bool:
        """Record the reset pulse and how much of the log it is about to wipe."""
        return self.log("kernel_reset", {
            "pulse": pulse.to_dict(),
            "preserve_identity": preserve_identity,
            "pulses_discarded": pulse_count,
        })

    def read(self) -> list[dict[str, Any]]:
        """All readable records, oldest first. Corrupt lines are skipped."""
        if not self.output_path.exists():
            return []
        records: list[dict[str, Any]] = []
        with open(self.output_path, encoding="utf-8") as f:
            for lineno, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    records.append(json.loads(line))
                except json.JSONDecodeError:
                    logger.warning("Skipping corrupt journal line %d in %s", lineno, self.output_path)
        return records

    def resets(self) -> list[dict[str, Any]]:
        return [r for r in self.read() if r.get("event_type") == "kernel_reset"]
