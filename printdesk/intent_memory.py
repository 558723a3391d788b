from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger("printdesk.intent_memory")


class IntentTally:
    """Per-intent counters for operator analysis, optionally persisted to JSON."""

    def __init__(self, path: Optional[Path] = None) -> None:
        """Purpose: Initialize counters and load prior counts from disk.
        Inputs/Outputs: Input is an optional Path; no return value.
        Side Effects / State: Loads counts into memory.
        Dependencies: Calls _load; uses a JSON file on disk when configured.
        Failure Modes: JSON decode errors are ignored, leaving zero counts.
        If Removed: Operators cannot see which intents the rule table is catching.
        Testing Notes: Record twice and reload from the same file.
        """
        # Keep the backing file path and hydrate cached counts.
        self._path = path
        self._lock = threading.Lock()
        self._counts: Dict[str, int] = {}
        self._load()

    def _load(self) -> None:
        if not self._path or not self._path.exists():
            return
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("intent stats file %s is not valid JSON; starting from zero", self._path)
            return
        counts = data.get("intents", {})
        if isinstance(counts, dict):
            self._counts = {str(name): int(count) for name, count in counts.items() if isinstance(count, int)}

    def _persist(self) -> None:
        if not self._path:
            return
        payload = {"intents": dict(sorted(self._counts.items()))}
        self._path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")

    def record(self, intent: str) -> int:
        """Purpose: Count one routed message under its intent label.
        Inputs/Outputs: Input is the intent label; output is the updated count.
        Side Effects / State: Mutates counters and writes to disk when configured.
        Dependencies: Uses _persist for durability.
        Failure Modes: IO errors on persist propagate.
        If Removed: The /api/intents endpoint reports nothing.
        Testing Notes: The first record of a label returns 1.
        """
        # Increment and persist under one lock so the file matches memory.
        with self._lock:
            count = self._counts.get(intent, 0) + 1
            self._counts[intent] = count
            self._persist()
        if count == 1:
            logger.info("intent=%s first_seen", intent)
        return count

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._counts)
