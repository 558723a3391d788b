from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import asdict, dataclass, replace
from pathlib import Path
from typing import Callable, Dict, Optional

from .utils import KeyedLock

logger = logging.getLogger("printdesk.session")

Clock = Callable[[], float]

DEFAULT_RETENTION_SECONDS = 48 * 60 * 60


@dataclass(frozen=True)
class SenderSession:
    """Remembered facts about one conversation partner."""
    sender_id: str
    printer_model: Optional[str] = None
    software_name: Optional[str] = None
    last_touched: float = 0.0

    def is_empty(self) -> bool:
        return not self.printer_model and not self.software_name


class SessionStore:
    """Per-sender session storage with sliding expiry and optional JSON snapshots."""

    def __init__(
        self,
        retention_seconds: float = DEFAULT_RETENTION_SECONDS,
        clock: Optional[Clock] = None,
        path: Optional[Path] = None,
    ) -> None:
        """Purpose: Initialize the session store and hydrate from disk if available.
        Inputs/Outputs: Inputs are the retention window, an optional clock, and an
            optional snapshot path; no return value.
        Side Effects / State: Loads unexpired sessions from the snapshot file.
        Dependencies: Calls _load; uses KeyedLock for per-sender atomicity.
        Failure Modes: JSON decode errors are ignored and leave an empty store.
        If Removed: The router forgets every printer model between messages.
        Testing Notes: Inject a manual clock to step past the retention window.
        """
        # Keep configuration, then preload persisted sessions if present.
        if retention_seconds <= 0:
            raise ValueError("retention_seconds must be positive")
        self._retention = retention_seconds
        self._clock: Clock = clock or time.time
        self._path = path
        self._sessions: Dict[str, SenderSession] = {}
        self._locks = KeyedLock()
        self._persist_lock = threading.Lock()
        self._load()

    @property
    def retention_seconds(self) -> float:
        return self._retention

    def _is_expired(self, session: SenderSession, now: float) -> bool:
        return now - session.last_touched > self._retention

    def get(self, sender_id: str) -> Optional[SenderSession]:
        """Purpose: Fetch the live session for a sender and refresh its timestamp.
        Inputs/Outputs: Input is sender_id; output is a SenderSession or None.
        Side Effects / State: Deletes the entry if expired; otherwise bumps last_touched.
        Dependencies: Uses the injected clock and per-key lock.
        Failure Modes: None; expired or unknown senders return None.
        If Removed: The resolver cannot tell gated senders from known ones.
        Testing Notes: Query at T + retention + epsilon and expect None.
        """
        # Lazy eviction: an expired entry is removed by the read that finds it.
        with self._locks.hold(sender_id):
            session = self._sessions.get(sender_id)
            if session is None:
                return None
            now = self._clock()
            if self._is_expired(session, now):
                del self._sessions[sender_id]
                logger.info("sender=%s session=expired", sender_id)
                changed = True
                result = None
            else:
                result = replace(session, last_touched=now)
                self._sessions[sender_id] = result
                changed = False
        if changed:
            self._persist()
        return result

    def set_model(self, sender_id: str, model: Optional[str]) -> Optional[SenderSession]:
        """Store (or clear, when empty) the printer model for a sender."""
        return self._update(sender_id, printer_model=(model or "").strip() or None)

    def set_software(self, sender_id: str, software: Optional[str]) -> Optional[SenderSession]:
        """Store (or clear, when empty) the software name for a sender."""
        return self._update(sender_id, software_name=(software or "").strip() or None)

    def touch(self, sender_id: str) -> bool:
        """Refresh an existing session; an absent sender is left absent."""
        return self.get(sender_id) is not None

    def delete(self, sender_id: str) -> bool:
        with self._locks.hold(sender_id):
            removed = self._sessions.pop(sender_id, None) is not None
        if removed:
            self._persist()
        return removed

    def sweep(self, now: Optional[float] = None) -> int:
        """Purpose: Remove every expired session regardless of read traffic.
        Inputs/Outputs: Optional timestamp override; returns the number removed.
        Side Effects / State: Mutates the cache and rewrites the snapshot when needed.
        Dependencies: Uses per-key locks so concurrent readers of one sender stay atomic.
        Failure Modes: Snapshot IO errors propagate to the caller.
        If Removed: Senders who never come back accumulate forever.
        Testing Notes: Seed two senders at different times and sweep between them.
        """
        # Re-check under each key's lock; a concurrent write may have refreshed it.
        cutoff_now = self._clock() if now is None else now
        removed = 0
        for sender_id in list(self._sessions.keys()):
            with self._locks.hold(sender_id):
                session = self._sessions.get(sender_id)
                if session is not None and self._is_expired(session, cutoff_now):
                    del self._sessions[sender_id]
                    removed += 1
        if removed:
            logger.info("sweep removed=%s remaining=%s", removed, len(self._sessions))
            self._persist()
        return removed

    def __len__(self) -> int:
        return len(self._sessions)

    def _update(self, sender_id: str, **fields: Optional[str]) -> Optional[SenderSession]:
        # Read-modify-write under the sender's lock; empty sessions are never stored.
        with self._locks.hold(sender_id):
            now = self._clock()
            current = self._sessions.get(sender_id)
            if current is None or self._is_expired(current, now):
                current = SenderSession(sender_id=sender_id)
            updated = replace(current, last_touched=now, **fields)
            if updated.is_empty():
                self._sessions.pop(sender_id, None)
                result = None
            else:
                self._sessions[sender_id] = updated
                result = updated
        self._persist()
        return result

    def _load(self) -> None:
        """Purpose: Load persisted sessions from disk into memory.
        Inputs/Outputs: Reads from self._path; no return value.
        Side Effects / State: Populates _sessions with unexpired, non-empty entries.
        Dependencies: Uses json.loads and the injected clock.
        Failure Modes: Missing file or JSONDecodeError results in an empty cache.
        If Removed: Sessions never survive a restart.
        Testing Notes: Corrupt JSON should not crash; expired rows are dropped.
        """
        # Read and decode persisted JSON if present.
        if not self._path or not self._path.exists():
            return
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("sessions file %s is not valid JSON; starting empty", self._path)
            return
        now = self._clock()
        for sender_id, row in (data.get("sessions") or {}).items():
            if not isinstance(row, dict):
                continue
            session = SenderSession(
                sender_id=sender_id,
                printer_model=row.get("printer_model") or None,
                software_name=row.get("software_name") or None,
                last_touched=float(row.get("last_touched") or 0.0),
            )
            if session.is_empty() or self._is_expired(session, now):
                continue
            self._sessions[sender_id] = session
        logger.info("loaded sessions=%s from %s", len(self._sessions), self._path)

    def _persist(self) -> None:
        # Snapshot writes are serialized among themselves, not with per-key updates.
        if not self._path:
            return
        with self._persist_lock:
            snapshot = dict(self._sessions)
            payload = {
                "sessions": {
                    sender_id: {key: value for key, value in asdict(session).items() if key != "sender_id"}
                    for sender_id, session in snapshot.items()
                }
            }
            self._path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
