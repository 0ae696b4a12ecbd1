"""Append-only audit log of canvas activity.

Every accepted vote, rejected vote, settled round and session bootstrap
can be recorded as an immutable event. The log is optional: the canvas
state itself lives in the key-value store, and the audit log is the
record of how it got there.

The log can be persisted as JSONL (one JSON object per line). Each
record carries a SHA-256 hash of its canonical JSON; loading verifies
the hashes and rejects duplicate event IDs.
"""

from __future__ import annotations

import enum
import hashlib
import json
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional


class EventKind(str, enum.Enum):
    """Classification of canvas events."""
    SESSION_OPENED = "session_opened"
    VOTE_CAST = "vote_cast"
    VOTE_REJECTED = "vote_rejected"
    ROUND_SETTLED = "round_settled"
    TICKER_STOPPED = "ticker_stopped"


def _canonical_hash(
    event_id: str,
    event_kind: str,
    timestamp_utc: str,
    session_key: str,
    actor_id: str,
    payload: dict[str, Any],
) -> str:
    canonical = json.dumps(
        {
            "event_id": event_id,
            "event_kind": event_kind,
            "timestamp_utc": timestamp_utc,
            "session_key": session_key,
            "actor_id": actor_id,
            "payload": payload,
        },
        sort_keys=True,
        ensure_ascii=False,
    ).encode("utf-8")
    return f"sha256:{hashlib.sha256(canonical).hexdigest()}"


@dataclass(frozen=True)
class EventRecord:
    """A single immutable event."""
    event_id: str
    event_kind: EventKind
    timestamp_utc: str
    session_key: str
    actor_id: str
    payload: dict[str, Any]
    event_hash: str

    @staticmethod
    def create(
        event_id: str,
        event_kind: EventKind,
        session_key: str,
        actor_id: str,
        payload: dict[str, Any],
        timestamp_utc: Optional[datetime] = None,
    ) -> EventRecord:
        """Create a new event record with computed hash."""
        ts = timestamp_utc or datetime.now(timezone.utc)
        ts_str = ts.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")
        return EventRecord(
            event_id=event_id,
            event_kind=event_kind,
            timestamp_utc=ts_str,
            session_key=session_key,
            actor_id=actor_id,
            payload=payload,
            event_hash=_canonical_hash(
                event_id, event_kind.value, ts_str, session_key, actor_id, payload,
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_kind": self.event_kind.value,
            "timestamp_utc": self.timestamp_utc,
            "session_key": self.session_key,
            "actor_id": self.actor_id,
            "payload": self.payload,
            "event_hash": self.event_hash,
        }


class EventLog:
    """Append-only event log with optional JSONL persistence.

    Events can only be appended, never modified or deleted. Appends are
    serialized so the log may be shared by the ticker thread and
    request handlers.
    """

    def __init__(self, storage_path: Optional[Path] = None) -> None:
        self._events: list[EventRecord] = []
        self._event_ids: set[str] = set()
        self._storage_path = storage_path
        self._lock = threading.Lock()

        if storage_path and storage_path.exists():
            self._load_from_file(storage_path)

    def append(self, event: EventRecord) -> None:
        """Append an event.

        Raises ValueError if the event_id was already used.
        """
        with self._lock:
            if event.event_id in self._event_ids:
                raise ValueError(f"Duplicate event ID: {event.event_id}")
            if self._storage_path:
                with self._storage_path.open("a", encoding="utf-8") as f:
                    f.write(json.dumps(event.to_dict(), sort_keys=True, ensure_ascii=False) + "\n")
            self._events.append(event)
            self._event_ids.add(event.event_id)

    def events(
        self,
        kind: Optional[EventKind] = None,
        session_key: Optional[str] = None,
    ) -> list[EventRecord]:
        """Return events, optionally filtered by kind and session."""
        with self._lock:
            result = list(self._events)
        if kind is not None:
            result = [e for e in result if e.event_kind == kind]
        if session_key is not None:
            result = [e for e in result if e.session_key == session_key]
        return result

    @property
    def count(self) -> int:
        return len(self._events)

    @property
    def last_event(self) -> Optional[EventRecord]:
        return self._events[-1] if self._events else None

    def _load_from_file(self, path: Path) -> None:
        """Load events from JSONL, failing closed on tampering or replays."""
        with path.open("r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                data = json.loads(line)
                event_id = data["event_id"]
                if event_id in self._event_ids:
                    raise ValueError(
                        f"Duplicate event ID on recovery (line {line_num}): {event_id}"
                    )
                expected = _canonical_hash(
                    event_id,
                    data["event_kind"],
                    data["timestamp_utc"],
                    data["session_key"],
                    data["actor_id"],
                    data["payload"],
                )
                if data["event_hash"] != expected:
                    raise ValueError(
                        f"Integrity check failed (line {line_num}): event {event_id} "
                        f"stored hash {data['event_hash']} != computed {expected}"
                    )
                self._events.append(EventRecord(
                    event_id=event_id,
                    event_kind=EventKind(data["event_kind"]),
                    timestamp_utc=data["timestamp_utc"],
                    session_key=data["session_key"],
                    actor_id=data["actor_id"],
                    payload=data["payload"],
                    event_hash=data["event_hash"],
                ))
                self._event_ids.add(event_id)
