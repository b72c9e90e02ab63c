"""In-memory counters for notification dispatch outcomes."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Dict


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class DispatchEventLog:
    last_mailed_at: datetime | None = None
    last_message_id: str | None = None
    last_failure_at: datetime | None = None
    last_failure_kind: str | None = None
    last_failure_reason: str | None = None


@dataclass
class NotificationObservabilitySnapshot:
    totals: Dict[str, int]
    by_kind: Dict[str, Dict[str, int]]
    events: DispatchEventLog

    def as_dict(self) -> Dict[str, object]:
        return {
            "totals": self.totals,
            "by_kind": self.by_kind,
            "events": {
                "last_mailed_at": self.events.last_mailed_at.isoformat() if self.events.last_mailed_at else None,
                "last_message_id": self.events.last_message_id,
                "last_failure_at": self.events.last_failure_at.isoformat() if self.events.last_failure_at else None,
                "last_failure_kind": self.events.last_failure_kind,
                "last_failure_reason": self.events.last_failure_reason,
            },
        }


@dataclass
class NotificationObservabilityStore:
    _lock: Lock = field(default_factory=Lock)
    _totals: Counter = field(default_factory=Counter)
    _by_kind: Dict[str, Counter] = field(default_factory=dict)
    _events: DispatchEventLog = field(default_factory=DispatchEventLog)

    def record_outcome(self, kind: str, outcome: str, *, message_id: str | None = None, detail: str | None = None) -> None:
        with self._lock:
            self._totals[outcome] += 1
            self._by_kind.setdefault(kind, Counter())[outcome] += 1
            now = _utcnow()
            if outcome == "mailed":
                self._events.last_mailed_at = now
                self._events.last_message_id = message_id
            elif outcome in {"render_failed", "send_failed"}:
                self._events.last_failure_at = now
                self._events.last_failure_kind = kind
                self._events.last_failure_reason = detail or outcome

    def snapshot(self) -> NotificationObservabilitySnapshot:
        with self._lock:
            totals = dict(self._totals)
            by_kind = {kind: dict(counter) for kind, counter in self._by_kind.items()}
            events = DispatchEventLog(
                last_mailed_at=self._events.last_mailed_at,
                last_message_id=self._events.last_message_id,
                last_failure_at=self._events.last_failure_at,
                last_failure_kind=self._events.last_failure_kind,
                last_failure_reason=self._events.last_failure_reason,
            )
        return NotificationObservabilitySnapshot(totals=totals, by_kind=by_kind, events=events)

    def reset(self) -> None:
        with self._lock:
            self._totals.clear()
            self._by_kind.clear()
            self._events = DispatchEventLog()


_NOTIFICATION_STORE = NotificationObservabilityStore()


def get_notification_store() -> NotificationObservabilityStore:
    return _NOTIFICATION_STORE


__all__ = [
    "NotificationObservabilitySnapshot",
    "NotificationObservabilityStore",
    "get_notification_store",
]
