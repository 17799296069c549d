"""Roadmap Progress Event Emitter
================================

Per-requester progress notifications for roadmap generation.

A requester registers the Socket.IO session id they are listening on; the
generation pipeline then emits ``roadmap-progress`` events to that room.
Every event is also kept in a bounded, thread-safe ring buffer so polling
clients and tests can read recent progress without a socket.

Event payload::
    {
      "step": "generating",   # see ProgressStep
      "progress": 20,         # 0-100
      "message": "...",       # optional
      "error": "..."          # only on the terminal error event
    }

Delivery is fire-and-forget: a missing subscriber or a failed emit never
affects the pipeline.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Dict, List, Optional

from ..constants import PROGRESS_EVENT
from ..utils.logging_config import get_logger

logger = get_logger("progress")

MAX_EVENTS = 200


@dataclass
class ProgressEvent:
    subscriber: Optional[str]
    step: str
    progress: int
    message: Optional[str] = None
    error: Optional[str] = None
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def payload(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"step": self.step, "progress": self.progress}
        if self.message:
            data["message"] = self.message
        if self.error is not None:
            data["error"] = self.error
        return data

    def to_dict(self) -> Dict[str, Any]:
        data = self.payload()
        data["subscriber"] = self.subscriber
        data["timestamp"] = self.timestamp
        return data


class _ProgressEventBuffer:
    def __init__(self, max_events: int = MAX_EVENTS):
        self._events: List[ProgressEvent] = []
        self._lock = Lock()
        self._max = max_events

    def add(self, evt: ProgressEvent) -> None:
        with self._lock:
            self._events.append(evt)
            if len(self._events) > self._max:
                self._events = self._events[-self._max:]

    def list(self, subscriber: Optional[str] = None) -> List[Dict[str, Any]]:
        with self._lock:
            if subscriber is not None:
                return [e.to_dict() for e in self._events if e.subscriber == subscriber]
            return [e.to_dict() for e in self._events]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()


class ProgressNotifier:
    """Maps requester identities to socket sessions and emits progress to them."""

    def __init__(self, socketio: Any = None, max_events: int = MAX_EVENTS):
        self._socketio = socketio
        self._buffer = _ProgressEventBuffer(max_events)
        self._subscriptions: Dict[str, str] = {}
        self._lock = Lock()

    def register(self, user_id: Any, sid: str) -> None:
        with self._lock:
            self._subscriptions[str(user_id)] = sid
        logger.debug(f"Registered progress subscriber {user_id} -> {sid}")

    def unregister(self, user_id: Any = None, sid: Optional[str] = None) -> None:
        with self._lock:
            if user_id is not None:
                self._subscriptions.pop(str(user_id), None)
            if sid is not None:
                for key in [k for k, v in self._subscriptions.items() if v == sid]:
                    del self._subscriptions[key]

    def resolve(self, subscriber: Any) -> Optional[str]:
        """Return the socket room for a registered user id; anything else is taken as a sid."""
        if subscriber is None or subscriber == '':
            return None
        key = str(subscriber)
        with self._lock:
            return self._subscriptions.get(key, key)

    def emit(self, subscriber: Any, step: str, progress: int,
             error: Optional[str] = None, message: Optional[str] = None) -> None:
        evt = ProgressEvent(
            subscriber=str(subscriber) if subscriber is not None else None,
            step=str(step),
            progress=int(progress),
            message=message,
            error=error,
        )
        self._buffer.add(evt)

        room = self.resolve(subscriber)
        if room is None or self._socketio is None:
            return
        try:
            self._socketio.emit(PROGRESS_EVENT, evt.payload(), to=room)
        except Exception as e:  # pragma: no cover - logging only
            logger.debug(f"SocketIO emit failed ({PROGRESS_EVENT} -> {room}): {e}")

    def recent(self, subscriber: Any = None) -> List[Dict[str, Any]]:
        return self._buffer.list(str(subscriber) if subscriber is not None else None)

    def clear(self) -> None:
        self._buffer.clear()
        with self._lock:
            self._subscriptions.clear()


__all__ = ["ProgressEvent", "ProgressNotifier", "MAX_EVENTS"]
