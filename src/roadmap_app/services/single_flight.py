"""In-process single-flight registry.

At most one execution per key runs at a time; concurrent callers with the
same key wait for the leader and share its outcome.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, Optional, Tuple, TypeVar

from ..utils.logging_config import get_logger
from .service_base import InFlightTimeoutError

logger = get_logger("single_flight")

T = TypeVar('T')


@dataclass
class _Call(Generic[T]):
    done: threading.Event = field(default_factory=threading.Event)
    result: Optional[T] = None
    error: Optional[BaseException] = None
    followers: int = 0


class SingleFlight:
    """Fingerprint-keyed registry of in-flight calls with waiter fan-out."""

    def __init__(self, wait_timeout: float = 120.0):
        self.wait_timeout = wait_timeout
        self._calls: Dict[str, _Call[Any]] = {}
        self._lock = threading.Lock()

    def run(self, key: str, fn: Callable[[], T]) -> Tuple[T, bool]:
        """Run `fn` once per concurrent `key`.

        Returns ``(result, shared)`` where ``shared`` is True for followers.
        Followers re-raise the leader's exception and raise
        ``InFlightTimeoutError`` if the leader does not finish in time.
        """
        with self._lock:
            call = self._calls.get(key)
            if call is None:
                call = _Call()
                self._calls[key] = call
                leader = True
            else:
                call.followers += 1
                leader = False

        if not leader:
            logger.info(f"Waiting on in-flight generation for '{key}'")
            if not call.done.wait(self.wait_timeout):
                raise InFlightTimeoutError(
                    f"Timed out after {self.wait_timeout}s waiting for in-flight generation of '{key}'"
                )
            if call.error is not None:
                raise call.error
            return call.result, True  # type: ignore[return-value]

        try:
            call.result = fn()
            return call.result, False
        except BaseException as e:
            call.error = e
            raise
        finally:
            with self._lock:
                self._calls.pop(key, None)
            call.done.set()
            if call.followers:
                logger.debug(f"Released {call.followers} follower(s) for '{key}'")

    def in_flight(self, key: str) -> bool:
        with self._lock:
            return key in self._calls

    def clear(self) -> None:
        """Drop all entries, releasing any waiters with an error."""
        with self._lock:
            calls = list(self._calls.values())
            self._calls.clear()
        for call in calls:
            if not call.done.is_set():
                call.error = InFlightTimeoutError("Single-flight registry shut down")
                call.done.set()
