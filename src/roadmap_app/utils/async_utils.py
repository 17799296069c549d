"""
Async Utilities
===============

Bridges the aiohttp oracle client into the synchronous generation pipeline.
Flask request handlers, CLI commands and socket handlers all call in here.
"""

import asyncio
import threading
from typing import Any, Coroutine, Dict, Optional, TypeVar

from .logging_config import get_logger

logger = get_logger("async")

T = TypeVar('T')


def run_async_safely(coro: Coroutine[Any, Any, T], timeout: Optional[float] = None) -> T:
    """Block until `coro` finishes and return its result.

    With no loop running in the calling thread the coroutine gets its own
    loop via ``asyncio.run``. Inside a running loop (e.g. an async test or
    an eventlet-style server) it is handed to a one-shot worker thread so
    the caller's loop is never re-entered.

    `timeout` bounds the whole call; ``asyncio.TimeoutError`` is raised when
    it expires.
    """
    if timeout is not None:
        coro = asyncio.wait_for(coro, timeout)

    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)

    logger.debug("Event loop already running; executing coroutine on a worker thread")
    return _run_on_worker(coro)


def _run_on_worker(coro: Coroutine[Any, Any, T]) -> T:
    outcome: Dict[str, Any] = {}

    def _target() -> None:
        try:
            outcome['result'] = asyncio.run(coro)
        except BaseException as e:  # re-raised in the calling thread
            outcome['error'] = e

    worker = threading.Thread(target=_target, name="async-bridge", daemon=True)
    worker.start()
    worker.join()

    if 'error' in outcome:
        raise outcome['error']
    return outcome['result']


__all__ = ['run_async_safely']
