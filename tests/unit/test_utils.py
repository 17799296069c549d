"""Tests for small shared helpers: slugs, retry, async bridge, locks, logging."""

import asyncio
import logging
from unittest.mock import MagicMock

import pytest
import redis

from roadmap_app.decorators import retry_with_backoff
from roadmap_app.utils.async_utils import run_async_safely
from roadmap_app.utils.distributed_lock import GenerationLockFactory, LockNotAcquiredError, get_redis_client
from roadmap_app.utils.logging_config import get_logger, setup_application_logging
from roadmap_app.utils.slug_utils import slugify


@pytest.mark.parametrize('title,expected', [
    ("Full Stack JavaScript", 'full-stack-javascript'),
    ("C++ / Systems  Programming", 'c-systems-programming'),
    ("  Data Science  ", 'data-science'),
    ("", ''),
])
def test_slugify(title, expected):
    assert slugify(title) == expected


class TestRetryWithBackoff:
    def test_retries_until_success(self):
        attempts = []

        @retry_with_backoff(attempts=3, base_delay=0, retry_on=KeyError)
        def flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise KeyError('stale')
            return 'ok'

        assert flaky() == 'ok'
        assert len(attempts) == 3

    def test_reraises_after_exhaustion_and_calls_hook_between_attempts(self):
        seen = []

        @retry_with_backoff(attempts=3, base_delay=0, retry_on=KeyError,
                            before_retry=lambda attempt, exc: seen.append(attempt))
        def always_fails():
            raise KeyError('stale')

        with pytest.raises(KeyError):
            always_fails()
        assert seen == [1, 2]

    def test_other_exceptions_propagate_immediately(self):
        attempts = []

        @retry_with_backoff(attempts=3, base_delay=0, retry_on=KeyError)
        def broken():
            attempts.append(1)
            raise ValueError('bad input')

        with pytest.raises(ValueError):
            broken()
        assert len(attempts) == 1


class TestRunAsyncSafely:
    def test_without_running_loop(self):
        async def answer():
            return 42

        assert run_async_safely(answer()) == 42

    def test_inside_running_loop(self):
        async def inner():
            await asyncio.sleep(0)
            return 'inner'

        async def outer():
            return run_async_safely(inner())

        assert asyncio.run(outer()) == 'inner'

    def test_propagates_exceptions(self):
        async def boom():
            raise RuntimeError('boom')

        with pytest.raises(RuntimeError, match='boom'):
            run_async_safely(boom())


class TestGenerationLockFactory:
    def test_disabled_without_redis_url(self):
        factory = GenerationLockFactory(None)
        assert not factory.enabled
        with factory.hold('react hooks') as acquired:
            assert acquired is False

    def test_unreachable_redis_proceeds_without_lock(self):
        factory = GenerationLockFactory('redis://127.0.0.1:1/0')
        assert factory.enabled
        with factory.hold('react hooks') as acquired:
            assert acquired is False

    def test_get_redis_client_none_for_missing_url(self):
        assert get_redis_client('') is None

    def _factory_with_client(self, monkeypatch, client):
        factory = GenerationLockFactory('redis://locks:6379/0', timeout=30, blocking_timeout=0.5)
        monkeypatch.setattr(factory, 'client', lambda: client)
        return factory

    def test_held_lock_is_released_after_block(self, monkeypatch):
        client = MagicMock()
        client.lock.return_value.acquire.return_value = True
        factory = self._factory_with_client(monkeypatch, client)

        with factory.hold('react hooks') as acquired:
            assert acquired is True
            client.lock.return_value.release.assert_not_called()

        client.lock.assert_called_once_with('generation:react hooks', timeout=30, blocking_timeout=0.5)
        client.lock.return_value.release.assert_called_once()

    def test_contended_lock_raises_without_running_block(self, monkeypatch):
        client = MagicMock()
        client.lock.return_value.acquire.return_value = False
        factory = self._factory_with_client(monkeypatch, client)
        ran = []

        with pytest.raises(LockNotAcquiredError, match='still held by another worker'):
            with factory.hold('react hooks'):
                ran.append(True)

        assert ran == []
        client.lock.return_value.release.assert_not_called()

    def test_redis_error_while_locking_proceeds_without_lock(self, monkeypatch):
        client = MagicMock()
        client.lock.return_value.acquire.side_effect = redis.exceptions.ConnectionError("connection reset")
        factory = self._factory_with_client(monkeypatch, client)

        with factory.hold('react hooks') as acquired:
            assert acquired is False

    def test_expired_lock_release_is_tolerated(self, monkeypatch):
        client = MagicMock()
        client.lock.return_value.acquire.return_value = True
        client.lock.return_value.release.side_effect = redis.exceptions.LockNotOwnedError("expired")
        factory = self._factory_with_client(monkeypatch, client)

        with factory.hold('react hooks') as acquired:
            assert acquired is True


def test_logging_namespaces_and_file_handler(tmp_path):
    setup_application_logging(log_level='DEBUG', log_dir=tmp_path, log_to_file=True)
    try:
        logger = get_logger('unit')
        assert logger.name == 'RoadmapApp.unit'
        logger.info("hello from the unit test")
        for handler in logging.getLogger().handlers:
            handler.flush()
        assert 'hello from the unit test' in (tmp_path / 'app.log').read_text(encoding='utf-8')
    finally:
        setup_application_logging(log_level='INFO', log_to_file=False)
