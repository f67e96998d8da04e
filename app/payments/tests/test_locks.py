"""DistributedLock against a mocked Redis client."""

from unittest.mock import patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from payments.exceptions import LockAcquisitionError
from payments.locks import DistributedLock, order_lock_key


def test_order_lock_key():
    assert order_lock_key("refund", "abc") == "refund:order:abc"


class TestAcquire:
    def test_sets_prefixed_key_with_nx_and_ttl(self, mock_redis):
        lock = DistributedLock("refund:order:1", ttl=120, timeout=0)

        lock.acquire()

        assert lock.is_held
        args, kwargs = mock_redis.set.call_args
        assert args[0] == "lock:refund:order:1"
        assert kwargs == {"nx": True, "ex": 120}

    def test_each_acquire_uses_a_fresh_token(self, mock_redis):
        lock = DistributedLock("k", timeout=0)
        lock.acquire()
        first = mock_redis.set.call_args[0][1]
        lock.release()
        lock.acquire()

        assert mock_redis.set.call_args[0][1] != first

    def test_zero_timeout_fails_immediately_when_held(self, mock_redis):
        mock_redis.set.return_value = False
        lock = DistributedLock("refund:order:1", timeout=0)

        with patch("payments.locks.time.sleep") as sleep:
            with pytest.raises(LockAcquisitionError) as exc_info:
                lock.acquire()

        sleep.assert_not_called()
        assert exc_info.value.details["key"] == "lock:refund:order:1"
        assert exc_info.value.http_status == 409
        assert not lock.is_held

    def test_polls_until_free(self, mock_redis):
        mock_redis.set.side_effect = [False, False, True]

        with patch("payments.locks.time.sleep") as sleep:
            DistributedLock("k", timeout=5.0).acquire()

        assert mock_redis.set.call_count == 3
        assert sleep.call_count == 2

    def test_gives_up_after_timeout(self, mock_redis):
        mock_redis.set.return_value = False

        with patch("payments.locks.time.monotonic", side_effect=[0.0, 1.0, 2.0]):
            with patch("payments.locks.time.sleep"):
                with pytest.raises(LockAcquisitionError) as exc_info:
                    DistributedLock("k", timeout=1.5).acquire()

        assert exc_info.value.error_code == "LOCK_ACQUISITION_FAILED"
        assert mock_redis.set.call_count == 2


class TestRelease:
    def test_runs_owner_checked_delete(self, mock_redis):
        lock = DistributedLock("k", timeout=0)
        lock.acquire()
        token = mock_redis.set.call_args[0][1]

        assert lock.release() is True

        mock_redis.eval.assert_called_once_with(DistributedLock.RELEASE_SCRIPT, 1, "lock:k", token)
        assert not lock.is_held

    def test_without_acquire_is_noop(self, mock_redis):
        assert DistributedLock("k").release() is False
        mock_redis.eval.assert_not_called()

    def test_context_manager_releases_on_error(self, mock_redis):
        with pytest.raises(ValueError):
            with DistributedLock("k", timeout=0):
                raise ValueError("boom")

        mock_redis.eval.assert_called_once()

    def test_context_manager_tolerates_release_failure(self, mock_redis):
        mock_redis.eval.side_effect = RedisConnectionError("Connection reset")

        with DistributedLock("k", timeout=0) as lock:
            pass

        assert not lock.is_held
