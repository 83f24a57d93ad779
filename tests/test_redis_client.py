import threading
from datetime import timedelta

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from mfaguard.errors import KeyNotExistsError, NilRedisClientError
from mfaguard.rate_limiter import NO_EXPIRY, FailureConfig, Mode, RateLimiter
from mfaguard.redis_client import RedisClientWrapper


def _seconds(value):
    if isinstance(value, timedelta):
        return int(value.total_seconds())
    return int(value)


class FakeRedis:
    """In-memory stand-in for a redis server with a controllable clock."""

    def __init__(self):
        self.now = 0
        self.data = {}
        self.expiry = {}
        self.closed = False
        self.lock = threading.Lock()

    def fast_forward(self, seconds):
        self.now += seconds

    def _purge(self, key):
        deadline = self.expiry.get(key)
        if deadline is not None and deadline <= self.now:
            self.data.pop(key, None)
            self.expiry.pop(key, None)

    def _check(self):
        if self.closed:
            raise RedisConnectionError("closed")

    def incr(self, key):
        return self._add(key, 1)

    def decr(self, key):
        return self._add(key, -1)

    def _add(self, key, step):
        with self.lock:
            self._check()
            self._purge(key)
            value = int(self.data.get(key, 0)) + step
            self.data[key] = value
            return value

    def expire(self, key, ttl, nx=False, gt=False):
        with self.lock:
            self._check()
            self._purge(key)
            if key not in self.data:
                return False
            current = self.expiry.get(key)
            deadline = self.now + _seconds(ttl)
            if nx and current is not None:
                return False
            if gt and (current is None or deadline <= current):
                return False
            self.expiry[key] = deadline
            return True

    def persist(self, key):
        with self.lock:
            self._check()
            self._purge(key)
            if key not in self.data or key not in self.expiry:
                return False
            del self.expiry[key]
            return True

    def set(self, key, value, keepttl=False):
        with self.lock:
            self._check()
            self._purge(key)
            self.data[key] = value
            if not keepttl:
                self.expiry.pop(key, None)
            return True

    def ttl(self, key):
        with self.lock:
            self._check()
            self._purge(key)
            if key not in self.data:
                return -2
            if key not in self.expiry:
                return -1
            return self.expiry[key] - self.now

    def ping(self):
        self._check()
        return True

    def close(self):
        self.closed = True


@pytest.fixture
def server():
    return FakeRedis()


@pytest.fixture
def wrapper(server):
    return RedisClientWrapper(server)


def test_nil_redis_client():
    with pytest.raises(NilRedisClientError):
        RedisClientWrapper(None)


def test_is_connected_until_closed(server, wrapper):
    assert wrapper.is_connected() is True
    server.close()
    assert wrapper.is_connected() is False


def test_is_connected_accepts_pong_string():
    class PongClient:
        def ping(self):
            return "PONG"

    assert RedisClientWrapper(PongClient()).is_connected() is True


def test_is_connected_rejects_other_answer():
    class OddClient:
        def ping(self):
            return "NOPE"

    assert RedisClientWrapper(OddClient()).is_connected() is False


def test_operations(wrapper):
    ttl = timedelta(seconds=1)
    greater_ttl = timedelta(minutes=1)

    assert wrapper.increment("key1") == 1
    assert wrapper.decrement("key1") == 0
    assert wrapper.set_expire("key1", ttl) is True
    assert wrapper.set_greater_expire_ttl("key1", greater_ttl) is True

    wrapper.reset_counter_and_keep_ttl("key1")

    assert wrapper.increment("key1") == 1
    assert wrapper.increment("key1") == 2

    assert wrapper.set_persist("key1") is True
    assert wrapper.set_persist("key1") is False
    assert wrapper.set_persist("invalidKey") is False

    wrapper.reset_counter_and_keep_ttl("key1")
    assert wrapper.increment("key1") == 1


def test_reset_keeps_ttl(wrapper):
    wrapper.increment("key1")
    wrapper.set_expire("key1", timedelta(seconds=60))
    wrapper.reset_counter_and_keep_ttl("key1")
    assert wrapper.expire_time("key1") == timedelta(seconds=60)


def test_expire_time_missing_key(wrapper):
    with pytest.raises(KeyNotExistsError):
        wrapper.expire_time("missing")


def test_expire_time_persistent_key(wrapper):
    wrapper.increment("key1")
    assert wrapper.expire_time("key1") == NO_EXPIRY


def test_expire_time_counts_down(server, wrapper):
    wrapper.increment("key1")
    wrapper.set_expire("key1", timedelta(seconds=9))
    server.fast_forward(3)
    assert wrapper.expire_time("key1") == timedelta(seconds=6)


def test_set_expire_if_not_exists(wrapper):
    wrapper.increment("key1")
    assert wrapper.set_expire_if_not_exists("key1", timedelta(seconds=5)) is True
    assert wrapper.set_expire_if_not_exists("key1", timedelta(seconds=50)) is False
    assert wrapper.expire_time("key1") == timedelta(seconds=5)


def test_set_greater_expire_ttl_only_grows(wrapper):
    wrapper.increment("key1")
    wrapper.set_expire("key1", timedelta(seconds=60))
    assert wrapper.set_greater_expire_ttl("key1", timedelta(seconds=1)) is False
    assert wrapper.expire_time("key1") == timedelta(seconds=60)


def test_set_expire_missing_key(wrapper):
    assert wrapper.set_expire("missing", timedelta(seconds=1)) is False


def test_concurrent_operations(wrapper):
    errors = []
    increments = []
    flags = []
    collect_lock = threading.Lock()
    ttl = timedelta(milliseconds=1)

    def work(idx):
        try:
            choice = idx % 5
            if choice == 0:
                value = wrapper.increment("key1")
                with collect_lock:
                    increments.append(value)
            elif choice == 1:
                try:
                    wrapper.expire_time("key1")
                except KeyNotExistsError:
                    pass
            elif choice == 2:
                flag = wrapper.set_expire("key1", ttl)
                with collect_lock:
                    flags.append(flag)
            elif choice == 3:
                wrapper.reset_counter_and_keep_ttl("key1")
            else:
                flag = wrapper.set_greater_expire_ttl("key1", ttl)
                with collect_lock:
                    flags.append(flag)
        except Exception as exc:  # collected and asserted below
            with collect_lock:
                errors.append(exc)

    threads = [threading.Thread(target=work, args=(i,)) for i in range(1, 501)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert len(increments) == 100
    assert min(increments) >= 1
    assert len(flags) == 200
    assert set(flags) <= {True, False}

    wrapper.reset_counter_and_keep_ttl("key1")
    assert wrapper.increment("key1") == 1
    assert wrapper.decrement("key1") == 0


def _limiter(wrapper, max_failures, period, security_failures, security_period):
    return RateLimiter(
        1000,
        FailureConfig(max_failures, period),
        FailureConfig(security_failures, security_period),
        wrapper,
    )


def test_limiter_blocks_and_counts_down(server, wrapper):
    rl = _limiter(wrapper, 3, 9, 100, 86400)

    results = [rl.check_allowed_and_increase_trials("addr1", Mode.NORMAL) for _ in range(4)]
    assert [r.remaining for r in results] == [2, 1, 0, 0]
    assert [r.allowed for r in results] == [True, True, True, False]
    assert all(r.reset_after == timedelta(seconds=9) for r in results)

    server.fast_forward(3)
    res = rl.check_allowed_and_increase_trials("addr1", Mode.NORMAL)
    assert res.allowed is False
    assert res.reset_after == timedelta(seconds=6)

    server.fast_forward(3)
    res = rl.check_allowed_and_increase_trials("addr1", Mode.NORMAL)
    assert res.reset_after == timedelta(seconds=3)

    server.fast_forward(3)
    res = rl.check_allowed_and_increase_trials("addr1", Mode.NORMAL)
    assert res.allowed is True
    assert res.remaining == 2
    assert res.reset_after == timedelta(seconds=9)


def test_limiter_reset_restores_trials(wrapper):
    rl = _limiter(wrapper, 3, 9, 100, 86400)
    rl.check_allowed_and_increase_trials("addr0", Mode.NORMAL)
    rl.reset("addr0")
    res = rl.check_allowed_and_increase_trials("addr0", Mode.NORMAL)
    assert res.remaining == 2
    assert res.reset_after == timedelta(seconds=9)


def test_limiter_security_mode_no_expire(server, wrapper):
    rl = _limiter(wrapper, 3, 3, 3, 86400)
    res = rl.check_allowed_and_increase_trials("addr2", Mode.SECURITY)
    assert res.remaining == 2
    assert res.reset_after == timedelta(seconds=86400)

    rl.set_security_mode_no_expire("addr2")
    server.fast_forward(3)
    res = rl.check_allowed_and_increase_trials("addr2", Mode.SECURITY)
    assert res.allowed is False
    assert res.remaining == 0
    assert res.reset_after == NO_EXPIRY

    rl.unset_security_mode_no_expire("addr2")
    res = rl.check_allowed_and_increase_trials("addr2", Mode.SECURITY)
    assert res.remaining == 1
    assert res.reset_after == timedelta(seconds=86400)