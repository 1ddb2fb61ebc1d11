import gc
import threading

import pytest

from tutorbook.core import tutor_lock as tutor_lock_module
from tutorbook.core.config import settings
from tutorbook.core.exceptions import LockUnavailableException
from tutorbook.core.tutor_lock import admission_lock, student_lock, tutor_lock


class FakeRedis:
    """Just enough of redis-py for SET NX / compare-and-delete."""

    def __init__(self, fail: bool = False):
        self.store = {}
        self.fail = fail
        self.evals = 0

    def ping(self):
        return True

    def set(self, key, value, nx=False, ex=None):
        if self.fail:
            raise ConnectionError("redis down")
        if nx and key in self.store:
            return None
        self.store[key] = value
        return True

    def eval(self, script, numkeys, key, token):
        self.evals += 1
        if self.store.get(key) == token:
            del self.store[key]
            return 1
        return 0


@pytest.fixture
def fake_redis(monkeypatch):
    client = FakeRedis()
    monkeypatch.setattr(settings, "redis_url", "redis://fake:6379/0")
    tutor_lock_module.set_redis_client(client)
    return client


def test_runs_with_local_lock_only_when_redis_is_not_configured():
    entered = []

    with tutor_lock("tutor-1"):
        entered.append(True)

    assert entered == [True]


def test_redis_key_is_held_and_released(fake_redis):
    with tutor_lock("tutor-1"):
        assert list(fake_redis.store) == ["tutorbook:lock:tutor:tutor-1:bookings"]

    assert fake_redis.store == {}
    assert fake_redis.evals == 1


def test_key_held_elsewhere_times_out(fake_redis):
    fake_redis.store["tutorbook:lock:tutor:tutor-1:bookings"] = "other-process"

    with pytest.raises(LockUnavailableException) as exc_info:
        with tutor_lock("tutor-1", timeout_s=0.1):
            pass

    assert exc_info.value.code == "TUTOR_LOCK_TIMEOUT"
    assert fake_redis.store["tutorbook:lock:tutor:tutor-1:bookings"] == "other-process"


def test_other_tutors_are_independent(fake_redis):
    fake_redis.store["tutorbook:lock:tutor:tutor-1:bookings"] = "other-process"

    with tutor_lock("tutor-2", timeout_s=0.1):
        assert "tutorbook:lock:tutor:tutor-2:bookings" in fake_redis.store


def test_redis_errors_fall_back_to_local_lock(fake_redis):
    fake_redis.fail = True
    entered = []

    with tutor_lock("tutor-1", timeout_s=0.1):
        entered.append(True)

    assert entered == [True]
    assert fake_redis.evals == 0


def test_local_lock_blocks_other_threads():
    holding = threading.Event()
    release = threading.Event()

    def holder():
        with tutor_lock("tutor-1"):
            holding.set()
            release.wait(5)

    thread = threading.Thread(target=holder)
    thread.start()
    try:
        assert holding.wait(5)
        with pytest.raises(LockUnavailableException):
            with tutor_lock("tutor-1", timeout_s=0.05):
                pass
    finally:
        release.set()
        thread.join()

    with tutor_lock("tutor-1", timeout_s=0.05):
        pass


def test_lock_is_released_when_body_raises(fake_redis):
    with pytest.raises(RuntimeError):
        with tutor_lock("tutor-1"):
            raise RuntimeError("boom")

    assert fake_redis.store == {}
    with tutor_lock("tutor-1", timeout_s=0.05):
        pass


def test_student_keys_are_independent_of_tutor_keys(fake_redis):
    fake_redis.store["tutorbook:lock:tutor:user-1:bookings"] = "other-process"

    with student_lock("user-1", timeout_s=0.1):
        assert "tutorbook:lock:student:user-1:bookings" in fake_redis.store


def test_held_student_key_times_out(fake_redis):
    fake_redis.store["tutorbook:lock:student:student-1:bookings"] = "other-process"

    with pytest.raises(LockUnavailableException) as exc_info:
        with admission_lock("tutor-1", "student-1", timeout_s=0.1):
            pass

    assert exc_info.value.code == "STUDENT_LOCK_TIMEOUT"
    assert exc_info.value.details["student_id"] == "student-1"
    # The tutor section was entered first and released on the way out
    assert "tutorbook:lock:tutor:tutor-1:bookings" not in fake_redis.store


def test_admission_holds_tutor_and_student_keys(fake_redis):
    with admission_lock("tutor-1", "student-1"):
        assert sorted(fake_redis.store) == [
            "tutorbook:lock:student:student-1:bookings",
            "tutorbook:lock:tutor:tutor-1:bookings",
        ]

    assert fake_redis.store == {}
    assert fake_redis.evals == 2


def test_admission_for_same_student_blocks_across_tutors():
    holding = threading.Event()
    release = threading.Event()

    def holder():
        with admission_lock("tutor-1", "student-1"):
            holding.set()
            release.wait(5)

    thread = threading.Thread(target=holder)
    thread.start()
    try:
        assert holding.wait(5)
        with pytest.raises(LockUnavailableException) as exc_info:
            with admission_lock("tutor-2", "student-1", timeout_s=0.05):
                pass
        assert exc_info.value.code == "STUDENT_LOCK_TIMEOUT"
    finally:
        release.set()
        thread.join()


def test_local_locks_are_dropped_once_released():
    key = "tutorbook:lock:tutor:tutor-x:bookings"

    with tutor_lock("tutor-x"):
        assert key in tutor_lock_module._LOCAL_LOCKS

    gc.collect()
    assert key not in tutor_lock_module._LOCAL_LOCKS
