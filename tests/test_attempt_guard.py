"""
Unit tests for the redirect attempt circuit breaker.
"""
import pytest

from auth import MemoryStore, RedirectAttemptGuard, StorageKeys


@pytest.fixture
def guard(store, clock):
    return RedirectAttemptGuard(store, max_attempts=3, window_seconds=300, clock=clock)


def test_fresh_guard_allows_attempt(guard):
    assert guard.may_attempt() is True
    assert guard.attempts() == []


def test_blocks_once_limit_reached_within_window(guard, clock):
    for _ in range(3):
        assert guard.may_attempt() is True
        guard.record_attempt()
        clock.advance(10)

    assert guard.may_attempt() is False


def test_allows_again_after_oldest_attempt_ages_out(guard, clock):
    start = clock.now
    guard.record_attempt()
    clock.advance(100)
    guard.record_attempt()
    clock.advance(100)
    guard.record_attempt()
    assert guard.may_attempt() is False

    # Oldest attempt leaves the window exactly at start + 300
    clock.now = start + 299.9
    assert guard.may_attempt() is False
    clock.now = start + 300
    assert guard.may_attempt() is True
    assert len(guard.attempts()) == 2


def test_pruned_list_is_written_back(guard, store, clock):
    guard.record_attempt()
    clock.advance(400)
    guard.record_attempt()

    assert guard.may_attempt() is True
    assert store.get(StorageKeys.ATTEMPTS) == [clock.now]


def test_reset_then_may_attempt(guard):
    for _ in range(3):
        guard.record_attempt()
    assert guard.may_attempt() is False

    guard.reset()
    assert guard.may_attempt() is True


def test_force_reset_clears_session_flags(guard, store):
    guard.record_attempt()
    store.set(StorageKeys.REDIRECT_IN_PROGRESS, 1.0)
    store.set(StorageKeys.PAGE_LOADED, 2.0)
    store.set(StorageKeys.REDIRECT_CHECKED, 3.0)
    store.set("unrelated", "kept")

    guard.force_reset()

    assert all(store.get(key) is None for key in StorageKeys.ALL)
    assert store.get("unrelated") == "kept"


def test_retry_after(guard, clock):
    assert guard.retry_after() == 0.0

    start = clock.now
    for _ in range(3):
        guard.record_attempt()
        clock.advance(60)

    # Blocked until the first attempt (at start) ages out
    assert guard.retry_after() == pytest.approx(start + 300 - clock.now)


def test_ignores_garbage_in_storage(clock):
    store = MemoryStore({StorageKeys.ATTEMPTS: ["x", None, True, clock.now]})
    guard = RedirectAttemptGuard(store, max_attempts=2, window_seconds=300, clock=clock)

    assert guard.attempts() == [clock.now]
    assert guard.may_attempt() is True


def test_non_list_storage_value_reads_as_empty(clock):
    store = MemoryStore({StorageKeys.ATTEMPTS: "corrupt"})
    guard = RedirectAttemptGuard(store, clock=clock)
    assert guard.may_attempt() is True


@pytest.mark.parametrize("max_attempts, window", [(0, 300), (3, 0), (3, -1)])
def test_rejects_invalid_configuration(store, max_attempts, window):
    with pytest.raises(ValueError):
        RedirectAttemptGuard(store, max_attempts=max_attempts, window_seconds=window)
