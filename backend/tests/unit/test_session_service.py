# backend/tests/unit/test_session_service.py
import threading
from datetime import timedelta

import pytest

from flowdesk.models.flow import Screen
from flowdesk.services.session_service import FlowSessionStore

PHONE = "+905551234567"


def test_save_sets_expiry_from_ttl(sessions, clock):
    session = sessions.save(PHONE, Screen.MAIN_MENU, {"user_id": "u1"})

    assert session.screen == Screen.MAIN_MENU
    assert session.context == {"user_id": "u1"}
    assert session.created_at == clock.now
    assert session.expires_at == session.last_accessed_at + timedelta(minutes=15)


def test_get_slides_expiry_window(sessions, clock):
    sessions.save(PHONE, Screen.MAIN_MENU)
    clock.advance(minutes=10)

    session = sessions.get(PHONE)

    assert session.last_accessed_at == clock.now
    assert session.expires_at == clock.now + timedelta(minutes=15)

    # Still alive 20 minutes after creation because it was read at minute 10.
    clock.advance(minutes=10)
    assert sessions.get(PHONE) is not None


def test_untouched_session_expires(sessions, clock):
    sessions.save(PHONE, Screen.MAIN_MENU)
    clock.advance(minutes=15, seconds=1)

    assert sessions.active_sessions() == []
    assert sessions.get(PHONE) is None
    # The expired read removed it; a later sweep has nothing left to do.
    assert sessions.sweep() == 0


def test_merge_context_is_shallow_and_extends_expiry(sessions, clock):
    sessions.save(PHONE, Screen.SHIP_SELECT, {"user_id": "u1", "selected_ship_id": "ship_a"})
    clock.advance(minutes=5)

    session = sessions.merge_context(PHONE, {"selected_ship_id": "ship_b", "selected_module": "propulsion"})

    assert session.context == {
        "user_id": "u1",
        "selected_ship_id": "ship_b",
        "selected_module": "propulsion",
    }
    assert session.expires_at == clock.now + timedelta(minutes=15)


def test_set_screen_updates_and_extends(sessions, clock):
    sessions.save(PHONE, Screen.MAIN_MENU)
    clock.advance(minutes=3)

    session = sessions.set_screen(PHONE, Screen.MODULE_SELECT)

    assert session.screen == Screen.MODULE_SELECT
    assert session.expires_at == clock.now + timedelta(minutes=15)


def test_operations_on_missing_session_return_none(sessions):
    assert sessions.get(PHONE) is None
    assert sessions.merge_context(PHONE, {"a": 1}) is None
    assert sessions.set_screen(PHONE, Screen.CONFIRMATION) is None
    assert sessions.delete(PHONE) is False


def test_delete(sessions):
    sessions.save(PHONE, Screen.MAIN_MENU)
    assert sessions.delete(PHONE) is True
    assert sessions.get(PHONE) is None


def test_save_keeps_original_creation_time(sessions, clock):
    first = sessions.save(PHONE, Screen.MAIN_MENU)
    clock.advance(minutes=2)

    second = sessions.save(PHONE, Screen.MAIN_MENU, {"user_id": "u1"})

    assert second.created_at == first.created_at
    assert second.last_accessed_at == clock.now
    assert sessions.session_age(PHONE) == timedelta(minutes=2)


def test_returned_sessions_are_snapshots(sessions):
    session = sessions.save(PHONE, Screen.MAIN_MENU, {"user_id": "u1"})
    session.context["user_id"] = "tampered"

    assert sessions.get(PHONE).context["user_id"] == "u1"


def test_sweep_evicts_only_expired_sessions(sessions, clock):
    sessions.save("+905550000001", Screen.MAIN_MENU)
    clock.advance(minutes=10)
    sessions.save("+905550000002", Screen.MAIN_MENU)
    clock.advance(minutes=6)

    removed = sessions.sweep()

    assert removed == 1
    assert [s.identity for s in sessions.active_sessions()] == ["+905550000002"]
    assert sessions.count() == 1


def test_time_until_expiration(sessions, clock):
    sessions.save(PHONE, Screen.MAIN_MENU)
    clock.advance(minutes=4)

    assert sessions.time_until_expiration(PHONE) == timedelta(minutes=11)
    assert sessions.time_until_expiration("+905550000009") is None


def test_has_valid_session_and_clear(sessions):
    sessions.save(PHONE, Screen.MAIN_MENU)
    assert sessions.has_valid_session(PHONE) is True

    sessions.clear()
    assert sessions.has_valid_session(PHONE) is False


def test_start_and_stop_manage_the_sweep_job():
    store = FlowSessionStore(sweep_interval=timedelta(minutes=5))
    try:
        store.start()
        store.start()
        assert store.running is True
        assert store._scheduler.get_job(FlowSessionStore.SWEEP_JOB_ID) is not None
    finally:
        store.stop()

    assert store.running is False


def test_concurrent_merges_are_not_lost(sessions):
    sessions.save(PHONE, Screen.MAIN_MENU)
    barrier = threading.Barrier(16)

    def worker(i):
        barrier.wait()
        for j in range(25):
            sessions.merge_context(PHONE, {f"key_{i}_{j}": j})

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(16)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(sessions.get(PHONE).context) == 16 * 25


@pytest.mark.parametrize("minutes, alive", [(14, True), (15, False), (16, False)])
def test_expiry_boundary(sessions, clock, minutes, alive):
    sessions.save(PHONE, Screen.MAIN_MENU)
    clock.advance(minutes=minutes)
    assert (sessions.get(PHONE) is not None) is alive
