# backend/tests/unit/test_fleet_service.py
import threading

import pytest

from flowdesk.models.flow import ErrorCode
from flowdesk.services.fleet_service import UserDirectory


class TestUpdateMachineHours:

    def test_successful_update_bumps_version(self, repository):
        outcome = repository.update_machine_hours("m_ok", 150, updated_by="Captain Test", expected_version=1)

        assert outcome.success is True
        assert outcome.previous_hours == 100
        assert outcome.machine.current_hours == 150
        assert outcome.machine.version == 2
        assert outcome.machine.updated_by == "Captain Test"
        assert repository.get_machine("m_ok").version == 2

    def test_history_is_recorded(self, repository):
        repository.update_machine_hours("m_ok", 150, updated_by="Captain Test", expected_version=1)
        repository.update_machine_hours("m_ok", 175, updated_by="Captain Test", expected_version=2)

        history = repository.machine_history("m_ok")
        assert [(h.old_hours, h.new_hours, h.difference) for h in history] == [(100, 150, 50), (150, 175, 25)]
        assert all(h.source == "whatsapp_flow" for h in history)
        assert repository.recent_history(limit=1)[0].new_hours == 175

    def test_crossing_threshold_advances_it(self, repository):
        # m_warning: next maintenance at 140, interval 200
        outcome = repository.update_machine_hours("m_warning", 150, updated_by="x", expected_version=1)

        assert outcome.machine.last_maintenance_hours == 140
        assert outcome.machine.next_maintenance_hours == 340

    def test_threshold_unchanged_below_it(self, repository):
        outcome = repository.update_machine_hours("m_ok", 499, updated_by="x", expected_version=1)
        assert outcome.machine.next_maintenance_hours == 500

    @pytest.mark.parametrize("new_hours, version, code", [
        (150, 2, ErrorCode.VERSION_CONFLICT),
        (99, 1, ErrorCode.VALUE_DECREASED),
        (601, 1, ErrorCode.INCREASE_TOO_LARGE),
        (float("nan"), 1, ErrorCode.INVALID_VALUE),
        (float("inf"), 1, ErrorCode.INVALID_VALUE),
        (-1, 1, ErrorCode.INVALID_VALUE),
    ])
    def test_rejections_leave_machine_untouched(self, repository, new_hours, version, code):
        outcome = repository.update_machine_hours("m_ok", new_hours, updated_by="x", expected_version=version)

        assert outcome.success is False
        assert outcome.error_code == code
        machine = repository.get_machine("m_ok")
        assert (machine.current_hours, machine.version) == (100, 1)
        assert repository.machine_history("m_ok") == []

    def test_unknown_machine(self, repository):
        outcome = repository.update_machine_hours("missing", 1, updated_by="x", expected_version=1)
        assert outcome.error_code == ErrorCode.NOT_FOUND

    def test_concurrent_writers_with_same_version(self, repository):
        """Exactly one of N writers presenting version 1 wins; no update is lost."""
        writers = 8
        barrier = threading.Barrier(writers)
        outcomes = []
        outcomes_lock = threading.Lock()

        def write(i):
            barrier.wait()
            outcome = repository.update_machine_hours("m_ok", 100 + i + 1, updated_by=f"writer-{i}", expected_version=1)
            with outcomes_lock:
                outcomes.append(outcome)

        threads = [threading.Thread(target=write, args=(i,)) for i in range(writers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        winners = [o for o in outcomes if o.success]
        losers = [o for o in outcomes if not o.success]
        assert len(winners) == 1
        assert all(o.error_code == ErrorCode.VERSION_CONFLICT for o in losers)

        machine = repository.get_machine("m_ok")
        assert machine.version == 2
        assert machine.current_hours == winners[0].machine.current_hours
        assert len(repository.machine_history("m_ok")) == 1


class TestFleetQueries:

    def test_modules_keep_first_seen_order(self, repository):
        assert [m.value for m in repository.modules_for_ship("ship_a")] == ["propulsion", "electrical"]

    def test_list_machines_by_module(self, repository):
        ids = [m.id for m in repository.list_machines("ship_a", "propulsion")]
        assert ids == ["m_overdue", "m_warning", "m_ok"]
        assert repository.list_machines("ship_a", "hvac") == []

    def test_returned_machines_are_copies(self, repository):
        repository.get_machine("m_ok").current_hours = 9999
        assert repository.get_machine("m_ok").current_hours == 100


class TestUserDirectory:

    @pytest.mark.parametrize("token, expected", [
        ("flow_+905551234567", "+905551234567"),
        ("+90 555 123 45 67", "+905551234567"),
        ("05551234567", "+905551234567"),
        ("flow_", None),
        ("", None),
        ("not-a-phone", None),
    ])
    def test_resolve(self, directory, token, expected):
        assert directory.resolve(token) == expected

    def test_collections_for(self, directory):
        assert directory.collections_for("+905551234567") == ["ship_a", "ship_b"]
        assert directory.collections_for("+905550000000") == []

    def test_default_country_code_is_configurable(self):
        assert UserDirectory(default_country_code="44").resolve("07911123456") == "+447911123456"
