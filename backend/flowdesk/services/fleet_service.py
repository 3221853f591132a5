# /flowdesk/services/fleet_service.py

import math
import threading
import uuid
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator, List, Optional

import structlog
from pydantic import BaseModel

from flowdesk.models.domain import HoursHistoryEntry, Machine, MachineModule, Ship, User, utc_now
from flowdesk.models.flow import ErrorCode
from flowdesk.services.security_service import EnhancedSecurityService

# This file holds the two collaborators the flow engine reads from: the fleet
# repository (ships, versioned machines and their hours history) and the user
# directory (who may open the flow and which ships they can see). Both are
# in-memory; a database-backed version only has to keep the same method set.

log = structlog.get_logger(__name__)


class UpdateOutcome(BaseModel):
    success: bool
    error_code: Optional[ErrorCode] = None
    machine: Optional[Machine] = None
    previous_hours: Optional[float] = None


class FleetRepository:
    def __init__(
        self,
        ships: Iterable[Ship] = (),
        machines: Iterable[Machine] = (),
        max_hours_increase: float = 500,
    ):
        self.max_hours_increase = max_hours_increase
        self._ships: Dict[str, Ship] = {s.id: s.model_copy() for s in ships}
        self._machines: Dict[str, Machine] = {m.id: m.model_copy() for m in machines}
        self._history: List[HoursHistoryEntry] = []
        self._locks: Dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()
        self._history_lock = threading.Lock()

    # --- Locking ---

    def _lock_for(self, machine_id: str) -> threading.RLock:
        with self._locks_guard:
            lock = self._locks.get(machine_id)
            if lock is None:
                lock = self._locks[machine_id] = threading.RLock()
            return lock

    @contextmanager
    def locked(self, machine_id: str) -> Iterator[None]:
        """Serializes read-check-write sequences on a single machine."""
        lock = self._lock_for(machine_id)
        with lock:
            yield

    # --- Ships ---

    def get_ship(self, ship_id: str) -> Optional[Ship]:
        ship = self._ships.get(ship_id)
        return ship.model_copy() if ship else None

    def get_ships(self, ship_ids: Iterable[str]) -> List[Ship]:
        return [self._ships[i].model_copy() for i in ship_ids if i in self._ships and self._ships[i].active]

    # --- Machines ---

    def get_machine(self, machine_id: str) -> Optional[Machine]:
        with self.locked(machine_id):
            machine = self._machines.get(machine_id)
            return machine.model_copy() if machine else None

    def list_machines(self, ship_id: str, module: Optional[str] = None) -> List[Machine]:
        """Machines on `ship_id`, optionally narrowed to one module."""
        return [
            self.get_machine(m.id)
            for m in list(self._machines.values())
            if m.ship_id == ship_id and (module is None or m.module.value == module)
        ]

    def modules_for_ship(self, ship_id: str) -> List[MachineModule]:
        modules: List[MachineModule] = []
        for machine in list(self._machines.values()):
            if machine.ship_id == ship_id and machine.module not in modules:
                modules.append(machine.module)
        return modules

    def update_machine_hours(
        self,
        machine_id: str,
        new_hours: float,
        updated_by: str,
        expected_version: int,
    ) -> UpdateOutcome:
        """
        Compare-and-swap update of a machine's working hours.

        The version comparison and the write happen under the machine's lock, so
        two writers presenting the same version cannot both succeed. The value
        must be a finite, non-negative number; monotonicity and the increase
        ceiling are enforced here as well.
        """
        with self.locked(machine_id):
            machine = self._machines.get(machine_id)
            if machine is None:
                return UpdateOutcome(success=False, error_code=ErrorCode.NOT_FOUND)

            if machine.version != expected_version:
                return UpdateOutcome(success=False, error_code=ErrorCode.VERSION_CONFLICT, machine=machine.model_copy())

            if isinstance(new_hours, bool) or not math.isfinite(new_hours) or new_hours < 0:
                return UpdateOutcome(success=False, error_code=ErrorCode.INVALID_VALUE, machine=machine.model_copy())

            if new_hours < machine.current_hours:
                return UpdateOutcome(success=False, error_code=ErrorCode.VALUE_DECREASED, machine=machine.model_copy())

            increase = new_hours - machine.current_hours
            if increase > self.max_hours_increase:
                return UpdateOutcome(success=False, error_code=ErrorCode.INCREASE_TOO_LARGE, machine=machine.model_copy())

            now = utc_now()
            previous_hours = machine.current_hours
            updated = machine.model_copy(update={
                "current_hours": new_hours,
                "last_updated": now,
                "updated_by": updated_by,
                "version": machine.version + 1,
            })
            if new_hours >= machine.next_maintenance_hours:
                updated.last_maintenance_hours = machine.next_maintenance_hours
                updated.next_maintenance_hours = machine.next_maintenance_hours + machine.maintenance_interval

            self._machines[machine_id] = updated
            self._record_history(HoursHistoryEntry(
                id=f"history_{uuid.uuid4().hex}",
                machine_id=machine_id,
                old_hours=previous_hours,
                new_hours=new_hours,
                difference=increase,
                updated_by=updated_by,
                updated_at=now,
            ))

        log.info(
            "Machine hours updated.",
            machine_id=machine_id,
            old_hours=previous_hours,
            new_hours=new_hours,
            version=updated.version,
        )
        return UpdateOutcome(success=True, machine=updated.model_copy(), previous_hours=previous_hours)

    # --- History ---

    def _record_history(self, entry: HoursHistoryEntry):
        with self._history_lock:
            self._history.append(entry)

    def machine_history(self, machine_id: str) -> List[HoursHistoryEntry]:
        with self._history_lock:
            return [h.model_copy() for h in self._history if h.machine_id == machine_id]

    def recent_history(self, limit: int = 10) -> List[HoursHistoryEntry]:
        with self._history_lock:
            return [h.model_copy() for h in reversed(self._history[-limit:])]


class UserDirectory:
    """Maps flow tokens to identities and identities to users and their ships."""

    def __init__(self, users: Iterable[User] = (), default_country_code: str = "90"):
        self.default_country_code = default_country_code
        self._users: Dict[str, User] = {u.phone: u.model_copy() for u in users}

    def resolve(self, flow_token: str) -> Optional[str]:
        """
        Derives the caller's identity from the flow token.

        The token is either "flow_<phone>" or a bare phone number. This mapping
        is reversible and trusts the client; a production deployment should bind
        flow tokens to server-issued, signed credentials instead.
        """
        phone = EnhancedSecurityService.phone_from_flow_token(flow_token, self.default_country_code)
        return phone or None

    def get_user(self, identity: str) -> Optional[User]:
        user = self._users.get(identity)
        return user.model_copy() if user else None

    def collections_for(self, identity: str) -> List[str]:
        user = self._users.get(identity)
        return list(user.ship_ids) if user else []
