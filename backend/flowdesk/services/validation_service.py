# /flowdesk/services/validation_service.py

"""
Business-rule and optimistic-concurrency checks for the working-hours flow.

Every check returns a ValidationResult instead of raising, so the flow engine
can turn a failure into an inline error on the same screen. None of these
functions mutate the fleet; the write itself lives in
FleetRepository.update_machine_hours.
"""

import math
from typing import Any, Optional, TypedDict

import structlog

from flowdesk.config import strings
from flowdesk.models.domain import Machine, MaintenanceStatus
from flowdesk.models.flow import ErrorCode, FlowAction, Screen
from flowdesk.services.fleet_service import FleetRepository, UserDirectory

log = structlog.get_logger(__name__)

WRITE_WORKING_HOURS = "write_working_hours"


class ValidationResult(TypedDict):
    """Result of a validation check."""
    is_valid: bool
    error_code: Optional[ErrorCode]
    message: Optional[str]


def _ok() -> ValidationResult:
    return {"is_valid": True, "error_code": None, "message": None}


def _fail(code: ErrorCode, message: str) -> ValidationResult:
    return {"is_valid": False, "error_code": code, "message": message}


def format_hours(value: float) -> str:
    """Renders 12450.0 as "12450" and 12450.5 as "12450.5"."""
    return str(int(value)) if float(value).is_integer() else str(value)


def parse_hours(value: Any) -> Optional[float]:
    """Returns a finite float for numeric input, None for anything else."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


class ValidationService:
    def __init__(
        self,
        repository: FleetRepository,
        directory: UserDirectory,
        max_hours_increase: float = 500,
        warning_threshold: float = 50,
    ):
        self.repository = repository
        self.directory = directory
        self.max_hours_increase = max_hours_increase
        self.warning_threshold = warning_threshold

    # --- Protocol ---

    @staticmethod
    def validate_action(action: Optional[str]) -> ValidationResult:
        valid_actions = [a.value for a in FlowAction]
        if action not in valid_actions:
            return _fail(
                ErrorCode.INVALID_ACTION,
                strings.INVALID_ACTION.format(action=action, valid=", ".join(valid_actions)),
            )
        return _ok()

    @staticmethod
    def validate_screen(screen: Optional[str]) -> ValidationResult:
        if screen not in {s.value for s in Screen}:
            return _fail(ErrorCode.INVALID_SCREEN, strings.INVALID_SCREEN.format(screen=screen))
        return _ok()

    # --- Access control ---

    def check_ship_access(self, identity: str, ship_id: str) -> ValidationResult:
        user = self.directory.get_user(identity)
        if user is None:
            return _fail(ErrorCode.NOT_FOUND, strings.USER_NOT_FOUND)

        if self.repository.get_ship(ship_id) is None:
            return _fail(ErrorCode.NOT_FOUND, strings.SHIP_NOT_FOUND)

        if ship_id not in user.ship_ids:
            return _fail(ErrorCode.ACCESS_DENIED, strings.SHIP_ACCESS_DENIED)

        return _ok()

    def check_machine_access(self, identity: str, machine_id: str) -> ValidationResult:
        machine = self.repository.get_machine(machine_id)
        if machine is None:
            return _fail(ErrorCode.NOT_FOUND, strings.MACHINE_NOT_FOUND)
        return self.check_ship_access(identity, machine.ship_id)

    def check_access(self, identity: str, resource_or_collection_id: str) -> ValidationResult:
        """Accepts either a machine id (checked through its ship) or a ship id."""
        if self.repository.get_machine(resource_or_collection_id) is not None:
            return self.check_machine_access(identity, resource_or_collection_id)
        if self.repository.get_ship(resource_or_collection_id) is not None:
            return self.check_ship_access(identity, resource_or_collection_id)
        return _fail(ErrorCode.NOT_FOUND, strings.MACHINE_NOT_FOUND)

    def check_permission(self, identity: str, permission: str) -> ValidationResult:
        user = self.directory.get_user(identity)
        if user is None:
            return _fail(ErrorCode.NOT_FOUND, strings.USER_NOT_FOUND)
        if permission not in user.permissions:
            return _fail(ErrorCode.PERMISSION_DENIED, strings.PERMISSION_DENIED)
        return _ok()

    # --- Working hours ---

    def check_update(
        self,
        machine_id: str,
        new_value: Any,
        expected_version: Optional[int],
        expected_current_hours: Optional[float] = None,
    ) -> ValidationResult:
        """
        Validate a working-hours update without applying it.

        Args:
            machine_id: The machine being updated
            new_value: The proposed counter value, as a number or numeric string
            expected_version: The version the caller last saw
            expected_current_hours: The hours the caller last saw, if known

        Returns:
            ValidationResult with is_valid=True only if the update may be written
        """
        machine = self.repository.get_machine(machine_id)
        if machine is None:
            return _fail(ErrorCode.NOT_FOUND, strings.MACHINE_NOT_FOUND)

        if machine.version != expected_version:
            return _fail(ErrorCode.VERSION_CONFLICT, strings.VERSION_CONFLICT)

        if expected_current_hours is not None and machine.current_hours != expected_current_hours:
            return _fail(
                ErrorCode.HOURS_MISMATCH,
                strings.HOURS_MISMATCH.format(
                    expected=format_hours(expected_current_hours),
                    actual=format_hours(machine.current_hours),
                ),
            )

        new_hours = parse_hours(new_value)
        if new_hours is None or new_hours < 0:
            return _fail(ErrorCode.INVALID_VALUE, strings.INVALID_HOURS)

        if new_hours < machine.current_hours:
            return _fail(
                ErrorCode.VALUE_DECREASED,
                strings.HOURS_DECREASED.format(
                    new_hours=format_hours(new_hours),
                    current_hours=format_hours(machine.current_hours),
                ),
            )

        increase = new_hours - machine.current_hours
        if increase > self.max_hours_increase:
            return _fail(
                ErrorCode.INCREASE_TOO_LARGE,
                strings.INCREASE_TOO_LARGE.format(
                    increase=format_hours(increase),
                    max_increase=format_hours(self.max_hours_increase),
                ),
            )

        if 0 < increase < 1:
            log.warning("Small hours increase.", machine_code=machine.code, increase=increase)

        return _ok()

    # --- Maintenance status ---

    def maintenance_status(self, machine: Machine) -> MaintenanceStatus:
        remaining = machine.next_maintenance_hours - machine.current_hours

        if remaining < 0:
            return MaintenanceStatus(
                status="overdue",
                message=strings.MAINTENANCE_OVERDUE.format(hours=format_hours(abs(remaining))),
                hours_until_maintenance=remaining,
            )

        if remaining <= self.warning_threshold:
            return MaintenanceStatus(
                status="warning",
                message=strings.MAINTENANCE_DUE_SOON.format(hours=format_hours(remaining)),
                hours_until_maintenance=remaining,
            )

        return MaintenanceStatus(
            status="ok",
            message=strings.MAINTENANCE_OK.format(hours=format_hours(remaining)),
            hours_until_maintenance=remaining,
        )

    def screen_status(self, machine: Machine) -> str:
        return self.maintenance_status(machine).status
