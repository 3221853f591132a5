# /flowdesk/workflows/engine.py

"""
Flow state machine for the working-hours WhatsApp Flow.

The engine receives an already-decrypted FlowRequest and returns the
FlowResponse to encrypt. It:
- Resolves the caller's identity from the flow token once per request
- Validates the action and screen name against the known vocabulary
- Restarts at MAIN_MENU (without an error) when the session has expired
- Parses each screen's input into that screen's own model
- Runs access, permission and update checks before anything is written
- Advances the stored screen only when a screen succeeds

Failures at a screen come back as the same screen with an error message and a
machine-readable code, and leave the session untouched.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, NamedTuple, Optional

import structlog
from pydantic import ValidationError

from flowdesk.config import strings
from flowdesk.models.flow import (
    ErrorCode,
    FlowAction,
    FlowRequest,
    FlowResponse,
    FlowSession,
    FlowSessionContext,
    Screen,
)
from flowdesk.services.fleet_service import FleetRepository, UserDirectory
from flowdesk.services.session_service import FlowSessionStore
from flowdesk.services.validation_service import (
    WRITE_WORKING_HOURS,
    ValidationResult,
    ValidationService,
    parse_hours,
)
from flowdesk.utils.metrics import flow_requests_counter, hours_updates_counter
from flowdesk.workflows.definitions import SCREENS

log = structlog.get_logger(__name__)

# Messages for failures reported by the repository's compare-and-swap itself.
UPDATE_ERROR_MESSAGES = {
    ErrorCode.NOT_FOUND: strings.MACHINE_NOT_FOUND,
    ErrorCode.VERSION_CONFLICT: strings.VERSION_CONFLICT,
    ErrorCode.VALUE_DECREASED: strings.INVALID_HOURS,
    ErrorCode.INCREASE_TOO_LARGE: strings.INVALID_HOURS,
}

MISSING_INPUT_MESSAGES = {
    Screen.SHIP_SELECT: strings.SELECT_SHIP,
    Screen.MODULE_SELECT: strings.SELECT_MODULE,
    Screen.MACHINE_LIST: strings.SELECT_MACHINE,
    Screen.UPDATE_HOURS: strings.ENTER_HOURS,
}


class ScreenError(Exception):
    """An inline, recoverable failure on the current screen."""

    def __init__(self, error_code: ErrorCode, message: str):
        super().__init__(message)
        self.error_code = error_code
        self.message = message

    @classmethod
    def from_result(cls, result: ValidationResult) -> "ScreenError":
        return cls(result["error_code"], result["message"])


class Transition(NamedTuple):
    """What a successful screen hands back: response data plus context to store."""
    data: Dict[str, Any]
    context_updates: Dict[str, Any]


ScreenHandler = Callable[[str, FlowSessionContext, Any], Transition]


class FlowEngine:
    def __init__(
        self,
        sessions: FlowSessionStore,
        validator: ValidationService,
        repository: FleetRepository,
        directory: UserDirectory,
        version: str = "1.0",
    ):
        self.sessions = sessions
        self.validator = validator
        self.repository = repository
        self.directory = directory
        self.version = version
        self._handlers: Dict[Screen, ScreenHandler] = {
            Screen.SHIP_SELECT: self._handle_ship_select,
            Screen.MODULE_SELECT: self._handle_module_select,
            Screen.MACHINE_LIST: self._handle_machine_list,
            Screen.UPDATE_HOURS: self._handle_update_hours,
        }

    # --- Responses ---

    def _response(self, screen: Screen, data: Dict[str, Any]) -> FlowResponse:
        return FlowResponse(version=self.version, screen=screen.value, data=data)

    def _error(self, screen: Optional[str], error_code: ErrorCode, message: str) -> FlowResponse:
        return FlowResponse(
            version=self.version,
            screen=screen,
            data={"error_code": error_code.value},
            error_message=message,
        )

    # --- Entry point ---

    def dispatch(self, request: FlowRequest) -> FlowResponse:
        log.info("Flow request received.", action=request.action, screen=request.screen)

        response = self._dispatch(request)

        status = "error" if response.error_message else "success"
        flow_requests_counter.labels(
            action=request.action if request.action in {a.value for a in FlowAction} else "unknown",
            screen=response.screen or "none",
            status=status,
        ).inc()
        if response.error_message:
            log.info("Flow request rejected.", screen=response.screen, error_code=(response.data or {}).get("error_code"))
        return response

    def _dispatch(self, request: FlowRequest) -> FlowResponse:
        action_check = self.validator.validate_action(request.action)
        if not action_check["is_valid"]:
            return self._error(request.screen, action_check["error_code"], action_check["message"])

        identity = self.directory.resolve(request.flow_token)
        if identity is None:
            return self._error(request.screen, ErrorCode.INVALID_TOKEN, strings.INVALID_FLOW_TOKEN)

        if request.action == FlowAction.INIT.value:
            return self._start(identity)

        if not request.screen:
            return self._error(None, ErrorCode.INVALID_SCREEN, strings.SCREEN_REQUIRED)

        screen_check = self.validator.validate_screen(request.screen)
        if not screen_check["is_valid"]:
            return self._error(request.screen, screen_check["error_code"], screen_check["message"])
        screen = Screen(request.screen)

        session = self.sessions.get(identity)
        if session is None:
            log.info("Flow session expired; restarting at main menu.", screen=screen.value)
            response = self._start(identity)
            if response.error_message is None:
                response.data["session_reset"] = True
            return response

        if screen == Screen.MAIN_MENU:
            return self._start(identity)
        if screen == Screen.CONFIRMATION:
            return self._complete(identity)

        try:
            return self._advance(identity, screen, session, request.data)
        except ScreenError as e:
            return self._error(screen.value, e.error_code, e.message)

    def _advance(self, identity: str, screen: Screen, session: FlowSession, data: Dict[str, Any]) -> FlowResponse:
        definition = SCREENS[screen]

        try:
            inputs = definition["input_model"].model_validate(data)
        except ValidationError:
            raise ScreenError(ErrorCode.MISSING_INPUT, MISSING_INPUT_MESSAGES[screen]) from None

        context = FlowSessionContext.model_validate(session.context)
        missing = [key for key in definition["required_context"] if getattr(context, key) is None]
        if missing:
            raise ScreenError(ErrorCode.MISSING_INPUT, strings.INVALID_SELECTION)

        transition = self._handlers[screen](identity, context, inputs)

        next_screen = definition["next_screen"]
        self.sessions.merge_context(identity, transition.context_updates)
        self.sessions.set_screen(identity, next_screen)
        return self._response(next_screen, transition.data)

    # --- Screens ---

    def _start(self, identity: str) -> FlowResponse:
        user = self.directory.get_user(identity)
        if user is None:
            return self._error(None, ErrorCode.NOT_FOUND, strings.USER_NOT_FOUND)

        ships = self.repository.get_ships(self.directory.collections_for(identity))
        self.sessions.save(identity, Screen.MAIN_MENU, {"user_id": user.user_id, "user_name": user.name})

        return self._response(Screen.MAIN_MENU, {
            "user_name": user.name,
            "ships": [
                {
                    "id": ship.id,
                    "title": ship.name,
                    "description": strings.SHIP_DESCRIPTION.format(flag=ship.flag, imo=ship.imo),
                }
                for ship in ships
            ],
        })

    def _handle_ship_select(self, identity, context, inputs) -> Transition:
        ship_id = inputs.selected_ship_id

        access = self.validator.check_ship_access(identity, ship_id)
        if not access["is_valid"]:
            raise ScreenError.from_result(access)

        ship = self.repository.get_ship(ship_id)
        modules = self.repository.modules_for_ship(ship_id)

        return Transition(
            data={
                "ship_name": ship.name,
                "modules": [
                    {"id": module.value, "title": strings.MODULE_LABELS.get(module.value, module.value)}
                    for module in modules
                ],
            },
            context_updates={"selected_ship_id": ship.id, "selected_ship_name": ship.name},
        )

    def _handle_module_select(self, identity, context, inputs) -> Transition:
        access = self.validator.check_ship_access(identity, context.selected_ship_id)
        if not access["is_valid"]:
            raise ScreenError.from_result(access)

        machines = self.repository.list_machines(context.selected_ship_id, inputs.selected_module)
        if not machines:
            raise ScreenError(ErrorCode.NOT_FOUND, strings.NO_MACHINES_IN_MODULE)

        listed = []
        for machine in machines:
            status = self.validator.maintenance_status(machine)
            listed.append({
                "id": machine.id,
                "title": f"{machine.code} - {machine.name}",
                "description": strings.MACHINE_DESCRIPTION.format(
                    status=status.message, hours=machine.current_hours
                ),
                "code": machine.code,
                "name": machine.name,
                "current_hours": machine.current_hours,
                "next_maintenance": machine.next_maintenance_hours,
                "status": status.status,
                "maintenance_status": status.message,
                "last_updated": machine.last_updated.isoformat(),
                "updated_by": machine.updated_by,
                "version": machine.version,
            })

        return Transition(
            data={"ship_name": context.selected_ship_name, "machines": listed},
            context_updates={"selected_module": inputs.selected_module},
        )

    def _handle_machine_list(self, identity, context, inputs) -> Transition:
        machine_id = inputs.selected_machine_id

        access = self.validator.check_machine_access(identity, machine_id)
        if not access["is_valid"]:
            raise ScreenError.from_result(access)

        machine = self.repository.get_machine(machine_id)

        return Transition(
            data={
                "machine_id": machine.id,
                "machine_code": machine.code,
                "machine_name": machine.name,
                "current_hours": machine.current_hours,
                "next_maintenance": machine.next_maintenance_hours,
                "version": machine.version,
            },
            context_updates={
                "selected_machine_id": machine.id,
                "selected_machine_code": machine.code,
                "selected_machine_version": machine.version,
                "selected_machine_current_hours": machine.current_hours,
            },
        )

    def _handle_update_hours(self, identity, context, inputs) -> Transition:
        machine_id = context.selected_machine_id

        permission = self.validator.check_permission(identity, WRITE_WORKING_HOURS)
        if not permission["is_valid"]:
            raise ScreenError.from_result(permission)

        access = self.validator.check_machine_access(identity, machine_id)
        if not access["is_valid"]:
            raise ScreenError.from_result(access)

        actor = context.user_name or identity

        # Check and write under the machine's lock so no other writer slips in between.
        with self.repository.locked(machine_id):
            check = self.validator.check_update(
                machine_id,
                inputs.new_hours,
                expected_version=context.selected_machine_version,
                expected_current_hours=context.selected_machine_current_hours,
            )
            if not check["is_valid"]:
                hours_updates_counter.labels(status=check["error_code"].value).inc()
                raise ScreenError.from_result(check)

            outcome = self.repository.update_machine_hours(
                machine_id,
                parse_hours(inputs.new_hours),
                updated_by=actor,
                expected_version=context.selected_machine_version,
            )

        if not outcome.success:
            hours_updates_counter.labels(status=outcome.error_code.value).inc()
            raise ScreenError(outcome.error_code, UPDATE_ERROR_MESSAGES.get(outcome.error_code, strings.INVALID_HOURS))

        hours_updates_counter.labels(status="success").inc()
        machine = outcome.machine

        return Transition(
            data={
                "success": True,
                "machine_code": machine.code,
                "machine_name": machine.name,
                "old_hours": outcome.previous_hours,
                "new_hours": machine.current_hours,
                "next_maintenance": machine.next_maintenance_hours,
                "version": machine.version,
                "updated_at": datetime.now(timezone.utc).isoformat(),
            },
            context_updates={
                "update_success": True,
                "updated_hours": machine.current_hours,
                "new_version": machine.version,
            },
        )

    def _complete(self, identity: str) -> FlowResponse:
        self.sessions.delete(identity)
        return self._response(Screen.CONFIRMATION, {"message": strings.UPDATE_COMPLETE})
