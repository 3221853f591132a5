# /flowdesk/workflows/definitions.py

"""
Screen definitions for the working-hours flow.

This module defines the screen sequence as pure data (no logic).
Each screen specifies:
- input_model: The pydantic model the submitted `data` must satisfy (or None)
- required_context: Session keys that earlier screens must have stored
- next_screen: The screen the client is sent to on success (None for terminal)
"""

from typing import Dict, Any

from flowdesk.models.flow import (
    Screen,
    ShipSelectInput,
    ModuleSelectInput,
    MachineListInput,
    UpdateHoursInput,
)

# Type definition for a screen
ScreenDefinition = Dict[str, Any]

SCREEN_ORDER = [
    Screen.MAIN_MENU,
    Screen.SHIP_SELECT,
    Screen.MODULE_SELECT,
    Screen.MACHINE_LIST,
    Screen.UPDATE_HOURS,
    Screen.CONFIRMATION,
]

SCREENS: Dict[Screen, ScreenDefinition] = {
    Screen.MAIN_MENU: {
        "input_model": None,
        "required_context": [],
        "next_screen": Screen.MAIN_MENU,
    },
    Screen.SHIP_SELECT: {
        "input_model": ShipSelectInput,
        "required_context": [],
        "next_screen": Screen.MODULE_SELECT,
    },
    Screen.MODULE_SELECT: {
        "input_model": ModuleSelectInput,
        "required_context": ["selected_ship_id"],
        "next_screen": Screen.MACHINE_LIST,
    },
    Screen.MACHINE_LIST: {
        "input_model": MachineListInput,
        "required_context": [],
        "next_screen": Screen.UPDATE_HOURS,
    },
    Screen.UPDATE_HOURS: {
        "input_model": UpdateHoursInput,
        "required_context": ["selected_machine_id", "selected_machine_version"],
        "next_screen": Screen.CONFIRMATION,
    },
    Screen.CONFIRMATION: {
        "input_model": None,
        "required_context": [],
        "next_screen": None,  # Terminal screen
    },
}
