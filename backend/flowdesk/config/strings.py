# /flowdesk/config/strings.py

# This file contains all user-facing strings shown inside the WhatsApp Flow,
# making them easy to manage and localize without changing application logic.

# --- Flow errors ---
INVALID_FLOW_TOKEN = "Invalid flow token."
INVALID_ACTION = "Invalid action: {action}. Must be one of: {valid}."
INVALID_SCREEN = "Invalid screen: {screen}."
INVALID_REQUEST = "The request could not be understood. Please try again."
SCREEN_REQUIRED = "Screen is required for data_exchange."
INVALID_SELECTION = "Invalid selection. Please go back and try again."
INTERNAL_ERROR = "Something went wrong on our side. Please try again later."

USER_NOT_FOUND = "User not found. Please contact support."
SHIP_NOT_FOUND = "Ship not found."
MACHINE_NOT_FOUND = "Machine not found."
SHIP_ACCESS_DENIED = "You do not have access to this ship."
PERMISSION_DENIED = "You do not have permission to update working hours."
NO_MACHINES_IN_MODULE = "No machines found for this module."

SELECT_SHIP = "Please select a ship."
SELECT_MODULE = "Please select a module."
SELECT_MACHINE = "Please select a machine."
ENTER_HOURS = "Please enter the new working hours."

# --- Working hours validation ---
VERSION_CONFLICT = "Machine data was updated by another user. Please refresh and try again."
HOURS_MISMATCH = "Current hours mismatch. Expected {expected}, but the machine has {actual}."
INVALID_HOURS = "Invalid hours value. Must be a non-negative number."
HOURS_DECREASED = (
    "New hours ({new_hours}) cannot be less than current hours ({current_hours}). "
    "Working hours can only increase."
)
INCREASE_TOO_LARGE = (
    "Hours increase of {increase} is too large. Maximum allowed increase is "
    "{max_increase} hours. Please check the value."
)

# --- Maintenance status ---
MAINTENANCE_OVERDUE = "⚠️ Maintenance overdue by {hours} hours!"
MAINTENANCE_DUE_SOON = "⚡ Maintenance due soon: {hours} hours remaining"
MAINTENANCE_OK = "✅ {hours} hours until next maintenance"

# --- Screens ---
UPDATE_COMPLETE = "Working hours updated successfully! ✅"
MACHINE_DESCRIPTION = "{status} | {hours} hours"
SHIP_DESCRIPTION = "{flag} | IMO: {imo}"

MODULE_LABELS = {
    "propulsion": "🚢 Propulsion",
    "electrical": "⚡ Electrical",
    "hydraulic": "💧 Hydraulic",
    "cargo": "📦 Cargo",
    "ballast": "⚓ Ballast",
    "hvac": "❄️ HVAC",
}
