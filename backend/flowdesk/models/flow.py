# /flowdesk/models/flow.py

from enum import Enum
from typing import Optional, Dict, Any
from datetime import datetime
from pydantic import BaseModel, Field, field_validator

# This file contains the WhatsApp Flow wire models (encrypted and decrypted
# envelopes), the screen/action vocabulary, the per-screen input models and
# the in-memory session model.


class FlowAction(str, Enum):
    INIT = "INIT"
    DATA_EXCHANGE = "data_exchange"


class Screen(str, Enum):
    MAIN_MENU = "MAIN_MENU"
    SHIP_SELECT = "SHIP_SELECT"
    MODULE_SELECT = "MODULE_SELECT"
    MACHINE_LIST = "MACHINE_LIST"
    UPDATE_HOURS = "UPDATE_HOURS"
    CONFIRMATION = "CONFIRMATION"


class ErrorCode(str, Enum):
    """Stable machine-readable codes paired with every user-facing error."""
    INVALID_TOKEN = "INVALID_TOKEN"
    INVALID_ACTION = "INVALID_ACTION"
    INVALID_SCREEN = "INVALID_SCREEN"
    INVALID_REQUEST = "INVALID_REQUEST"
    MISSING_INPUT = "MISSING_INPUT"
    NOT_FOUND = "NOT_FOUND"
    ACCESS_DENIED = "ACCESS_DENIED"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    VERSION_CONFLICT = "VERSION_CONFLICT"
    HOURS_MISMATCH = "HOURS_MISMATCH"
    INVALID_VALUE = "INVALID_VALUE"
    VALUE_DECREASED = "VALUE_DECREASED"
    INCREASE_TOO_LARGE = "INCREASE_TOO_LARGE"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# --- Wire envelopes ---

class EncryptedFlowRequest(BaseModel):
    """The body WhatsApp posts to the flow endpoint. All three fields are base64."""
    encrypted_flow_data: str
    encrypted_aes_key: str
    initial_vector: str


class FlowRequest(BaseModel):
    action: str
    flow_token: str = ""
    version: Optional[str] = None
    screen: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("data", mode="before")
    @classmethod
    def none_data_is_empty(cls, v):
        return {} if v is None else v


class FlowResponse(BaseModel):
    version: Optional[str] = None
    screen: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


# --- Per-screen inputs ---
# Each screen only accepts the fields it needs; anything else in `data` is ignored.

class ShipSelectInput(BaseModel):
    selected_ship_id: str = Field(min_length=1)


class ModuleSelectInput(BaseModel):
    selected_module: str = Field(min_length=1)


class MachineListInput(BaseModel):
    selected_machine_id: str = Field(min_length=1)


class UpdateHoursInput(BaseModel):
    # Kept raw; ValidationService.check_update parses it and rejects booleans.
    new_hours: Any


class FlowSessionContext(BaseModel):
    """Typed view over the values a session accumulates across screens."""
    user_id: Optional[str] = None
    user_name: Optional[str] = None
    selected_ship_id: Optional[str] = None
    selected_ship_name: Optional[str] = None
    selected_module: Optional[str] = None
    selected_machine_id: Optional[str] = None
    selected_machine_code: Optional[str] = None
    selected_machine_version: Optional[int] = None
    selected_machine_current_hours: Optional[float] = None
    update_success: Optional[bool] = None
    updated_hours: Optional[float] = None
    new_version: Optional[int] = None


# --- Session ---

class FlowSession(BaseModel):
    identity: str
    screen: Screen
    context: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    last_accessed_at: datetime
    expires_at: datetime
