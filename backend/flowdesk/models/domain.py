# /flowdesk/models/domain.py

from enum import Enum
from typing import List, Literal
from datetime import datetime, timezone
from pydantic import BaseModel, Field

# This file defines the fleet models the flow operates on: ships (the
# collections a user may access), machines (the versioned resources whose
# working hours are reported) and users (the identity directory entries).


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MachineModule(str, Enum):
    PROPULSION = "propulsion"
    ELECTRICAL = "electrical"
    HYDRAULIC = "hydraulic"
    CARGO = "cargo"
    BALLAST = "ballast"
    HVAC = "hvac"


class Ship(BaseModel):
    id: str
    name: str
    imo: str
    flag: str
    active: bool = True


class Machine(BaseModel):
    """
    A machine whose running-hours counter is tracked.

    `version` is the optimistic-lock counter: every accepted write presents the
    version it last saw and bumps it by one. `current_hours` never decreases.
    """
    id: str
    code: str
    name: str
    type: str
    ship_id: str
    module: MachineModule
    current_hours: float
    last_maintenance_hours: float
    next_maintenance_hours: float
    maintenance_interval: float
    last_updated: datetime = Field(default_factory=utc_now)
    updated_by: str = "system"
    version: int = 1


class User(BaseModel):
    user_id: str
    name: str
    phone: str
    role: str
    ship_ids: List[str] = Field(default_factory=list)
    permissions: List[str] = Field(default_factory=list)


class HoursHistoryEntry(BaseModel):
    """Audit record written for every accepted working-hours update."""
    id: str
    machine_id: str
    old_hours: float
    new_hours: float
    difference: float
    updated_by: str
    updated_at: datetime = Field(default_factory=utc_now)
    source: str = "whatsapp_flow"


class MaintenanceStatus(BaseModel):
    status: Literal["ok", "warning", "overdue"]
    message: str
    hours_until_maintenance: float
