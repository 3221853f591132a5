# /flowdesk/data/fixtures.py

# Demo fleet used when no external repository is wired in: three ships, a
# handful of machines spread over their modules, and the crew allowed to
# report hours through the flow.

from datetime import datetime, timezone

from flowdesk.models.domain import Machine, MachineModule, Ship, User

_SEEDED_AT = datetime(2025, 11, 15, 10, 0, tzinfo=timezone.utc)

_CREW_PERMISSIONS = ["read_working_hours", "write_working_hours", "view_maintenance"]

DEMO_SHIPS = [
    Ship(id="ship_001", name="MV ATLAS", imo="9876543", flag="Turkey"),
    Ship(id="ship_002", name="MV NEPTUNE", imo="9876544", flag="Turkey"),
    Ship(id="ship_003", name="MV POSEIDON", imo="9876545", flag="Turkey"),
]


def _machine(id, code, name, type, ship_id, module, current, last, interval, updated_by):
    return Machine(
        id=id,
        code=code,
        name=name,
        type=type,
        ship_id=ship_id,
        module=module,
        current_hours=current,
        last_maintenance_hours=last,
        next_maintenance_hours=last + interval,
        maintenance_interval=interval,
        last_updated=_SEEDED_AT,
        updated_by=updated_by,
    )


DEMO_MACHINES = [
    _machine("machine_001", "ME-01", "Main Engine", "main_engine", "ship_001", MachineModule.PROPULSION, 12450, 12000, 500, "Captain Ahmet"),
    _machine("machine_002", "GE-01", "Generator 1", "generator", "ship_001", MachineModule.ELECTRICAL, 8320, 8000, 1000, "Chief Engineer Ali"),
    _machine("machine_003", "GE-02", "Generator 2", "generator", "ship_001", MachineModule.ELECTRICAL, 7890, 7000, 1000, "Chief Engineer Ali"),
    _machine("machine_004", "PP-01", "Hydraulic Pump 1", "pump", "ship_001", MachineModule.HYDRAULIC, 5670, 5500, 500, "Captain Ahmet"),
    _machine("machine_005", "CP-01", "Cargo Pump", "cargo_pump", "ship_001", MachineModule.CARGO, 3210, 3000, 500, "Chief Engineer Ali"),
    _machine("machine_006", "ME-01", "Main Engine", "main_engine", "ship_002", MachineModule.PROPULSION, 15230, 15000, 500, "Captain Mehmet"),
    _machine("machine_007", "GE-01", "Generator 1", "generator", "ship_002", MachineModule.ELECTRICAL, 9540, 9000, 1000, "Captain Mehmet"),
    _machine("machine_008", "BP-01", "Ballast Pump", "ballast_pump", "ship_002", MachineModule.BALLAST, 4320, 4000, 500, "Captain Mehmet"),
    _machine("machine_009", "ME-01", "Main Engine", "main_engine", "ship_003", MachineModule.PROPULSION, 18750, 18500, 500, "Chief Engineer Ali"),
    _machine("machine_010", "AC-01", "Air Conditioning", "hvac", "ship_003", MachineModule.HVAC, 12100, 12000, 1000, "Chief Engineer Ali"),
]

DEMO_USERS = [
    User(user_id="user_001", name="Captain Ahmet", phone="+905551234567", role="captain",
         ship_ids=["ship_001", "ship_002"], permissions=_CREW_PERMISSIONS),
    User(user_id="user_002", name="Captain Mehmet", phone="+905559876543", role="captain",
         ship_ids=["ship_002", "ship_003"], permissions=_CREW_PERMISSIONS),
    User(user_id="user_003", name="Chief Engineer Ali", phone="+905555555555", role="chief_engineer",
         ship_ids=["ship_001", "ship_003"], permissions=_CREW_PERMISSIONS + ["manage_machines"]),
]
