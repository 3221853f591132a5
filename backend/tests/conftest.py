# backend/tests/conftest.py

import os
import base64
import json
import threading
from datetime import datetime, timedelta, timezone

import pytest
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from fastapi.testclient import TestClient

# CRITICAL: Set the environment FIRST, before any app imports.
# Settings are read when flowdesk.config.settings is imported.
TEST_PRIVATE_KEY = rsa.generate_private_key(public_exponent=65537, key_size=2048)
TEST_PRIVATE_KEY_PEM = TEST_PRIVATE_KEY.private_bytes(
    encoding=serialization.Encoding.PEM,
    format=serialization.PrivateFormat.PKCS8,
    encryption_algorithm=serialization.NoEncryption(),
).decode("utf-8")

os.environ["ENVIRONMENT"] = "test"
os.environ["FLOW_PRIVATE_KEY"] = TEST_PRIVATE_KEY_PEM.replace("\n", "\\n")

# Now it's safe to import the application and its components
from flowdesk.config.settings import settings  # noqa: E402
from flowdesk.main import app  # noqa: E402
from flowdesk.models.domain import Machine, MachineModule, Ship, User  # noqa: E402
from flowdesk.services.encryption_service import FlowEncryptionService, flip_iv  # noqa: E402
from flowdesk.services.fleet_service import FleetRepository, UserDirectory  # noqa: E402
from flowdesk.services.session_service import FlowSessionStore  # noqa: E402
from flowdesk.services.validation_service import ValidationService  # noqa: E402
from flowdesk.utils.lifecycle import build_flow_services  # noqa: E402
from flowdesk.workflows.engine import FlowEngine  # noqa: E402

CAPTAIN_PHONE = "+905551234567"
ENGINEER_PHONE = "+905559876543"
VIEWER_PHONE = "+905555555555"


class FakeClock:
    """A controllable clock for session expiry tests."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
        self._lock = threading.Lock()

    def __call__(self) -> datetime:
        with self._lock:
            return self.now

    def advance(self, **kwargs):
        with self._lock:
            self.now += timedelta(**kwargs)


def _machine(id, module, current, next_maintenance, interval=500, ship_id="ship_a"):
    return Machine(
        id=id,
        code=id.upper(),
        name=f"Machine {id}",
        type="main_engine",
        ship_id=ship_id,
        module=module,
        current_hours=current,
        last_maintenance_hours=next_maintenance - interval,
        next_maintenance_hours=next_maintenance,
        maintenance_interval=interval,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def repository():
    ships = [
        Ship(id="ship_a", name="MV ALPHA", imo="1000001", flag="Malta"),
        Ship(id="ship_b", name="MV BRAVO", imo="1000002", flag="Panama"),
        Ship(id="ship_c", name="MV CHARLIE", imo="1000003", flag="Liberia"),
    ]
    machines = [
        _machine("m_overdue", MachineModule.PROPULSION, 100, 90),
        _machine("m_warning", MachineModule.PROPULSION, 100, 140, interval=200),
        _machine("m_ok", MachineModule.PROPULSION, 100, 500),
        _machine("m_gen", MachineModule.ELECTRICAL, 2000, 3000, interval=1000),
        _machine("m_bravo", MachineModule.BALLAST, 400, 1000, ship_id="ship_b"),
        _machine("m_charlie", MachineModule.HVAC, 50, 1000, ship_id="ship_c"),
    ]
    return FleetRepository(ships, machines, max_hours_increase=500)


@pytest.fixture
def directory():
    crew = ["read_working_hours", "write_working_hours"]
    users = [
        User(user_id="u1", name="Captain Test", phone=CAPTAIN_PHONE, role="captain",
             ship_ids=["ship_a", "ship_b"], permissions=crew),
        User(user_id="u2", name="Engineer Test", phone=ENGINEER_PHONE, role="engineer",
             ship_ids=["ship_a"], permissions=crew),
        User(user_id="u3", name="Viewer Test", phone=VIEWER_PHONE, role="engineer",
             ship_ids=["ship_a"], permissions=["read_working_hours"]),
    ]
    return UserDirectory(users)


@pytest.fixture
def validator(repository, directory):
    return ValidationService(repository, directory, max_hours_increase=500, warning_threshold=50)


@pytest.fixture
def sessions(clock):
    return FlowSessionStore(clock=clock)


@pytest.fixture
def engine(sessions, validator, repository, directory):
    return FlowEngine(sessions, validator, repository, directory)


@pytest.fixture
def encryption():
    return FlowEncryptionService(TEST_PRIVATE_KEY_PEM)


@pytest.fixture
def make_envelope():
    """
    Builds an encrypted request the way the WhatsApp client does and returns
    (envelope, aes_key, iv) so tests can decrypt the response.
    """
    def _make(payload, public_key=TEST_PRIVATE_KEY.public_key()):
        aes_key = AESGCM.generate_key(bit_length=128)
        iv = os.urandom(16)
        body = AESGCM(aes_key).encrypt(iv, json.dumps(payload).encode("utf-8"), None)
        wrapped_key = public_key.encrypt(
            aes_key,
            padding.OAEP(mgf=padding.MGF1(algorithm=hashes.SHA256()), algorithm=hashes.SHA256(), label=None),
        )
        envelope = {
            "encrypted_flow_data": base64.b64encode(body).decode(),
            "encrypted_aes_key": base64.b64encode(wrapped_key).decode(),
            "initial_vector": base64.b64encode(iv).decode(),
        }
        return envelope, aes_key, iv

    return _make


@pytest.fixture
def open_response():
    """Decrypts a response body the way the WhatsApp client does (flipped IV)."""
    def _open(body: str, aes_key: bytes, iv: bytes) -> dict:
        plaintext = AESGCM(aes_key).decrypt(flip_iv(iv), base64.b64decode(body), None)
        return json.loads(plaintext)

    return _open


@pytest.fixture(scope="function")
def test_client():
    """
    Provides a TestClient for API integration tests, with a fresh set of
    flow services (demo fleet, empty sessions) for every test.
    """
    app.state.flow = build_flow_services(settings)
    with TestClient(app) as client:
        yield client
