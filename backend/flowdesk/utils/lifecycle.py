# /flowdesk/utils/lifecycle.py

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import timedelta
from fastapi import FastAPI

from flowdesk.config.settings import Settings, settings
from flowdesk.data.fixtures import DEMO_MACHINES, DEMO_SHIPS, DEMO_USERS
from flowdesk.services.encryption_service import FlowEncryptionService
from flowdesk.services.fleet_service import FleetRepository, UserDirectory
from flowdesk.services.session_service import FlowSessionStore
from flowdesk.services.validation_service import ValidationService
from flowdesk.utils.logging import setup_logging
from flowdesk.workflows.engine import FlowEngine

# This file manages the application's lifespan: it wires the flow services
# together on startup, exposes them on app.state, and stops the session sweep
# on shutdown.

logger = logging.getLogger(__name__)


@dataclass
class FlowServices:
    encryption: FlowEncryptionService
    sessions: FlowSessionStore
    repository: FleetRepository
    directory: UserDirectory
    validator: ValidationService
    engine: FlowEngine


def build_flow_services(
    config: Settings,
    repository: FleetRepository | None = None,
    directory: UserDirectory | None = None,
) -> FlowServices:
    """Builds one independent set of flow services. The demo fleet is used unless a repository is given."""
    encryption = FlowEncryptionService(config.flow_private_key, config.flow_private_key_passphrase)
    sessions = FlowSessionStore(
        ttl=timedelta(minutes=config.session_ttl_minutes),
        sweep_interval=timedelta(minutes=config.session_sweep_interval_minutes),
    )
    if repository is None:
        repository = FleetRepository(DEMO_SHIPS, DEMO_MACHINES, max_hours_increase=config.max_hours_increase)
    if directory is None:
        directory = UserDirectory(DEMO_USERS, default_country_code=config.default_country_code)
    validator = ValidationService(
        repository,
        directory,
        max_hours_increase=config.max_hours_increase,
        warning_threshold=config.maintenance_warning_hours,
    )
    engine = FlowEngine(sessions, validator, repository, directory, version=config.flow_response_version)
    return FlowServices(encryption, sessions, repository, directory, validator, engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    setup_logging()

    logger.info("Application starting up...")

    services = getattr(app.state, "flow", None) or build_flow_services(settings)
    app.state.flow = services
    services.sessions.start()

    if not services.encryption.is_configured:
        logger.warning("FLOW_PRIVATE_KEY is not set; the flow endpoint will answer 500 until it is configured.")

    logger.info("Application startup complete. Ready to accept requests.")

    yield  # Application is now running

    logger.info("Application shutting down...")

    services.sessions.stop()
