#provisioning_engine\container.py

"""Dependency injection container - wires all services together."""

import logging

from cloud_agent.simulator import ManagedCloudSimulator
from provisioning_engine.config import ProvisioningSettings, settings
from provisioning_engine.core.events import LoggingEventEmitter, MultiEventEmitter
from provisioning_engine.core.models import ResourceKind
from provisioning_engine.core.repository import StateRepository
from provisioning_engine.identity.directory import (
    AgentUserDirectory,
    CognitoUserDirectory,
    SimulatedUserDirectory,
    UserDirectory,
)
from provisioning_engine.orchestrator.provisioner import StackProvisioner
from provisioning_engine.orchestrator.readiness import RetryPolicy
from provisioning_engine.providers.agent_client import CloudAgentClient
from provisioning_engine.providers.identity_user import IdentityUserProvider
from provisioning_engine.providers.registry import ProviderRegistry
from provisioning_engine.providers.simulated import SimulatedCloudProvider

logger = logging.getLogger(__name__)


# ============================================
# STATE
# ============================================

def build_repository(config: ProvisioningSettings) -> StateRepository:
    if config.state_backend == "postgres":
        from provisioning_engine.infrastructure.postgres.config import settings as db_settings
        from provisioning_engine.infrastructure.postgres.database import create_state_schema
        from provisioning_engine.infrastructure.postgres.repository import PostgresStateRepository

        if db_settings.database_url.startswith("sqlite"):
            create_state_schema()
        return PostgresStateRepository()

    from provisioning_engine.infrastructure.memory.repository import InMemoryStateRepository
    return InMemoryStateRepository()


# ============================================
# PROVIDERS
# ============================================

def build_providers(config: ProvisioningSettings, simulator: ManagedCloudSimulator = None) -> ProviderRegistry:
    if config.provider_backend == "agent":
        default = CloudAgentClient(config.agent_url, timeout=config.agent_timeout_seconds)
        directory: UserDirectory = AgentUserDirectory(config.agent_url, timeout=config.agent_timeout_seconds)
    else:
        simulator = simulator or ManagedCloudSimulator(account_id=config.account_id, region=config.region)
        default = SimulatedCloudProvider(simulator)
        directory = SimulatedUserDirectory(simulator)

    if config.directory_backend == "cognito":
        directory = CognitoUserDirectory(region_name=config.region)

    registry = ProviderRegistry(default)
    registry.register(
        ResourceKind.IDENTITY_USER,
        IdentityUserProvider(directory, temporary_password=config.bootstrap_temporary_password),
    )
    return registry


# ============================================
# SERVICES
# ============================================

def build_provisioner(
    config: ProvisioningSettings,
    repository: StateRepository = None,
    providers: ProviderRegistry = None,
    emitter=None,
) -> StackProvisioner:
    logger.info(
        f"Wiring provisioner (providers={config.provider_backend}, state={config.state_backend})"
    )
    return StackProvisioner(
        repository=repository or build_repository(config),
        providers=providers or build_providers(config),
        event_emitter=emitter or MultiEventEmitter([LoggingEventEmitter(config.event_history_size)]),
        retry_policy=RetryPolicy.from_settings(config),
        max_parallelism=config.max_parallelism,
        rollback_on_failure=config.rollback_on_failure,
    )


_provisioner = None


def get_provisioner() -> StackProvisioner:
    """Process-wide provisioner built from environment settings on first use."""
    global _provisioner
    if _provisioner is None:
        _provisioner = build_provisioner(settings)
    return _provisioner
