#tests\conftest.py

"""Pytest configuration and fixtures."""

import pytest

from cloud_agent.simulator import ManagedCloudSimulator
from provisioning_engine.config import ProvisioningSettings
from provisioning_engine.core.events import LoggingEventEmitter
from provisioning_engine.core.models import ResourceDescriptor, ResourceKind, StackDefinition
from provisioning_engine.core.references import Ref
from provisioning_engine.identity.directory import SimulatedUserDirectory
from provisioning_engine.infrastructure.memory.repository import InMemoryStateRepository
from provisioning_engine.infrastructure.postgres.database import (
    create_db_engine,
    create_state_schema,
    get_session_factory,
)
from provisioning_engine.infrastructure.postgres.repository import PostgresStateRepository
from provisioning_engine.orchestrator.provisioner import StackProvisioner
from provisioning_engine.orchestrator.readiness import RetryPolicy
from provisioning_engine.providers.identity_user import IdentityUserProvider
from provisioning_engine.providers.registry import ProviderRegistry
from provisioning_engine.providers.simulated import SimulatedCloudProvider
from provisioning_engine.stacks.workspace import build_workspace_stack


CERTIFICATE_ARN = "arn:aws:acm:us-east-1:123456789012:certificate/0f2c4a6e-test"


# ============================================
# SETTINGS
# ============================================

@pytest.fixture
def settings():
    """Workspace settings independent of the environment / .env file."""
    return ProvisioningSettings(
        _env_file=None,
        account_id="123456789012",
        certificate_arn=CERTIFICATE_ARN,
        readiness_initial_delay=0.0,
        readiness_max_delay=0.0,
    )


@pytest.fixture
def fast_policy():
    """No waiting between polls."""
    return RetryPolicy(initial_delay=0.0, max_delay=0.0, multiplier=1.0, timeout=30.0)


# ============================================
# CLOUD + STATE
# ============================================

@pytest.fixture
def simulator():
    """Simulator where every resource needs one poll to become ready."""
    return ManagedCloudSimulator(
        account_id="123456789012",
        region="us-east-1",
        provisioning_polls=1,
        deletion_polls=1,
    )


@pytest.fixture
def repository():
    return InMemoryStateRepository()


@pytest.fixture
def providers(simulator):
    registry = ProviderRegistry(SimulatedCloudProvider(simulator))
    registry.register(
        ResourceKind.IDENTITY_USER,
        IdentityUserProvider(SimulatedUserDirectory(simulator)),
    )
    return registry


@pytest.fixture
def emitter():
    return LoggingEventEmitter()


@pytest.fixture
def provisioner(repository, providers, emitter, fast_policy):
    return StackProvisioner(
        repository=repository,
        providers=providers,
        event_emitter=emitter,
        retry_policy=fast_policy,
        max_parallelism=4,
    )


@pytest.fixture
def workspace_stack(settings):
    return build_workspace_stack(settings)


@pytest.fixture
def small_stack():
    """network -> security group -> ingress rule, plus an independent secret."""
    return StackDefinition(
        name="small",
        resources=[
            ResourceDescriptor("vpc", ResourceKind.NETWORK, {"max_azs": 2}),
            ResourceDescriptor(
                "secret",
                ResourceKind.SECRET,
                {"name": "app-secret", "username": "app"},
            ),
            ResourceDescriptor(
                "sg",
                ResourceKind.SECURITY_GROUP,
                {"vpc_id": Ref("vpc", "vpc_id")},
            ),
            ResourceDescriptor(
                "rule",
                ResourceKind.INGRESS_RULE,
                {
                    "source_security_group_id": Ref("sg", "security_group_id"),
                    "target_security_group_id": Ref("sg", "security_group_id"),
                    "port": 5432,
                },
            ),
        ],
        outputs={"secret-location": Ref("secret", "secret_arn")},
    )


# ============================================
# SQL
# ============================================

@pytest.fixture
def test_engine():
    """In-memory SQLite engine shared across threads."""
    engine = create_db_engine("sqlite://")
    create_state_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def sql_repository(test_engine):
    return PostgresStateRepository(session_factory=get_session_factory(test_engine))
