"""Core domain models: resource descriptors, records and stacks."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class ResourceKind(Enum):
    """Managed resource kinds understood by the providers."""

    NETWORK = "network"
    SECRET = "secret"
    DATABASE = "database"
    FILE_SYSTEM = "file_system"
    ACCESS_POINT = "access_point"
    SECURITY_GROUP = "security_group"
    INGRESS_RULE = "ingress_rule"
    CLUSTER = "cluster"
    TASK_DEFINITION = "task_definition"
    FILE_SYSTEM_GRANT = "file_system_grant"
    SERVICE = "service"
    LOAD_BALANCER = "load_balancer"
    CERTIFICATE = "certificate"
    USER_POOL = "user_pool"
    USER_POOL_DOMAIN = "user_pool_domain"
    USER_POOL_CLIENT = "user_pool_client"
    TARGET_GROUP = "target_group"
    LISTENER = "listener"
    ROLE = "role"
    IDENTITY_USER = "identity_user"


class ResourceState(Enum):
    """Lifecycle of a resource record."""

    PENDING = "PENDING"
    CREATING = "CREATING"
    READY = "READY"
    UPDATING = "UPDATING"
    FAILED = "FAILED"
    DELETING = "DELETING"
    DELETED = "DELETED"


class RemovalPolicy(Enum):
    DESTROY = "destroy"
    RETAIN = "retain"


# ============================================
# DECLARATION
# ============================================

@dataclass(frozen=True)
class ResourceDescriptor:
    """
    Declaration of one managed resource.

    Pure data: constructing a descriptor has no side effects. The
    orchestrator reads descriptors, derives the dependency graph and
    issues provider calls.
    """

    logical_id: str
    kind: ResourceKind
    properties: Dict[str, Any] = field(default_factory=dict)
    depends_on: tuple = ()
    removal_policy: RemovalPolicy = RemovalPolicy.DESTROY


@dataclass
class StackDefinition:
    """An ordered set of descriptors plus the outputs reported to operators."""

    name: str
    resources: List[ResourceDescriptor] = field(default_factory=list)
    outputs: Dict[str, Any] = field(default_factory=dict)
    phase_notes: Optional[str] = None

    def get(self, logical_id: str) -> Optional[ResourceDescriptor]:
        for descriptor in self.resources:
            if descriptor.logical_id == logical_id:
                return descriptor
        return None

    def logical_ids(self) -> List[str]:
        return [d.logical_id for d in self.resources]


# ============================================
# STATE
# ============================================

@dataclass
class ResourceRecord:
    """Persisted provisioning state of one resource in one stack."""

    stack_name: str
    logical_id: str
    kind: ResourceKind

    state: ResourceState = ResourceState.PENDING
    physical_id: Optional[str] = None
    outputs: Dict[str, Any] = field(default_factory=dict)
    properties_hash: Optional[str] = None
    error_message: Optional[str] = None

    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    # Optimistic concurrency
    version: int = 0

    def is_ready(self) -> bool:
        return self.state == ResourceState.READY


@dataclass
class ResourceStatus:
    """Provider-side view of a managed resource."""

    physical_id: str
    status: str  # "creating", "updating", "ready", "failed", "deleting"
    outputs: Dict[str, Any] = field(default_factory=dict)
    reason: Optional[str] = None


class RunStatus(Enum):
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    ROLLED_BACK = "ROLLED_BACK"


@dataclass
class RunReport:
    """User-visible summary of an apply or destroy run."""

    stack_name: str
    operation: str  # "apply" | "destroy"
    status: RunStatus

    created: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    unchanged: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)
    rolled_back: List[str] = field(default_factory=list)

    failed_resource: Optional[str] = None
    error_message: Optional[str] = None
    blocked_chain: List[str] = field(default_factory=list)
    blocked: List[str] = field(default_factory=list)

    outputs: Dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == RunStatus.SUCCEEDED

    def side_effect_count(self) -> int:
        return len(self.created) + len(self.updated) + len(self.deleted) + len(self.rolled_back)

    def summary(self) -> str:
        if self.succeeded:
            lines = [f"{self.operation} of {self.stack_name} succeeded"]
            for name, value in self.outputs.items():
                lines.append(f"  {name}: {value}")
            return "\n".join(lines)

        lines = [f"{self.operation} of {self.stack_name} {self.status.value.lower()}"]
        if self.failed_resource:
            lines.append(f"  failed resource: {self.failed_resource}")
        if self.error_message:
            lines.append(f"  error: {self.error_message}")
        if self.blocked_chain:
            lines.append(f"  dependency chain: {' -> '.join(self.blocked_chain)}")
        if self.blocked:
            lines.append(f"  blocked: {', '.join(self.blocked)}")
        return "\n".join(lines)
