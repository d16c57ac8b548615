# provisioning_engine/core/errors.py

from typing import Iterable, Optional


# -----------------------------
# Base Errors
# -----------------------------

class ProvisioningError(Exception):
    """Base class for all provisioning engine errors."""
    pass


# -----------------------------
# Structural Errors (raised before any side effect)
# -----------------------------

class StackValidationError(ProvisioningError):
    """Malformed stack definition."""
    pass


class MissingInput(StackValidationError):
    """A required operator input was not supplied."""

    def __init__(self, name: str):
        super().__init__(f"Missing required input: {name}")
        self.name = name


class CircularDependency(StackValidationError):
    """The dependency graph contains a cycle."""

    def __init__(self, cycle: Iterable[str]):
        self.cycle = list(cycle)
        super().__init__(
            "Circular dependency: " + " -> ".join(self.cycle)
        )


# -----------------------------
# Runtime Errors
# -----------------------------

class DependencyUnready(ProvisioningError):
    """A resource was referenced before its prerequisite reached READY."""

    def __init__(self, logical_id: str, attribute: Optional[str] = None):
        self.logical_id = logical_id
        self.attribute = attribute
        detail = f"{logical_id}.{attribute}" if attribute else logical_id
        super().__init__(f"Dependency not ready: {detail}")


class ProvisioningFailed(ProvisioningError):
    """A managed resource could not be created, updated or deleted."""

    def __init__(self, logical_id: str, reason: str):
        self.logical_id = logical_id
        self.reason = reason
        super().__init__(f"Provisioning of {logical_id} failed: {reason}")


class ProvisioningCancelled(ProvisioningError):
    """The run was cancelled while waiting on a resource."""
    pass


class ResourceNotFound(ProvisioningError):
    """The provider has no resource with the given physical id."""
    pass


class InvalidStateTransition(ProvisioningError):
    """Illegal state transition attempted."""
    pass


# -----------------------------
# Persistence Errors
# -----------------------------

class StatePersistenceError(ProvisioningError):
    pass


class RecordAlreadyExists(StatePersistenceError):
    pass


class RecordNotFound(StatePersistenceError):
    pass


class RecordConcurrencyError(StatePersistenceError):
    pass


# -----------------------------
# Identity Errors
# -----------------------------

class IdentityError(ProvisioningError):
    pass


class UserAlreadyExists(IdentityError):
    pass


class UserNotFound(IdentityError):
    pass


class AuthorizationDenied(IdentityError):
    """The reconciler attempted an action outside its capability."""
    pass
