# provisioning_engine/providers/identity_user.py
"""
Provider for ``identity_user`` resources.

Admin user calls are synchronous, so a user is ready as soon as
``create`` returns. Every reconciler runs behind a ScopedUserDirectory
built from the capability in the resource properties.
"""

import logging
import threading
from typing import Any, Dict, Optional

from pydantic import SecretStr

from provisioning_engine.core.errors import ResourceNotFound
from provisioning_engine.core.models import ResourceKind, ResourceStatus
from provisioning_engine.identity.capability import AdminCapability, ScopedUserDirectory
from provisioning_engine.identity.directory import UserDirectory
from provisioning_engine.identity.reconciler import IdentityReconciler, UserState
from provisioning_engine.providers.base import ResourceProvider

logger = logging.getLogger(__name__)


class IdentityUserProvider(ResourceProvider):
    def __init__(self, directory: UserDirectory, temporary_password: Optional[SecretStr] = None):
        self._directory = directory
        self._temporary_password = temporary_password
        self._reconcilers: Dict[AdminCapability, IdentityReconciler] = {}
        self._lock = threading.Lock()

    def reconciler_for(self, capability: AdminCapability) -> IdentityReconciler:
        with self._lock:
            if capability not in self._reconcilers:
                self._reconcilers[capability] = IdentityReconciler(
                    ScopedUserDirectory(self._directory, capability)
                )
            return self._reconcilers[capability]

    @staticmethod
    def _split(physical_id: str) -> tuple:
        user_pool_id, _, username = physical_id.partition("/")
        return user_pool_id, username

    @staticmethod
    def _outputs(capability: AdminCapability, username: str) -> Dict[str, Any]:
        return {"username": username, **capability.to_dict()}

    def create(self, kind: ResourceKind, logical_id: str, properties: Dict[str, Any]) -> str:
        if kind != ResourceKind.IDENTITY_USER:
            raise ValueError(f"IdentityUserProvider cannot create {kind.value}")

        capability = AdminCapability.from_properties(properties["capability"])
        if properties["user_pool_id"] != capability.user_pool_id:
            raise ValueError("identity user pool does not match its capability")

        user = self.reconciler_for(capability).create(
            properties["user_pool_id"],
            properties["username"],
            properties.get("attributes", {}),
            self._temporary_password,
        )
        return user.physical_id

    def initial_outputs(self, properties: Dict[str, Any]) -> Dict[str, Any]:
        capability = AdminCapability.from_properties(properties["capability"])
        return self._outputs(capability, properties["username"])

    def describe(self, physical_id: str, context: Optional[Dict[str, Any]] = None) -> ResourceStatus:
        user_pool_id, username = self._split(physical_id)

        for capability, reconciler in list(self._reconcilers.items()):
            if capability.user_pool_id != user_pool_id:
                continue
            state = reconciler.state_of(user_pool_id, username)
            if state == UserState.ABSENT:
                raise ResourceNotFound(physical_id)
            if state == UserState.PRESENT:
                return ResourceStatus(
                    physical_id=physical_id,
                    status="ready",
                    outputs=self._outputs(capability, username),
                )

        if context:
            capability = AdminCapability.from_properties(context)
            return ResourceStatus(
                physical_id=physical_id,
                status="ready",
                outputs=self._outputs(capability, username),
            )

        raise ResourceNotFound(physical_id)

    def update(self, physical_id: str, properties: Dict[str, Any], context: Optional[Dict[str, Any]] = None) -> None:
        capability = AdminCapability.from_properties(properties["capability"])
        user_pool_id, username = self._split(physical_id)
        if properties["username"] != username or properties["user_pool_id"] != user_pool_id:
            raise ValueError("identity user key is immutable; destroy and re-apply to rename")
        self.reconciler_for(capability).update_attributes(
            user_pool_id, username, properties.get("attributes", {})
        )

    def delete(self, physical_id: str, context: Optional[Dict[str, Any]] = None) -> None:
        if not context:
            raise ValueError(f"Cannot delete {physical_id} without its capability")
        capability = AdminCapability.from_properties(context)
        user_pool_id, username = self._split(physical_id)
        self.reconciler_for(capability).delete(user_pool_id, username)
