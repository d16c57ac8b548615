# provisioning_engine/providers/base.py

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from provisioning_engine.core.models import ResourceKind, ResourceStatus


class ResourceProvider(ABC):
    """
    Contract with a managed-service control plane.

    ``create`` and ``update`` return as soon as the request is accepted;
    the orchestrator then polls ``describe`` until the resource reports
    "ready" (or "failed"). ``context`` carries the record's last known
    outputs for providers that need them to address a resource.
    """

    @abstractmethod
    def create(self, kind: ResourceKind, logical_id: str, properties: Dict[str, Any]) -> str:
        """Request creation; returns the physical id."""
        raise NotImplementedError

    def initial_outputs(self, properties: Dict[str, Any]) -> Dict[str, Any]:
        """
        Outputs known as soon as ``create`` is accepted. They are stored
        with the physical id, before any wait, and passed back as
        ``context`` so an interrupted resource can still be described
        and deleted.
        """
        return {}

    @abstractmethod
    def describe(self, physical_id: str, context: Optional[Dict[str, Any]] = None) -> ResourceStatus:
        """
        Current status and outputs.
        Raises ResourceNotFound once the resource no longer exists.
        """
        raise NotImplementedError

    @abstractmethod
    def update(self, physical_id: str, properties: Dict[str, Any], context: Optional[Dict[str, Any]] = None) -> None:
        raise NotImplementedError

    @abstractmethod
    def delete(self, physical_id: str, context: Optional[Dict[str, Any]] = None) -> None:
        """
        Request deletion.
        Raises ResourceNotFound if the resource does not exist.
        """
        raise NotImplementedError
