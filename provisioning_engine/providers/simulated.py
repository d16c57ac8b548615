# provisioning_engine/providers/simulated.py
"""In-process provider backed by the managed cloud simulator."""

from typing import Any, Dict, Optional

from cloud_agent.simulator import ManagedCloudSimulator
from provisioning_engine.core.models import ResourceKind, ResourceStatus
from provisioning_engine.providers.base import ResourceProvider


class SimulatedCloudProvider(ResourceProvider):
    def __init__(self, simulator: ManagedCloudSimulator):
        self.simulator = simulator

    def create(self, kind: ResourceKind, logical_id: str, properties: Dict[str, Any]) -> str:
        return self.simulator.create(kind.value, logical_id, properties)

    def describe(self, physical_id: str, context: Optional[Dict[str, Any]] = None) -> ResourceStatus:
        return self.simulator.describe(physical_id)

    def update(self, physical_id: str, properties: Dict[str, Any], context: Optional[Dict[str, Any]] = None) -> None:
        self.simulator.update(physical_id, properties)

    def delete(self, physical_id: str, context: Optional[Dict[str, Any]] = None) -> None:
        self.simulator.delete(physical_id)
