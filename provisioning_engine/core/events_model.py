"""Event models for the provisioning engine."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional


@dataclass
class ProvisioningEvent:
    """Base provisioning event."""

    event_type: str
    stack_name: str
    logical_id: Optional[str]
    timestamp: datetime
    metadata: Dict[str, Any]

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    @staticmethod
    def run_started(stack_name: str, operation: str, resource_count: int):
        return ProvisioningEvent(
            event_type="run.started",
            stack_name=stack_name,
            logical_id=None,
            timestamp=ProvisioningEvent._now(),
            metadata={"operation": operation, "resources": resource_count},
        )

    @staticmethod
    def run_finished(report):
        return ProvisioningEvent(
            event_type="run.finished",
            stack_name=report.stack_name,
            logical_id=report.failed_resource,
            timestamp=ProvisioningEvent._now(),
            metadata={
                "operation": report.operation,
                "status": report.status.value,
            },
        )

    @staticmethod
    def resource_creating(record):
        return ProvisioningEvent(
            event_type="resource.creating",
            stack_name=record.stack_name,
            logical_id=record.logical_id,
            timestamp=ProvisioningEvent._now(),
            metadata={"kind": record.kind.value},
        )

    @staticmethod
    def resource_ready(record):
        return ProvisioningEvent(
            event_type="resource.ready",
            stack_name=record.stack_name,
            logical_id=record.logical_id,
            timestamp=ProvisioningEvent._now(),
            metadata={
                "kind": record.kind.value,
                "physical_id": record.physical_id,
            },
        )

    @staticmethod
    def resource_unchanged(record):
        return ProvisioningEvent(
            event_type="resource.unchanged",
            stack_name=record.stack_name,
            logical_id=record.logical_id,
            timestamp=ProvisioningEvent._now(),
            metadata={"physical_id": record.physical_id},
        )

    @staticmethod
    def resource_updating(record):
        return ProvisioningEvent(
            event_type="resource.updating",
            stack_name=record.stack_name,
            logical_id=record.logical_id,
            timestamp=ProvisioningEvent._now(),
            metadata={"physical_id": record.physical_id},
        )

    @staticmethod
    def resource_failed(record):
        return ProvisioningEvent(
            event_type="resource.failed",
            stack_name=record.stack_name,
            logical_id=record.logical_id,
            timestamp=ProvisioningEvent._now(),
            metadata={"error": record.error_message},
        )

    @staticmethod
    def resource_deleting(record):
        return ProvisioningEvent(
            event_type="resource.deleting",
            stack_name=record.stack_name,
            logical_id=record.logical_id,
            timestamp=ProvisioningEvent._now(),
            metadata={"physical_id": record.physical_id},
        )

    @staticmethod
    def resource_deleted(record):
        return ProvisioningEvent(
            event_type="resource.deleted",
            stack_name=record.stack_name,
            logical_id=record.logical_id,
            timestamp=ProvisioningEvent._now(),
            metadata={"physical_id": record.physical_id},
        )
