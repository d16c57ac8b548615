#provisioning_engine\core\state_machine.py

from datetime import datetime, timezone

from provisioning_engine.core.errors import InvalidStateTransition
from provisioning_engine.core.models import ResourceRecord, ResourceState


ALLOWED_TRANSITIONS = {
    ResourceState.PENDING: {
        ResourceState.CREATING,
    },
    ResourceState.CREATING: {
        ResourceState.READY,
        ResourceState.FAILED,
        ResourceState.DELETING,
    },
    ResourceState.READY: {
        ResourceState.UPDATING,
        ResourceState.DELETING,
    },
    ResourceState.UPDATING: {
        ResourceState.READY,
        ResourceState.FAILED,
        ResourceState.DELETING,
    },
    ResourceState.FAILED: {
        ResourceState.CREATING,
        ResourceState.DELETING,
    },
    ResourceState.DELETING: {
        ResourceState.DELETED,
        ResourceState.FAILED,
    },
    ResourceState.DELETED: {
        ResourceState.CREATING,
    },
}


class ResourceStateMachine:
    @staticmethod
    def transition(
        record: ResourceRecord,
        new_state: ResourceState,
        *,
        now: datetime | None = None,
    ) -> ResourceRecord:
        now = now or datetime.now(timezone.utc)

        current = record.state

        if current == new_state:
            return record

        allowed = ALLOWED_TRANSITIONS.get(current, set())
        if new_state not in allowed:
            raise InvalidStateTransition(
                f"{record.logical_id}: cannot transition from {current.value} to {new_state.value}"
            )

        if new_state in (ResourceState.CREATING, ResourceState.UPDATING, ResourceState.DELETING):
            record.error_message = None

        if new_state == ResourceState.CREATING and current in (ResourceState.FAILED, ResourceState.DELETED):
            record.physical_id = None
            record.outputs = {}

        elif new_state == ResourceState.DELETED:
            record.outputs = {}

        record.state = new_state
        record.updated_at = now
        return record
