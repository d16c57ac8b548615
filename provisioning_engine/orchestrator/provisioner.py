# provisioning_engine/orchestrator/provisioner.py
"""Stack provisioner - applies and destroys stacks against managed providers."""

import hashlib
import json
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from provisioning_engine.core.errors import (
    DependencyUnready,
    ProvisioningError,
    ProvisioningFailed,
    ResourceNotFound,
)
from provisioning_engine.core.events import EventEmitter, NullEventEmitter
from provisioning_engine.core.events_model import ProvisioningEvent
from provisioning_engine.core.graph import DependencyGraph
from provisioning_engine.core.models import (
    RemovalPolicy,
    ResourceRecord,
    ResourceState,
    RunReport,
    RunStatus,
    StackDefinition,
)
from provisioning_engine.core.references import resolve
from provisioning_engine.core.repository import StateRepository
from provisioning_engine.core.state_machine import ResourceStateMachine
from provisioning_engine.core.validation import validate_stack
from provisioning_engine.orchestrator.readiness import (
    RetryPolicy,
    retry_unready,
    wait_until_deleted,
    wait_until_ready,
)
from provisioning_engine.orchestrator.scheduler import DependencyScheduler
from provisioning_engine.providers.registry import ProviderRegistry

logger = logging.getLogger(__name__)


def hash_properties(properties: Dict[str, Any]) -> str:
    """Stable digest of resolved properties (references only, never secret values)."""
    canonical = json.dumps(properties, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


@dataclass
class _RunTracker:
    created: List[str] = field(default_factory=list)
    # create requested by this run, whether or not it reached READY
    attempted: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    unchanged: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)
    lock: threading.Lock = field(default_factory=threading.Lock)

    def add(self, bucket: str, logical_id: str) -> None:
        with self.lock:
            getattr(self, bucket).append(logical_id)


@dataclass
class PlannedChange:
    logical_id: str
    kind: str
    action: str  # "create" | "update" | "no-op" | "pending"
    wave: int


class StackProvisioner:
    """
    Applies a stack definition and tears it down again.

    Flow of apply:
    1. Validate the stack and build the dependency graph (no side effects)
    2. Schedule every resource once its prerequisites are READY
       a. Resolve references against prerequisite outputs
       b. Skip if READY with identical resolved properties
       c. Create / update / resume, then wait for the ready state
    3. On failure either halt (default, resumable) or roll back what this
       run created
    4. Report outputs, or the failed resource and its blocked chain

    Cancellation follows the resume policy: records of in-flight
    resources keep their physical id in CREATING state and the next
    apply waits on them instead of creating duplicates.
    """

    def __init__(
        self,
        repository: StateRepository,
        providers: ProviderRegistry,
        event_emitter: Optional[EventEmitter] = None,
        retry_policy: Optional[RetryPolicy] = None,
        max_parallelism: int = 4,
        rollback_on_failure: bool = False,
    ):
        self._repo = repository
        self._providers = providers
        self._emitter = event_emitter or NullEventEmitter()
        self._policy = retry_policy or RetryPolicy()
        self._scheduler = DependencyScheduler(max_parallelism)
        self.rollback_on_failure = rollback_on_failure
        self._cancel_event = threading.Event()

    # -------------------------
    # CONTROL
    # -------------------------

    def cancel(self) -> None:
        """Cancel the run in progress (if any)."""
        logger.info("[provisioner] cancellation requested")
        self._cancel_event.set()

    def _start_run(self, cancel_event: Optional[threading.Event]) -> threading.Event:
        if cancel_event is not None:
            return cancel_event
        self._cancel_event = threading.Event()
        return self._cancel_event

    # -------------------------
    # APPLY
    # -------------------------

    def apply(self, stack: StackDefinition, cancel_event: Optional[threading.Event] = None) -> RunReport:
        """
        Converge the stack to its definition.

        Raises:
            StackValidationError: malformed stack, missing input or cycle;
                raised before any provider call
        """
        graph = validate_stack(stack)
        cancel_event = self._start_run(cancel_event)
        tracker = _RunTracker()

        logger.info(f"[provisioner] applying {stack.name} ({len(graph)} resources)")
        if stack.phase_notes:
            logger.info(f"[provisioner] {stack.phase_notes}")
        self._emit([ProvisioningEvent.run_started(stack.name, "apply", len(graph))])

        result = self._scheduler.run(
            graph,
            lambda logical_id: self._converge(stack, graph, logical_id, tracker, cancel_event),
            cancel_event,
        )

        report = RunReport(
            stack_name=stack.name,
            operation="apply",
            status=RunStatus.SUCCEEDED,
            created=list(tracker.created),
            updated=list(tracker.updated),
            unchanged=list(tracker.unchanged),
            blocked=list(result.blocked),
        )

        failed_id = result.first_failure()
        if failed_id is not None:
            error = result.failed[failed_id]
            report.status = RunStatus.FAILED
            report.failed_resource = failed_id
            report.error_message = str(error)
            report.blocked_chain = graph.dependency_chain(failed_id)

            if self.rollback_on_failure:
                report.rolled_back = self._rollback(stack, graph, tracker.created + tracker.attempted)
                report.status = RunStatus.ROLLED_BACK

        elif result.cancelled:
            report.status = RunStatus.CANCELLED
            logger.warning(
                f"[provisioner] apply of {stack.name} cancelled; "
                f"re-run apply to resume ({len(result.blocked)} resources not started)"
            )

        else:
            report.outputs = self.resolve_outputs(stack)

        self._emit([ProvisioningEvent.run_finished(report)])
        log = logger.info if report.succeeded else logger.error
        log(f"[provisioner] {report.summary()}")
        return report

    def _converge(
        self,
        stack: StackDefinition,
        graph: DependencyGraph,
        logical_id: str,
        tracker: _RunTracker,
        cancel_event: threading.Event,
    ) -> None:
        descriptor = graph.descriptor(logical_id)
        provider = self._providers.for_kind(descriptor.kind)

        record = self._repo.get(stack.name, logical_id)
        if record is None:
            record = ResourceRecord(stack_name=stack.name, logical_id=logical_id, kind=descriptor.kind)
            self._repo.create(record)

        properties = retry_unready(
            lambda: resolve(
                descriptor.properties,
                self._ready_outputs(stack.name, graph.dependencies_of(logical_id)),
            ),
            self._policy,
            cancel_event,
        )
        properties_hash = hash_properties(properties)

        # Resume a create/update interrupted by cancellation or a crash
        if record.state in (ResourceState.CREATING, ResourceState.UPDATING) and record.physical_id:
            logger.info(f"[provisioner] resuming {logical_id} ({record.physical_id})")
            bucket = "created" if record.state == ResourceState.CREATING else "updated"
            self._await_ready(record, provider, cancel_event)
            if record.properties_hash == properties_hash:
                tracker.add(bucket, logical_id)
                return

        if record.state == ResourceState.READY:
            if record.properties_hash == properties_hash:
                logger.debug(f"[provisioner] {logical_id} unchanged")
                self._emit([ProvisioningEvent.resource_unchanged(record)])
                tracker.add("unchanged", logical_id)
                return

            self._update(record, provider, properties, properties_hash, cancel_event)
            tracker.add("updated", logical_id)
            return

        # Leftovers of a failed create or an interrupted delete go first
        if record.state in (ResourceState.FAILED, ResourceState.DELETING) and record.physical_id:
            logger.info(f"[provisioner] removing leftover {logical_id} ({record.physical_id}) before re-creating")
            self._delete_physical(record, provider, cancel_event)

        tracker.add("attempted", logical_id)
        self._create(record, provider, properties, properties_hash, cancel_event)
        tracker.add("created", logical_id)

    def _ready_outputs(self, stack_name: str, dependencies) -> Dict[str, Dict[str, Any]]:
        outputs = {}
        for dependency in dependencies:
            record = self._repo.get(stack_name, dependency)
            if record is None or not record.is_ready():
                raise DependencyUnready(dependency)
            outputs[dependency] = record.outputs
        return outputs

    def _create(self, record, provider, properties, properties_hash, cancel_event) -> None:
        ResourceStateMachine.transition(record, ResourceState.CREATING)
        record.properties_hash = properties_hash
        self._repo.update(record)
        self._emit([ProvisioningEvent.resource_creating(record)])
        logger.info(f"[provisioner] creating {record.logical_id} ({record.kind.value})")

        try:
            record.physical_id = provider.create(record.kind, record.logical_id, properties)
        except (ProvisioningError, ValueError) as e:
            self._fail(record, str(e))
            raise ProvisioningFailed(record.logical_id, str(e)) from e

        record.outputs = provider.initial_outputs(properties)

        # Persist the handle before waiting so a resumed run never duplicates it
        # and an interrupted one can still be torn down
        self._repo.update(record)

        self._await_ready(record, provider, cancel_event)

    def _update(self, record, provider, properties, properties_hash, cancel_event) -> None:
        ResourceStateMachine.transition(record, ResourceState.UPDATING)
        record.properties_hash = properties_hash
        self._repo.update(record)
        self._emit([ProvisioningEvent.resource_updating(record)])
        logger.info(f"[provisioner] updating {record.logical_id} ({record.physical_id})")

        try:
            provider.update(record.physical_id, properties, context=record.outputs)
        except (ProvisioningError, ValueError) as e:
            self._fail(record, str(e))
            raise ProvisioningFailed(record.logical_id, str(e)) from e

        self._await_ready(record, provider, cancel_event)

    def _await_ready(self, record, provider, cancel_event) -> None:
        try:
            status = wait_until_ready(
                provider,
                record.logical_id,
                record.physical_id,
                self._policy,
                cancel_event,
                context=record.outputs,
            )
        except ProvisioningFailed as e:
            self._fail(record, e.reason)
            raise

        record.outputs = status.outputs
        ResourceStateMachine.transition(record, ResourceState.READY)
        self._repo.update(record)
        self._emit([ProvisioningEvent.resource_ready(record)])
        logger.info(f"[provisioner] ✅ {record.logical_id} ready ({record.physical_id})")

    def _fail(self, record: ResourceRecord, reason: str) -> None:
        ResourceStateMachine.transition(record, ResourceState.FAILED)
        record.error_message = reason
        self._repo.update(record)
        self._emit([ProvisioningEvent.resource_failed(record)])

    # -------------------------
    # DESTROY
    # -------------------------

    def destroy(self, stack: StackDefinition, cancel_event: Optional[threading.Event] = None) -> RunReport:
        """Tear the stack down in reverse dependency order."""
        graph = DependencyGraph(stack.resources)
        cancel_event = self._start_run(cancel_event)
        tracker = _RunTracker()

        logger.info(f"[provisioner] destroying {stack.name}")
        self._emit([ProvisioningEvent.run_started(stack.name, "destroy", len(graph))])

        result = self._scheduler.run(
            graph.reversed(),
            lambda logical_id: self._teardown(stack, graph, logical_id, tracker, cancel_event),
            cancel_event,
        )

        report = RunReport(
            stack_name=stack.name,
            operation="destroy",
            status=RunStatus.SUCCEEDED,
            deleted=list(tracker.deleted),
            blocked=list(result.blocked),
        )

        failed_id = result.first_failure()
        if failed_id is not None:
            report.status = RunStatus.FAILED
            report.failed_resource = failed_id
            report.error_message = str(result.failed[failed_id])
            report.blocked_chain = [failed_id] + [
                n for n in graph.creation_order()
                if n in graph.transitive_dependencies(failed_id)
            ][::-1]
        elif result.cancelled:
            report.status = RunStatus.CANCELLED

        self._emit([ProvisioningEvent.run_finished(report)])
        log = logger.info if report.succeeded else logger.error
        log(f"[provisioner] {report.summary()}")
        return report

    def _teardown(self, stack, graph, logical_id, tracker, cancel_event) -> None:
        record = self._repo.get(stack.name, logical_id)
        if record is None:
            return

        descriptor = graph.descriptor(logical_id)
        if descriptor.removal_policy == RemovalPolicy.RETAIN:
            logger.info(f"[provisioner] retaining {logical_id} ({record.physical_id}), forgetting its record")
            self._repo.delete(stack.name, logical_id)
            return

        if record.physical_id is None:
            self._repo.delete(stack.name, logical_id)
            return

        provider = self._providers.for_kind(record.kind)
        self._delete_physical(record, provider, cancel_event)
        self._repo.delete(stack.name, logical_id)
        tracker.add("deleted", logical_id)

    def _delete_physical(self, record, provider, cancel_event) -> None:
        ResourceStateMachine.transition(record, ResourceState.DELETING)
        self._repo.update(record)
        self._emit([ProvisioningEvent.resource_deleting(record)])
        logger.info(f"[provisioner] deleting {record.logical_id} ({record.physical_id})")

        try:
            provider.delete(record.physical_id, context=record.outputs)
        except ResourceNotFound:
            logger.warning(f"[provisioner] {record.logical_id} ({record.physical_id}) already gone")
        except (ProvisioningError, ValueError) as e:
            self._fail(record, str(e))
            raise ProvisioningFailed(record.logical_id, str(e)) from e

        try:
            wait_until_deleted(
                provider,
                record.logical_id,
                record.physical_id,
                self._policy,
                cancel_event,
                context=record.outputs,
            )
        except ProvisioningFailed as e:
            self._fail(record, e.reason)
            raise

        ResourceStateMachine.transition(record, ResourceState.DELETED)
        self._repo.update(record)
        self._emit([ProvisioningEvent.resource_deleted(record)])

    def _rollback(self, stack: StackDefinition, graph: DependencyGraph, started: List[str]) -> List[str]:
        """
        Delete what this run created, newest dependents first, including
        resources whose create failed or never reached READY.
        """
        rolled_back = []
        tracker = _RunTracker()

        for logical_id in graph.deletion_order():
            if logical_id not in started:
                continue
            try:
                self._teardown(stack, graph, logical_id, tracker, None)
                rolled_back.append(logical_id)
            except ProvisioningError as e:
                logger.error(f"[provisioner] rollback of {logical_id} failed: {e}")

        logger.info(f"[provisioner] rolled back {len(rolled_back)} resource(s)")
        return rolled_back

    # -------------------------
    # QUERIES
    # -------------------------

    def status(self, stack_name: str) -> List[ResourceRecord]:
        return sorted(self._repo.list_stack(stack_name), key=lambda r: r.logical_id)

    def resolve_outputs(self, stack: StackDefinition) -> Dict[str, Any]:
        outputs = {
            r.logical_id: r.outputs
            for r in self._repo.list_stack(stack.name)
            if r.is_ready()
        }
        return resolve(stack.outputs, outputs)

    def plan(self, stack: StackDefinition) -> List[PlannedChange]:
        """What apply would do, without calling any provider."""
        graph = validate_stack(stack)
        wave_of = {n: i for i, wave in enumerate(graph.waves()) for n in wave}
        records = {r.logical_id: r for r in self._repo.list_stack(stack.name)}
        outputs = {n: r.outputs for n, r in records.items() if r.is_ready()}

        changes = []
        for logical_id in graph.creation_order():
            descriptor = graph.descriptor(logical_id)
            record = records.get(logical_id)

            if record is None or not record.is_ready():
                action = "create"
            else:
                try:
                    properties = resolve(descriptor.properties, outputs)
                except DependencyUnready:
                    action = "pending"
                else:
                    same = hash_properties(properties) == record.properties_hash
                    action = "no-op" if same else "update"

            changes.append(
                PlannedChange(
                    logical_id=logical_id,
                    kind=descriptor.kind.value,
                    action=action,
                    wave=wave_of[logical_id],
                )
            )
        return changes

    def _emit(self, events) -> None:
        self._emitter.emit(events)
