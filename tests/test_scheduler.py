#tests\test_scheduler.py

"""Test the dependency scheduler and readiness waits."""

import threading

import pytest

from provisioning_engine.core.errors import (
    DependencyUnready,
    ProvisioningCancelled,
    ProvisioningFailed,
    ResourceNotFound,
)
from provisioning_engine.core.graph import DependencyGraph
from provisioning_engine.core.models import ResourceDescriptor, ResourceKind, ResourceStatus
from provisioning_engine.orchestrator.readiness import (
    RetryPolicy,
    retry_unready,
    wait_until_deleted,
    wait_until_ready,
)
from provisioning_engine.orchestrator.scheduler import DependencyScheduler


def _graph(edges):
    """edges: {node: [prerequisites]} in declaration order."""
    return DependencyGraph([
        ResourceDescriptor(n, ResourceKind.NETWORK, {"max_azs": 1}, depends_on=tuple(deps))
        for n, deps in edges.items()
    ])


class TestDependencyScheduler:
    """Test scheduling over a graph."""

    def test_runs_after_prerequisites(self):
        """Test every action starts only after its prerequisites finished."""
        graph = _graph({"a": [], "b": [], "c": ["a", "b"], "d": ["c"]})
        finished = []
        lock = threading.Lock()

        def action(node):
            with lock:
                for dep in graph.dependencies_of(node):
                    assert dep in finished
                finished.append(node)

        result = DependencyScheduler(max_parallelism=3).run(graph, action)

        assert result.ok
        assert set(result.completed) == {"a", "b", "c", "d"}
        assert finished[-1] == "d"

    def test_independent_nodes_run_concurrently(self):
        """Test two independent nodes are in flight at the same time."""
        graph = _graph({"a": [], "b": []})
        barrier = threading.Barrier(2, timeout=5)

        result = DependencyScheduler(max_parallelism=2).run(graph, lambda node: barrier.wait())

        assert result.ok

    def test_failure_blocks_dependents(self):
        """Test a failure stops new work and reports blocked nodes."""
        graph = _graph({"a": [], "b": ["a"], "c": ["b"]})

        def action(node):
            if node == "a":
                raise ProvisioningFailed("a", "boom")

        result = DependencyScheduler(max_parallelism=1).run(graph, action)

        assert not result.ok
        assert result.first_failure() == "a"
        assert result.blocked == ["b", "c"]

    def test_cancel_before_start(self):
        """Test nothing is submitted once cancellation is requested."""
        graph = _graph({"a": [], "b": ["a"]})
        cancel_event = threading.Event()
        cancel_event.set()
        calls = []

        result = DependencyScheduler().run(graph, calls.append, cancel_event)

        assert result.cancelled
        assert calls == []
        assert result.blocked == ["a", "b"]

    def test_cancelled_action_is_not_a_failure(self):
        """Test an action interrupted by cancellation is not reported as failed."""
        graph = _graph({"a": []})

        def action(node):
            raise ProvisioningCancelled("stop")

        result = DependencyScheduler().run(graph, action)

        assert result.cancelled
        assert result.first_failure() is None

    def test_invalid_parallelism(self):
        with pytest.raises(ValueError):
            DependencyScheduler(max_parallelism=0)


class _ScriptedProvider:
    """Returns the given statuses in order, then raises ResourceNotFound."""

    def __init__(self, statuses):
        self.statuses = list(statuses)

    def describe(self, physical_id, context=None):
        if not self.statuses:
            raise ResourceNotFound(physical_id)
        status = self.statuses.pop(0)
        return ResourceStatus(physical_id=physical_id, status=status, reason="scripted")


FAST = RetryPolicy(initial_delay=0.0, max_delay=0.0, multiplier=1.0, timeout=10.0)


class TestReadiness:
    """Test readiness polling."""

    def test_backoff_delays(self):
        """Test delays grow exponentially up to the cap."""
        policy = RetryPolicy(initial_delay=1.0, max_delay=5.0, multiplier=2.0)
        delays = policy.delays()
        assert [next(delays) for _ in range(5)] == [1.0, 2.0, 4.0, 5.0, 5.0]

    def test_wait_until_ready(self):
        """Test polling continues until ready."""
        provider = _ScriptedProvider(["creating", "creating", "ready"])
        status = wait_until_ready(provider, "db", "database-1", FAST)
        assert status.status == "ready"

    def test_failed_status(self):
        """Test a failed status raises ProvisioningFailed with the reason."""
        provider = _ScriptedProvider(["creating", "failed"])
        with pytest.raises(ProvisioningFailed, match="scripted"):
            wait_until_ready(provider, "db", "database-1", FAST)

    def test_timeout(self):
        """Test a resource that never settles times out."""
        provider = _ScriptedProvider(["creating"] * 5)
        policy = RetryPolicy(initial_delay=1.0, max_delay=1.0, timeout=0.5)
        with pytest.raises(ProvisioningFailed, match="not ready"):
            wait_until_ready(provider, "db", "database-1", policy)

    def test_cancel_interrupts_wait(self):
        """Test a set cancel event stops the wait."""
        provider = _ScriptedProvider(["creating"] * 5)
        cancel_event = threading.Event()
        cancel_event.set()
        with pytest.raises(ProvisioningCancelled):
            wait_until_ready(provider, "db", "database-1", FAST, cancel_event)

    def test_wait_until_deleted(self):
        """Test ResourceNotFound ends a deletion wait."""
        provider = _ScriptedProvider(["deleting"])
        wait_until_deleted(provider, "db", "database-1", FAST)
        assert provider.statuses == []

    def test_retry_unready_gives_up(self):
        """Test DependencyUnready is retried a bounded number of times."""
        attempts = []

        def fn():
            attempts.append(1)
            raise DependencyUnready("vpc", "vpc_id")

        policy = RetryPolicy(initial_delay=0.0, max_delay=0.0, max_unready_attempts=3)
        with pytest.raises(DependencyUnready):
            retry_unready(fn, policy)
        assert len(attempts) == 3
