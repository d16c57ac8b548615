#tests\test_graph.py

"""Test dependency graph ordering and validation."""

import random

import pytest

from provisioning_engine.core.errors import CircularDependency, StackValidationError
from provisioning_engine.core.graph import DependencyGraph
from provisioning_engine.core.models import ResourceDescriptor, ResourceKind, StackDefinition
from provisioning_engine.core.references import Fmt, Ref, SecretRef


def _node(logical_id, depends_on=(), **properties):
    return ResourceDescriptor(
        logical_id,
        ResourceKind.SECURITY_GROUP,
        {"vpc_id": "vpc-1", **properties},
        depends_on=tuple(depends_on),
    )


def _random_dag(seed, size=25, edge_probability=0.2):
    """Random DAG: edges only point from lower to higher index, then shuffled."""
    rng = random.Random(seed)
    names = [f"r{i}" for i in range(size)]
    deps = {name: [] for name in names}
    for i, name in enumerate(names):
        for j in range(i):
            if rng.random() < edge_probability:
                deps[name].append(names[j])

    declared = names[:]
    rng.shuffle(declared)
    descriptors = []
    for name in declared:
        # mix explicit and implicit edges
        explicit = [d for d in deps[name] if rng.random() < 0.5]
        implicit = [d for d in deps[name] if d not in explicit]
        descriptors.append(
            _node(
                name,
                depends_on=explicit,
                refs=[Ref(d, "security_group_id") for d in implicit],
            )
        )
    return descriptors, deps


class TestDependencyEdges:
    """Test edge derivation."""

    def test_explicit_and_reference_edges(self):
        """Test depends_on and references both create edges."""
        graph = DependencyGraph([
            _node("a"),
            _node("b"),
            _node("c", depends_on=["a"], url=Fmt("https://{}", Ref("b", "dns_name"))),
            _node("d", password=SecretRef("c")),
        ])

        assert graph.dependencies_of("c") == {"a", "b"}
        assert graph.dependencies_of("d") == {"c"}
        assert graph.dependents_of("a") == {"c"}
        assert graph.transitive_dependents("a") == {"c", "d"}
        assert graph.transitive_dependencies("d") == {"a", "b", "c"}

    def test_unknown_dependency_rejected(self):
        """Test a reference to an undeclared resource is rejected."""
        with pytest.raises(StackValidationError, match="unknown resource ghost"):
            DependencyGraph([_node("a", depends_on=["ghost"])])

    def test_duplicate_logical_id_rejected(self):
        """Test duplicate logical ids are rejected."""
        with pytest.raises(StackValidationError, match="Duplicate"):
            DependencyGraph([_node("a"), _node("a")])


class TestCycles:
    """Test cycle detection."""

    def test_two_node_cycle_rejected(self):
        """Test A -> B -> A is reported with the cycle path."""
        with pytest.raises(CircularDependency) as exc_info:
            DependencyGraph([
                _node("A", depends_on=["B"]),
                _node("B", ref=Ref("A", "security_group_id")),
            ])

        assert exc_info.value.cycle == ["A", "B", "A"]
        assert "A -> B -> A" in str(exc_info.value)

    def test_self_reference_rejected(self):
        """Test a resource referencing itself is a cycle."""
        with pytest.raises(CircularDependency):
            DependencyGraph([_node("A", ref=Ref("A", "security_group_id"))])

    def test_long_cycle_detected(self):
        """Test a cycle buried behind acyclic nodes is found."""
        with pytest.raises(CircularDependency) as exc_info:
            DependencyGraph([
                _node("root"),
                _node("x", depends_on=["root", "z"]),
                _node("y", depends_on=["x"]),
                _node("z", depends_on=["y"]),
            ])

        cycle = exc_info.value.cycle
        assert cycle[0] == cycle[-1]
        assert set(cycle) == {"x", "y", "z"}


class TestOrdering:
    """Test creation and deletion order."""

    @pytest.mark.parametrize("seed", range(20))
    def test_creation_order_respects_every_edge(self, seed):
        """Test every resource comes after all of its prerequisites."""
        descriptors, deps = _random_dag(seed)
        order = DependencyGraph(descriptors).creation_order()

        position = {name: i for i, name in enumerate(order)}
        assert len(order) == len(descriptors)
        for name, prerequisites in deps.items():
            for prerequisite in prerequisites:
                assert position[prerequisite] < position[name]

    @pytest.mark.parametrize("seed", range(10))
    def test_deletion_order_is_reverse(self, seed):
        """Test dependents are deleted before what they depend on."""
        descriptors, deps = _random_dag(seed)
        order = DependencyGraph(descriptors).deletion_order()

        position = {name: i for i, name in enumerate(order)}
        for name, prerequisites in deps.items():
            for prerequisite in prerequisites:
                assert position[name] < position[prerequisite]

    def test_ties_broken_by_declaration_order(self):
        """Test independent resources keep declaration order."""
        graph = DependencyGraph([_node("c"), _node("a"), _node("b")])
        assert graph.creation_order() == ["c", "a", "b"]

    def test_waves_group_independent_resources(self):
        """Test waves put each resource one level after its deepest prerequisite."""
        graph = DependencyGraph([
            _node("a"),
            _node("b"),
            _node("c", depends_on=["a"]),
            _node("d", depends_on=["b", "c"]),
        ])
        assert graph.waves() == [["a", "b"], ["c"], ["d"]]

    def test_dependency_chain_is_longest_path(self):
        """Test the chain leading to a resource follows its deepest path."""
        graph = DependencyGraph([
            _node("a"),
            _node("b", depends_on=["a"]),
            _node("c"),
            _node("d", depends_on=["b", "c"]),
        ])
        assert graph.dependency_chain("d") == ["a", "b", "d"]

    def test_reversed_view_swaps_direction(self):
        """Test the teardown view waits on dependents."""
        graph = DependencyGraph([_node("a"), _node("b", depends_on=["a"])])
        view = graph.reversed()

        assert view.dependencies_of("a") == {"b"}
        assert view.dependents_of("b") == {"a"}
        assert sorted(view.nodes(), key=view.order_key) == ["b", "a"]


class TestWorkspaceTopology:
    """Test the ordering guarantees of the workspace stack."""

    def test_workspace_stack_is_acyclic(self, workspace_stack):
        """Test the forward reference is resolved without a cycle."""
        graph = DependencyGraph(workspace_stack.resources)
        assert len(graph.creation_order()) == len(workspace_stack.resources) == 22

    @pytest.mark.parametrize("before, after", [
        ("vpc", "database"),
        ("db-secret", "database"),
        ("database", "task-definition"),
        ("access-point", "task-definition"),
        ("database", "cluster"),
        ("file-system", "cluster"),
        ("db-ingress", "service"),
        ("fs-ingress", "service"),
        ("fs-grant", "service"),
        ("load-balancer", "user-pool-client"),
        ("user-pool-client", "listener"),
        ("service", "target-group"),
        ("target-group", "listener"),
        ("certificate", "listener"),
        ("user-pool", "reconciler-role"),
        ("reconciler-role", "bootstrap-user"),
        ("bootstrap-user", "listener"),
    ])
    def test_required_order(self, workspace_stack, before, after):
        """Test each documented ordering constraint."""
        order = DependencyGraph(workspace_stack.resources).creation_order()
        assert order.index(before) < order.index(after)

    def test_listener_is_created_last(self, workspace_stack):
        """Test the entry point goes live only after everything behind it."""
        order = DependencyGraph(workspace_stack.resources).creation_order()
        assert order[-1] == "listener"

    def test_stack_definition_lookup(self, workspace_stack):
        """Test descriptors can be looked up by logical id."""
        assert isinstance(workspace_stack, StackDefinition)
        assert workspace_stack.get("listener").kind == ResourceKind.LISTENER
        assert workspace_stack.get("missing") is None
