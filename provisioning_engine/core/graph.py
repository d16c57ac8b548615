# provisioning_engine/core/graph.py
"""Dependency graph over resource descriptors."""

from typing import Dict, Iterable, List, Optional, Set

from provisioning_engine.core.errors import CircularDependency, StackValidationError
from provisioning_engine.core.models import ResourceDescriptor
from provisioning_engine.core.references import collect_references


class DependencyGraph:
    """
    Directed acyclic graph of resources.

    An edge ``a -> b`` means ``b`` depends on ``a``: ``a`` must be READY
    before ``b`` is created, and ``b`` must be deleted before ``a``.

    Edges come from two sources:
    - explicit ``depends_on`` entries
    - implicit references (Ref / SecretRef / Fmt) inside properties

    Construction rejects duplicate ids, unknown dependencies and cycles,
    so a graph that exists is always safe to schedule.
    """

    def __init__(self, descriptors: Iterable[ResourceDescriptor]):
        self._descriptors: Dict[str, ResourceDescriptor] = {}
        self._order: List[str] = []

        for descriptor in descriptors:
            if descriptor.logical_id in self._descriptors:
                raise StackValidationError(
                    f"Duplicate logical id: {descriptor.logical_id}"
                )
            self._descriptors[descriptor.logical_id] = descriptor
            self._order.append(descriptor.logical_id)

        # prerequisites[b] = {a, ...}; dependents[a] = {b, ...}
        self._prerequisites: Dict[str, Set[str]] = {n: set() for n in self._order}
        self._dependents: Dict[str, Set[str]] = {n: set() for n in self._order}

        for logical_id in self._order:
            descriptor = self._descriptors[logical_id]
            for dep in self._edges_for(descriptor):
                if dep not in self._descriptors:
                    raise StackValidationError(
                        f"{logical_id} depends on unknown resource {dep}"
                    )
                if dep == logical_id:
                    raise CircularDependency([logical_id, logical_id])
                self._prerequisites[logical_id].add(dep)
                self._dependents[dep].add(logical_id)

        cycle = self.find_cycle()
        if cycle:
            raise CircularDependency(cycle)

    @staticmethod
    def _edges_for(descriptor: ResourceDescriptor) -> Set[str]:
        edges = set(descriptor.depends_on)
        edges.update(collect_references(descriptor.properties))
        return edges

    # -------------------------
    # QUERIES
    # -------------------------

    def __contains__(self, logical_id: str) -> bool:
        return logical_id in self._descriptors

    def __len__(self) -> int:
        return len(self._order)

    def nodes(self) -> List[str]:
        return list(self._order)

    def descriptor(self, logical_id: str) -> ResourceDescriptor:
        return self._descriptors[logical_id]

    def dependencies_of(self, logical_id: str) -> Set[str]:
        """Direct prerequisites."""
        return set(self._prerequisites[logical_id])

    def dependents_of(self, logical_id: str) -> Set[str]:
        """Resources that directly depend on logical_id."""
        return set(self._dependents[logical_id])

    def transitive_dependents(self, logical_id: str) -> Set[str]:
        seen: Set[str] = set()
        stack = list(self._dependents[logical_id])
        while stack:
            node = stack.pop()
            if node in seen:
                continue
            seen.add(node)
            stack.extend(self._dependents[node])
        return seen

    def transitive_dependencies(self, logical_id: str) -> Set[str]:
        seen: Set[str] = set()
        stack = list(self._prerequisites[logical_id])
        while stack:
            node = stack.pop()
            if node in seen:
                continue
            seen.add(node)
            stack.extend(self._prerequisites[node])
        return seen

    def dependency_chain(self, logical_id: str) -> List[str]:
        """Longest prerequisite path ending at logical_id (root first)."""
        best: Dict[str, List[str]] = {}
        for node in self.creation_order():
            prerequisites = self._prerequisites[node]
            if not prerequisites:
                best[node] = [node]
                continue
            longest = max(
                (best[p] for p in sorted(prerequisites, key=self._order.index)),
                key=len,
            )
            best[node] = longest + [node]
            if node == logical_id:
                break
        return best[logical_id]

    # -------------------------
    # ORDERING
    # -------------------------

    def find_cycle(self) -> Optional[List[str]]:
        """Return one cycle as a closed path (A, B, A), or None."""
        WHITE, GREY, BLACK = 0, 1, 2
        color = {n: WHITE for n in self._order}
        parent: Dict[str, Optional[str]] = {}

        for root in self._order:
            if color[root] != WHITE:
                continue
            color[root] = GREY
            parent[root] = None
            stack = [(root, iter(sorted(self._prerequisites[root], key=self._order.index)))]

            while stack:
                node, children = stack[-1]
                child = next(children, None)
                if child is None:
                    color[node] = BLACK
                    stack.pop()
                    continue
                if color[child] == GREY:
                    # node depends on child, which is still on the path
                    path = [child]
                    current = node
                    while current != child:
                        path.append(current)
                        current = parent[current]
                    path.append(child)
                    path.reverse()
                    return path
                if color[child] == WHITE:
                    color[child] = GREY
                    parent[child] = node
                    stack.append(
                        (child, iter(sorted(self._prerequisites[child], key=self._order.index)))
                    )
        return None

    def creation_order(self) -> List[str]:
        """Topological order; ties are broken by declaration order."""
        remaining = {n: len(self._prerequisites[n]) for n in self._order}
        ready = [n for n in self._order if remaining[n] == 0]
        order: List[str] = []

        while ready:
            ready.sort(key=self._order.index)
            node = ready.pop(0)
            order.append(node)
            for dependent in self._dependents[node]:
                remaining[dependent] -= 1
                if remaining[dependent] == 0:
                    ready.append(dependent)

        if len(order) != len(self._order):
            raise CircularDependency(self.find_cycle() or [])
        return order

    def deletion_order(self) -> List[str]:
        return list(reversed(self.creation_order()))

    def waves(self) -> List[List[str]]:
        """Groups of resources whose members can be created concurrently."""
        depth: Dict[str, int] = {}
        for node in self.creation_order():
            prerequisites = self._prerequisites[node]
            depth[node] = 1 + max((depth[p] for p in prerequisites), default=-1)

        waves: List[List[str]] = []
        for node in self._order:
            level = depth[node]
            while len(waves) <= level:
                waves.append([])
            waves[level].append(node)
        return waves

    def order_key(self, logical_id: str) -> int:
        return self._order.index(logical_id)

    def reversed(self) -> "ReversedView":
        return ReversedView(self)


class ReversedView:
    """Teardown view: a node becomes schedulable once its dependents are gone."""

    def __init__(self, graph: DependencyGraph):
        self._graph = graph

    def nodes(self) -> List[str]:
        return self._graph.nodes()

    def dependencies_of(self, logical_id: str) -> Set[str]:
        return self._graph.dependents_of(logical_id)

    def dependents_of(self, logical_id: str) -> Set[str]:
        return self._graph.dependencies_of(logical_id)

    def transitive_dependents(self, logical_id: str) -> Set[str]:
        return self._graph.transitive_dependencies(logical_id)

    def order_key(self, logical_id: str) -> int:
        return -self._graph.order_key(logical_id)
