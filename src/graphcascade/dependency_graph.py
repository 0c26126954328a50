# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Dependency graph over entity types.

Forward relationships (``->`` and ``~>``) become ordering edges from the owning
type to the target type. The graph is stored as a boolean adjacency matrix over
alphabetically indexed type names so ordering and tiering run as a compiled
Kahn layering kernel over the matrix.

Graph queries never raise on cycles: :func:`topological_sort` returns a result
carrying a :class:`CycleError` value instead.

:module: dependency_graph
:synopsis: Type-level dependency graph, ordering, tiers and cycle detection
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

import numpy as np
from numba import jit

from .cascade_parser import RelationshipDescriptor
from .cascade_schema import EntitySchema
from .constants import RelationshipDirection, WarningMessages
from .errors import CycleError

logger = logging.getLogger(__name__)


# ----------------------------------------------------------------------------
# Graph records
# ----------------------------------------------------------------------------

@dataclass(frozen=True)
class DependencyEdge:
    """One relationship between two entity types."""

    source: str
    target: str
    field_name: str
    operator: str
    optional: bool = False
    is_array: bool = False
    fuzzy: bool = False

    @property
    def label(self) -> str:
        return f"{self.field_name}?" if self.optional else self.field_name


@dataclass
class DependencyNode:
    """
    Per-type view of the graph.

    ``depends_on`` holds hard targets (forward exact, not optional);
    ``soft_depends_on`` holds fuzzy, optional and backward/bidirectional links.
    """

    name: str
    depends_on: Set[str] = field(default_factory=set)
    depended_on_by: Set[str] = field(default_factory=set)
    soft_depends_on: Set[str] = field(default_factory=set)


@dataclass
class DependencyGraph:
    """
    :class: DependencyGraph
    :synopsis: Nodes, ordering edges, soft edges and self references
    """

    nodes: Dict[str, DependencyNode] = field(default_factory=dict)
    edges: List[DependencyEdge] = field(default_factory=list)
    soft_edges: List[DependencyEdge] = field(default_factory=list)
    self_references: Set[str] = field(default_factory=set)

    @property
    def names(self) -> List[str]:
        return sorted(self.nodes)

    def __contains__(self, name: object) -> bool:
        return name in self.nodes

    def adjacency(self, *, ignore_optional: bool = False) -> Tuple[List[str], np.ndarray]:
        """
        Boolean adjacency matrix of the ordering edges.

        Returns:
            The alphabetically sorted names and a matrix where ``[i, j]`` is True
            when type ``i`` has a forward relationship to type ``j``
        """
        names = self.names
        index = {name: i for i, name in enumerate(names)}
        matrix = np.zeros((len(names), len(names)), dtype=np.bool_)
        for edge in self.edges:
            if ignore_optional and edge.optional:
                continue
            matrix[index[edge.source], index[edge.target]] = True
        return names, matrix


@dataclass
class TopologicalSortResult:
    """Outcome of :func:`topological_sort`. ``ok`` is False when cycles blocked ordering."""

    order: List[str]
    cycle_error: Optional[CycleError] = None
    unresolved: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.cycle_error is None

    def __iter__(self):
        return iter(self.order)


# ----------------------------------------------------------------------------
# Building
# ----------------------------------------------------------------------------

def _as_schemas(schemas: Any) -> List[EntitySchema]:
    if hasattr(schemas, "all") and callable(schemas.all):
        return list(schemas.all())
    if isinstance(schemas, dict):
        return list(schemas.values())
    return list(schemas)


def build_dependency_graph(schemas: Iterable[EntitySchema]) -> DependencyGraph:
    """
    Build the type-level graph.

    Args:
        schemas: Entity schemas, a mapping of them, or a :class:`SchemaRegistry`

    Returns:
        The graph. Never raises; targets that are not registered still get a node.
    """
    graph = DependencyGraph()

    def node(name: str) -> DependencyNode:
        existing = graph.nodes.get(name)
        if existing is None:
            existing = graph.nodes[name] = DependencyNode(name)
        return existing

    for schema in _as_schemas(schemas):
        owner = node(schema.name)
        for rel in schema.relationships.values():
            _add_relationship(graph, owner, node(rel.target_type), rel)
    return graph


def _add_relationship(
    graph: DependencyGraph,
    owner: DependencyNode,
    target: DependencyNode,
    rel: RelationshipDescriptor,
) -> None:
    edge = DependencyEdge(
        source=owner.name,
        target=target.name,
        field_name=rel.name,
        operator=rel.operator,
        optional=rel.optional,
        is_array=rel.is_array,
        fuzzy=rel.is_fuzzy,
    )

    # @@ STEP 1: Backward and bidirectional links never order creation
    if rel.direction != RelationshipDirection.FORWARD:
        graph.soft_edges.append(edge)
        owner.soft_depends_on.add(target.name)
        return

    # @@ STEP 2: Self references are allowed and kept out of ordering
    if owner.name == target.name:
        graph.self_references.add(owner.name)
        return

    graph.edges.append(edge)
    if rel.is_fuzzy or rel.optional:
        owner.soft_depends_on.add(target.name)
    else:
        owner.depends_on.add(target.name)
        target.depended_on_by.add(owner.name)


# ----------------------------------------------------------------------------
# Ordering
# ----------------------------------------------------------------------------

@jit(nopython=True, cache=True)
def _tier_levels(matrix: np.ndarray) -> np.ndarray:
    """
    Kahn layer index per node; -1 for nodes that never reach in-degree zero.
    """
    n = matrix.shape[0]
    in_degree = np.zeros(n, dtype=np.int64)
    for i in range(n):
        for j in range(n):
            if matrix[i, j]:
                in_degree[j] += 1

    levels = np.empty(n, dtype=np.int64)
    levels[:] = -1
    level = 0
    while True:
        found = False
        for i in range(n):
            if levels[i] == -1 and in_degree[i] == 0:
                levels[i] = level
                found = True
        if not found:
            break
        for i in range(n):
            if levels[i] == level:
                for j in range(n):
                    if matrix[i, j]:
                        in_degree[j] -= 1
        level += 1
    return levels


def _kahn_tiers(names: List[str], matrix: np.ndarray) -> Tuple[List[List[str]], List[str]]:
    if not names:
        return [], []

    # @@ STEP 1: Layer index per node; indices are alphabetical
    levels = _tier_levels(np.ascontiguousarray(matrix, dtype=np.bool_))

    # @@ STEP 2: Group by layer, cycle members stay unplaced
    tiers = [[names[i] for i in np.flatnonzero(levels == level)] for level in range(int(levels.max()) + 1)]
    remaining = [names[i] for i in np.flatnonzero(levels < 0)]
    return tiers, remaining


def _oriented(graph: DependencyGraph, ignore_optional: bool, dependencies_first: bool) -> Tuple[List[str], np.ndarray]:
    names, matrix = graph.adjacency(ignore_optional=ignore_optional)
    return names, (matrix.T.copy() if dependencies_first else matrix)


def topological_sort(
    graph: DependencyGraph,
    *,
    ignore_optional: bool = False,
    dependencies_first: bool = False,
) -> TopologicalSortResult:
    """
    Order entity types so every edge source precedes its target.

    Args:
        graph: Graph from :func:`build_dependency_graph`
        ignore_optional: Drop edges of optional relationships before ordering
        dependencies_first: Reverse the edge sense so targets come first

    Returns:
        TopologicalSortResult. When cycles block ordering, ``order`` holds the
        types that could be placed, ``unresolved`` the rest and ``cycle_error``
        the cycles found among them.
    """
    names, matrix = _oriented(graph, ignore_optional, dependencies_first)
    tiers, remaining = _kahn_tiers(names, matrix)
    order = [name for tier in tiers for name in tier]
    if not remaining:
        return TopologicalSortResult(order=order)

    cycles = [
        cycle
        for cycle in detect_cycles(graph, ignore_optional=ignore_optional)
        if set(cycle) <= set(remaining)
    ]
    logger.warning(WarningMessages.CYCLE_IN_ORDERING, ", ".join(remaining))
    return TopologicalSortResult(order=order, cycle_error=CycleError(cycles), unresolved=remaining)


def _reachable(names: List[str], matrix: np.ndarray, root: str) -> np.ndarray:
    index = {name: i for i, name in enumerate(names)}
    seen = np.zeros(len(names), dtype=np.bool_)
    start = index[root]
    seen[start] = True
    queue = deque([start])
    while queue:
        current = queue.popleft()
        for neighbour in np.flatnonzero(matrix[current] & ~seen):
            seen[neighbour] = True
            queue.append(int(neighbour))
    return seen


def get_parallel_groups(
    graph: DependencyGraph,
    root_type: Optional[str] = None,
    *,
    ignore_optional: bool = False,
    dependencies_first: bool = False,
) -> List[List[str]]:
    """
    Group types into tiers that can be processed concurrently.

    Each tier only depends on earlier tiers; names inside a tier are sorted
    alphabetically. With ``root_type`` only types reachable from it take part.
    Types caught in cycles are left out and logged.
    """
    names, matrix = graph.adjacency(ignore_optional=ignore_optional)
    if root_type is not None:
        if root_type not in graph.nodes:
            return []
        mask = _reachable(names, matrix, root_type)
        names = [name for name, keep in zip(names, mask) if keep]
        matrix = matrix[np.ix_(mask, mask)]
    if dependencies_first:
        matrix = matrix.T.copy()
    tiers, remaining = _kahn_tiers(names, matrix)
    if remaining:
        logger.warning(WarningMessages.CYCLE_IN_ORDERING, ", ".join(remaining))
    return tiers


# ----------------------------------------------------------------------------
# Cycles
# ----------------------------------------------------------------------------

def _canonical(cycle: List[str]) -> Tuple[str, ...]:
    body = cycle[:-1]
    pivot = body.index(min(body))
    return tuple(body[pivot:] + body[:pivot])


def detect_cycles(
    graph: DependencyGraph,
    *,
    ignore_optional: bool = False,
    include_self_references: bool = False,
) -> List[List[str]]:
    """
    List the cycles between entity types.

    Every cycle is closed: its first and last elements are the same type.
    Each distinct cycle is reported once regardless of where traversal entered it.
    """
    names, matrix = graph.adjacency(ignore_optional=ignore_optional)
    visiting: Set[str] = set()
    visited: Set[str] = set()
    stack: List[str] = []
    seen: Set[Tuple[str, ...]] = set()
    cycles: List[List[str]] = []

    def visit(i: int) -> None:
        name = names[i]
        visiting.add(name)
        stack.append(name)
        for j in np.flatnonzero(matrix[i]):
            target = names[int(j)]
            if target in visiting:
                cycle = stack[stack.index(target):] + [target]
                key = _canonical(cycle)
                if key not in seen:
                    seen.add(key)
                    cycles.append(cycle)
            elif target not in visited:
                visit(int(j))
        stack.pop()
        visiting.discard(name)
        visited.add(name)

    for i, name in enumerate(names):
        if name not in visited:
            visit(i)

    if include_self_references:
        cycles.extend([name, name] for name in sorted(graph.self_references))
    return cycles


def has_cycles(graph: DependencyGraph, *, ignore_optional: bool = False) -> bool:
    return bool(detect_cycles(graph, ignore_optional=ignore_optional))


# ----------------------------------------------------------------------------
# Queries
# ----------------------------------------------------------------------------

def get_all_dependencies(graph: DependencyGraph, type_name: str, *, ignore_optional: bool = False) -> Set[str]:
    """Every type transitively reachable from ``type_name`` through ordering edges."""
    if type_name not in graph.nodes:
        return set()
    names, matrix = graph.adjacency(ignore_optional=ignore_optional)
    mask = _reachable(names, matrix, type_name)
    return {name for name, keep in zip(names, mask) if keep and name != type_name}


def visualize_graph(graph: DependencyGraph) -> str:
    """Plain-text rendering, one line per edge, followed by detected cycles."""
    lines: List[str] = []
    for name in graph.names:
        outgoing = sorted(
            (edge for edge in graph.edges + graph.soft_edges if edge.source == name),
            key=lambda edge: (edge.target, edge.field_name),
        )
        if not outgoing:
            lines.append(name)
            continue
        for edge in outgoing:
            suffix = "[]" if edge.is_array else ""
            lines.append(f"{name} {edge.operator} {edge.target}{suffix} ({edge.label})")
    for ref in sorted(graph.self_references):
        lines.append(f"{ref} -> {ref} (self)")
    for cycle in detect_cycles(graph):
        lines.append("cycle: " + " -> ".join(cycle))
    return "\n".join(lines)
