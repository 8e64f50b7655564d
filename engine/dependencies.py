"""Dependency graph between formula cells and the cells they read."""

from __future__ import annotations

from collections import deque
from typing import Dict, Iterable, List, NamedTuple, Optional, Set

from core.exceptions import FormulaParseError
from engine.formula import parse_formula
from engine.references import CellRange, split_address


class EvaluationPlan(NamedTuple):
    """Order in which to recalculate a set of formula cells.

    ``head`` is free of cycles and runs first. ``cyclic`` cells lie on a
    cycle (or between two cycles) and get a circular-reference error.
    ``tail`` depends on cyclic cells and runs last, after the errors are set.
    """

    head: List[str]
    cyclic: Set[str]
    tail: List[str]


def _kahn(nodes: Iterable[str], adjacency: Dict[str, Set[str]]) -> List[str]:
    in_degree: Dict[str, int] = {node: 0 for node in nodes}
    for node in in_degree:
        for neighbor in adjacency.get(node, set()):
            if neighbor in in_degree:
                in_degree[neighbor] += 1

    queue = deque(sorted(node for node, deg in in_degree.items() if deg == 0))
    order: List[str] = []
    while queue:
        node = queue.popleft()
        order.append(node)
        for neighbor in sorted(adjacency.get(node, set())):
            if neighbor not in in_degree:
                continue
            in_degree[neighbor] -= 1
            if in_degree[neighbor] == 0:
                queue.append(neighbor)
    return order


class DependencyGraph:
    """Formula cell -> referenced cells, with the reverse mapping.

    Ranges larger than the expansion limit are kept whole and matched by
    containment instead of being expanded into individual edges.
    """

    def __init__(self):
        self._precedents: Dict[str, Set[str]] = {}
        self._dependents: Dict[str, Set[str]] = {}
        self._range_precedents: Dict[str, List[CellRange]] = {}

    def __contains__(self, address: str) -> bool:
        return address in self._precedents

    def __len__(self) -> int:
        return len(self._precedents)

    def set_formula(self, address: str, formula: str, max_expansion: Optional[int] = None) -> None:
        """Replace the edges of ``address`` with those read by ``formula``."""
        self.remove(address)
        try:
            cells, large = parse_formula(formula).dependencies(max_expansion)
        except FormulaParseError:
            cells, large = [], []

        self._precedents[address] = set(cells)
        for ref in cells:
            self._dependents.setdefault(ref, set()).add(address)
        if large:
            self._range_precedents[address] = large

    def remove(self, address: str) -> None:
        for ref in self._precedents.pop(address, set()):
            dependents = self._dependents.get(ref)
            if dependents is None:
                continue
            dependents.discard(address)
            if not dependents:
                del self._dependents[ref]
        self._range_precedents.pop(address, None)

    def clear(self) -> None:
        self._precedents.clear()
        self._dependents.clear()
        self._range_precedents.clear()

    def precedents(self, address: str) -> Set[str]:
        return set(self._precedents.get(address, set()))

    def dependents(self, address: str) -> Set[str]:
        """Formula cells that read ``address`` directly."""
        result = set(self._dependents.get(address, set()))
        if self._range_precedents:
            row, col = split_address(address)
            for formula_address, ranges in self._range_precedents.items():
                for cell_range in ranges:
                    if (
                        cell_range.min_row <= row <= cell_range.max_row
                        and cell_range.min_col <= col <= cell_range.max_col
                    ):
                        result.add(formula_address)
                        break
        return result

    def affected(self, sources: Iterable[str]) -> Set[str]:
        """All formula cells that transitively read any of ``sources``."""
        seen: Set[str] = set()
        stack = list(sources)
        while stack:
            node = stack.pop()
            for dependent in self.dependents(node):
                if dependent not in seen:
                    seen.add(dependent)
                    stack.append(dependent)
        return seen

    def plan(self, targets: Iterable[str]) -> EvaluationPlan:
        """Topologically order ``targets``, isolating cycles."""
        nodes = set(targets)
        adjacency = {
            node: {dep for dep in self.dependents(node) if dep in nodes} for node in nodes
        }
        head = _kahn(nodes, adjacency)
        if len(head) == len(nodes):
            return EvaluationPlan(head=head, cyclic=set(), tail=[])

        blocked = nodes - set(head)
        reverse: Dict[str, Set[str]] = {node: set() for node in blocked}
        for node in blocked:
            for dep in adjacency[node]:
                if dep in blocked:
                    reverse[dep].add(node)

        # Peeling sinks of the blocked subgraph leaves only cells upstream of a cycle.
        downstream = _kahn(blocked, reverse)
        cyclic = blocked - set(downstream)
        return EvaluationPlan(head=head, cyclic=cyclic, tail=list(reversed(downstream)))

    def cycle_through(self, address: str) -> Optional[List[str]]:
        """A path ``address -> ... -> address`` if one exists."""
        parents: Dict[str, Optional[str]] = {address: None}
        queue = deque([address])
        while queue:
            node = queue.popleft()
            for dependent in sorted(self.dependents(node)):
                if dependent == address:
                    path = [node]
                    while parents[path[-1]] is not None:
                        path.append(parents[path[-1]])
                    path.reverse()
                    return path + [address]
                if dependent not in parents:
                    parents[dependent] = node
                    queue.append(dependent)
        return None
