"""Dependency graph for formula cells, built on demand from a grid snapshot."""

from __future__ import annotations

from collections import deque
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from smarttable.calc._parser import cell_sort_key, extract_dependencies, formula_body, is_formula

if TYPE_CHECKING:
    from smarttable._table import Table


class DependencyGraph:
    """Direct and reverse reference edges between formula cells.

    The graph is a throwaway view of one snapshot: build it, query it, drop it.
    Nothing is cached between evaluations.
    """

    __slots__ = ("dependencies", "dependents", "formulas")

    def __init__(self) -> None:
        # cell -> set of cells it reads from
        self.dependencies: dict[str, set[str]] = {}
        # cell -> set of cells that read from it (reverse edges)
        self.dependents: dict[str, set[str]] = {}
        # cell -> formula string
        self.formulas: dict[str, str] = {}

    def add_formula(self, cell_id: str, formula: str) -> None:
        """Register a formula cell and its dependencies."""
        self.formulas[cell_id] = formula
        refs = extract_dependencies(formula_body(formula))

        self.dependencies[cell_id] = set(refs)

        for ref in refs:
            if ref not in self.dependents:
                self.dependents[ref] = set()
            self.dependents[ref].add(cell_id)

    def dependents_of(self, cell_id: str) -> list[str]:
        """Formula cells that reference *cell_id* directly, column-major."""
        return sorted(self.dependents.get(cell_id, set()), key=cell_sort_key)

    def affected_cells(self, changed_cells: set[str]) -> list[str]:
        """All formula cells that transitively read from *changed_cells*.

        BFS over reverse edges; cycles are tolerated.  The changed cells
        themselves are never included.
        """
        affected: list[str] = []
        queue: deque[str] = deque(changed_cells)
        visited: set[str] = set(changed_cells)

        while queue:
            cell = queue.popleft()
            for dep in sorted(self.dependents.get(cell, set()), key=cell_sort_key):
                if dep not in visited:
                    visited.add(dep)
                    queue.append(dep)
                    affected.append(dep)

        return affected

    @classmethod
    def from_grid(cls, data: Mapping[str, Mapping[int, Any]]) -> DependencyGraph:
        """Build a graph by scanning every cell of a column -> row -> value grid."""
        graph = cls()
        for column, cells in data.items():
            for row, value in cells.items():
                if is_formula(value):
                    graph.add_formula(f"{column}{row}", value)
        return graph

    @classmethod
    def from_table(cls, table: Table) -> DependencyGraph:
        return cls.from_grid(table.data)
