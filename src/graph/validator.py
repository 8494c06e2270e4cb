"""Structural validation of thread graphs.

This module runs a battery of independent checks over a GraphModel and
collects categorized diagnostics: invalid durations, duplicate thread entry
points, asymmetric or dangling edges, ambiguous ordering within a thread and
nodes the scheduler could not place. Validation never mutates the graph and
never stops at the first problem.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from graphlib import CycleError, TopologicalSorter
from typing import TYPE_CHECKING

import structlog

from src.schedule.scheduler import Scheduler, ScheduleResult

if TYPE_CHECKING:
    from src.graph.model import GraphModel

logger = structlog.get_logger(__name__)


class DiagnosticCategory(Enum):
    """Diagnostic category enumeration."""

    PARSE_ERROR = "ParseError"
    INVALID_DURATION = "InvalidDuration"
    DUPLICATE_ENTRY_POINT = "DuplicateEntryPoint"
    EDGE_ASYMMETRY = "EdgeAsymmetry"
    DANGLING_REFERENCE = "DanglingReference"
    AMBIGUOUS_ORDERING = "AmbiguousOrdering"
    UNRESOLVED_DEPENDENCY = "UnresolvedDependency"


@dataclass(frozen=True)
class Diagnostic:
    """A non-fatal report of a structural or scheduling problem.

    Attributes:
        category: What kind of problem was found
        message: Human-readable description including the offending ids
        nodes: Node ids (or the file name for parse errors) involved
    """

    category: DiagnosticCategory
    message: str
    nodes: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, object]:
        return {
            "category": self.category.value,
            "message": self.message,
            "nodes": list(self.nodes),
        }


@dataclass
class ValidationReport:
    """Report containing validation results for a thread graph.

    Attributes:
        diagnostics: All diagnostics in the order the checks produced them
        schedule: Schedule computed while checking for unresolved nodes
    """

    diagnostics: list[Diagnostic] = field(default_factory=list)
    schedule: ScheduleResult = field(default_factory=ScheduleResult)

    @property
    def is_valid(self) -> bool:
        return not self.diagnostics

    def add(self, category: DiagnosticCategory, message: str, nodes: tuple[str, ...] = ()) -> None:
        """Record a diagnostic."""
        self.diagnostics.append(Diagnostic(category=category, message=message, nodes=nodes))
        logger.warning("validation_diagnostic", category=category.value, message=message)

    def by_category(self, category: DiagnosticCategory) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.category == category]

    def summary(self) -> str:
        """Generate a human-readable summary of the validation report."""
        lines = []
        lines.append(f"Validation Status: {'PASS' if self.is_valid else 'FAIL'}")
        lines.append(f"Diagnostics: {len(self.diagnostics)}")
        lines.append(f"Scheduled: {len(self.schedule.entries)}")
        lines.append(f"Unresolved: {len(self.schedule.unresolved)}")

        for category in DiagnosticCategory:
            found = self.by_category(category)
            if found:
                lines.append(f"\n{category.value}:")
                lines.extend(f"  - {d.message}" for d in found)

        return "\n".join(lines)


class GraphValidator:
    """Validator for thread graphs with detailed diagnostics.

    Checks:
    - Provided durations are finite and positive
    - Each thread has at most one entry node
    - ``depends_on``/``dependents`` are symmetric and reference known nodes
    - Nodes sharing a thread are ordered by some dependency path
    - Every node can be scheduled (no cycles)
    """

    def __init__(self, scheduler: Scheduler | None = None):
        """Initialize the validator.

        Args:
            scheduler: Scheduler used for the unresolved-node check
        """
        self.scheduler = scheduler or Scheduler()

    def validate(self, graph: "GraphModel") -> ValidationReport:
        """Validate a graph and generate a detailed report.

        Args:
            graph: The GraphModel to validate

        Returns:
            ValidationReport with all diagnostics and the computed schedule
        """
        logger.info("starting_graph_validation", node_count=len(graph))

        report = ValidationReport()

        self._check_durations(graph, report)
        self._check_entry_points(graph, report)
        self._check_edge_symmetry(graph, report)
        self._check_thread_ordering(graph, report)

        report.schedule = self.scheduler.schedule(graph)
        self._check_unresolved(graph, report)

        logger.info(
            "graph_validation_complete",
            is_valid=report.is_valid,
            diagnostic_count=len(report.diagnostics),
            unresolved_count=len(report.schedule.unresolved),
        )

        return report

    def _check_durations(self, graph: "GraphModel", report: ValidationReport) -> None:
        for node in graph:
            if not node.duration_provided:
                continue
            if not math.isfinite(node.duration) or node.duration <= 0:
                report.add(
                    DiagnosticCategory.INVALID_DURATION,
                    f"Invalid duration for {node.node_id}: {node.duration}",
                    (node.node_id,),
                )

    def _check_entry_points(self, graph: "GraphModel", report: ValidationReport) -> None:
        entries_by_thread: dict[str, list[str]] = {}
        for node in graph:
            if not node.depends_on:
                entries_by_thread.setdefault(node.thread, []).append(node.node_id)

        for thread, entries in entries_by_thread.items():
            if len(entries) > 1:
                report.add(
                    DiagnosticCategory.DUPLICATE_ENTRY_POINT,
                    f"Multiple entry modules on thread {thread}: {', '.join(entries)}",
                    tuple(entries),
                )

    def _check_edge_symmetry(self, graph: "GraphModel", report: ValidationReport) -> None:
        """Check both edge views against each other.

        Each direction is scanned on its own, so a half-updated edge is found
        from whichever side still holds it.
        """
        for node in graph:
            for dependent in sorted(node.dependents):
                if dependent not in graph:
                    report.add(
                        DiagnosticCategory.DANGLING_REFERENCE,
                        f"Module {dependent} not found (listed in 'to' of {node.node_id})",
                        (node.node_id, dependent),
                    )
                elif node.node_id not in graph.get(dependent).depends_on:
                    report.add(
                        DiagnosticCategory.EDGE_ASYMMETRY,
                        f"Inconsistent edge: {node.node_id} lists {dependent} in 'to', "
                        f"but {dependent} does not list {node.node_id} in 'from'",
                        (node.node_id, dependent),
                    )

        for node in graph:
            for dependency in sorted(node.depends_on):
                if dependency not in graph:
                    report.add(
                        DiagnosticCategory.DANGLING_REFERENCE,
                        f"Module {dependency} not found (listed in 'from' of {node.node_id})",
                        (node.node_id, dependency),
                    )
                elif node.node_id not in graph.get(dependency).dependents:
                    report.add(
                        DiagnosticCategory.EDGE_ASYMMETRY,
                        f"Inconsistent edge: {node.node_id} lists {dependency} in 'from', "
                        f"but {dependency} does not list {node.node_id} in 'to'",
                        (dependency, node.node_id),
                    )

    def _reachable_from(self, graph: "GraphModel", node_id: str) -> set[str]:
        """Collect every id reachable through ``dependents`` edges.

        Iterative DFS; the seen-set makes it safe on cyclic graphs.
        """
        seen: set[str] = set()
        stack = list(graph.get(node_id).dependents)

        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            if current in graph:
                stack.extend(d for d in graph.get(current).dependents if d not in seen)

        return seen

    def _check_thread_ordering(self, graph: "GraphModel", report: ValidationReport) -> None:
        reachable = {node_id: self._reachable_from(graph, node_id) for node_id in graph.node_ids()}

        for thread in graph.threads():
            members = [node.node_id for node in graph.nodes_in_thread(thread)]
            for i, a in enumerate(members):
                for b in members[i + 1 :]:
                    if b not in reachable[a] and a not in reachable[b]:
                        report.add(
                            DiagnosticCategory.AMBIGUOUS_ORDERING,
                            f"Execution order on thread {thread} is unknown: {a} and {b}",
                            (a, b),
                        )

    def _check_unresolved(self, graph: "GraphModel", report: ValidationReport) -> None:
        unresolved = report.schedule.unresolved
        if not unresolved:
            return

        message = f"Circular dependency between modules: {', '.join(unresolved)}"
        cycle = self._find_cycle(graph, unresolved)
        if cycle:
            message += f" (cycle: {' -> '.join(cycle)})"

        report.add(DiagnosticCategory.UNRESOLVED_DEPENDENCY, message, tuple(unresolved))

    def _find_cycle(self, graph: "GraphModel", unresolved: list[str]) -> list[str]:
        """Return one concrete cycle among the unresolved nodes, if any."""
        members = set(unresolved)
        sorter = TopologicalSorter(
            {node_id: graph.get(node_id).depends_on & members for node_id in unresolved},
        )
        try:
            sorter.prepare()
        except CycleError as e:
            # graphlib reports the cycle along dependency edges; reverse it to
            # follow execution order
            return list(reversed(e.args[1]))
        return []
