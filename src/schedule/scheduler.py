"""List scheduling of thread graphs with per-thread serialization.

Every node starts once all of its known dependencies have finished and its
thread is free. The algorithm is Kahn's topological sort swept in passes over
the unscheduled nodes in insertion order, which makes tie-breaking
deterministic: a node that becomes ready earlier in a pass claims its thread
before nodes that follow it in insertion order.
"""

import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from src.graph.model import GraphModel

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ScheduledEntry:
    """Computed timing of a single node.

    Attributes:
        start: Time the node starts
        finish: Time the node finishes (start + duration)
        thread: Thread the node runs on
        duration: Duration used for scheduling
    """

    start: float
    finish: float
    thread: str
    duration: float

    def to_dict(self) -> dict[str, float | str]:
        return {
            "start": self.start,
            "finish": self.finish,
            "thread": self.thread,
            "duration": self.duration,
        }


@dataclass
class ScheduleResult:
    """Schedule for every resolvable node plus the nodes left unresolved.

    Attributes:
        entries: Mapping of node id to its ScheduledEntry, in scheduling order
        unresolved: Ids that could not be scheduled (cycles or nodes waiting
            on a cycle), in insertion order
    """

    entries: dict[str, ScheduledEntry] = field(default_factory=dict)
    unresolved: list[str] = field(default_factory=list)

    @property
    def makespan(self) -> float:
        """Latest finish time across all scheduled nodes (0 when empty)."""
        return max((entry.finish for entry in self.entries.values()), default=0.0)

    def is_complete(self) -> bool:
        return not self.unresolved

    def to_dict(self) -> dict[str, dict[str, float | str]]:
        return {node_id: entry.to_dict() for node_id, entry in self.entries.items()}


def effective_duration(duration: float) -> float:
    """Duration used for timing; non-finite or negative values count as zero."""
    if not math.isfinite(duration) or duration < 0:
        return 0.0
    return duration


class Scheduler:
    """Greedy list scheduler.

    Dangling dependencies (ids that are not in the graph) are treated as
    already satisfied. They never block scheduling; the validator reports
    them separately.

    Example:
        >>> from src.graph.model import GraphModel
        >>> graph = GraphModel()
        >>> _ = graph.add_node("t0", "a", 10)
        >>> _ = graph.add_node("t0", "b", 5)
        >>> graph.connect("t0:a", "t0:b")
        >>> result = Scheduler().schedule(graph)
        >>> result.entries["t0:b"].start, result.entries["t0:b"].finish
        (10, 15)
    """

    def schedule(self, graph: "GraphModel") -> ScheduleResult:
        """Compute start and finish times for every resolvable node.

        Args:
            graph: The graph to schedule; it is not modified

        Returns:
            ScheduleResult with entries and the unresolved set
        """
        logger.debug("scheduling_started", node_count=len(graph))

        thread_available: dict[str, float] = dict.fromkeys(graph.threads(), 0)
        result = ScheduleResult()

        # Only dependencies on known nodes count toward the in-degree
        remaining_deps: dict[str, int] = {}
        for node in graph:
            remaining_deps[node.node_id] = sum(1 for dep in node.depends_on if dep in graph)

        unscheduled = graph.node_ids()
        passes = 0

        while unscheduled and passes < len(graph):
            passes += 1
            still_waiting = []

            for node_id in unscheduled:
                if remaining_deps[node_id] > 0:
                    still_waiting.append(node_id)
                    continue

                node = graph.get(node_id)
                deps_finish = max(
                    (result.entries[dep].finish for dep in node.depends_on if dep in result.entries),
                    default=0,
                )
                start = max(deps_finish, thread_available[node.thread])
                duration = effective_duration(node.duration)
                finish = start + duration

                result.entries[node_id] = ScheduledEntry(
                    start=start,
                    finish=finish,
                    thread=node.thread,
                    duration=duration,
                )
                thread_available[node.thread] = finish

                # Asymmetric input may list a dependent whose depends_on does not
                # contain this node, so count from the dependent's side
                for other in graph:
                    if node_id in other.depends_on:
                        remaining_deps[other.node_id] -= 1

            if len(still_waiting) == len(unscheduled):
                break
            unscheduled = still_waiting

        result.unresolved = unscheduled

        if result.unresolved:
            logger.warning(
                "unscheduled_nodes_detected",
                count=len(result.unresolved),
                nodes=result.unresolved,
            )

        logger.debug(
            "scheduling_complete",
            scheduled=len(result.entries),
            unresolved=len(result.unresolved),
            passes=passes,
            makespan=result.makespan,
        )

        return result
