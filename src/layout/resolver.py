"""Timeline geometry for scheduled thread graphs.

Boxes start at a position proportional to their scheduled start time, one
lane per thread. The resolver then shifts boxes right until every dependency
arrow (drawn from a dependency's right edge to the dependent's left edge)
points left-to-right with at least ``gap`` pixels, carrying later boxes on
the same lane along with each shift.
"""

import math
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from src.config import LayoutConfig

if TYPE_CHECKING:
    from src.graph.model import GraphModel
    from src.schedule.scheduler import ScheduleResult

logger = structlog.get_logger(__name__)

_NUMERIC_THREAD = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)$")


@dataclass
class NodeGeometry:
    """Horizontal extent and lane of one box.

    Attributes:
        left: Left edge in pixels
        width: Box width in pixels
        lane: Index of the thread lane
        vertical_center: Vertical center of the box in pixels
    """

    left: float
    width: float
    lane: int
    vertical_center: float

    @property
    def right(self) -> float:
        return self.left + self.width

    def to_dict(self) -> dict[str, float]:
        return {
            "left": self.left,
            "right": self.right,
            "vertical_center": self.vertical_center,
        }


@dataclass
class Layout:
    """Geometry of every scheduled node plus the canvas it lives on.

    Attributes:
        nodes: Mapping of node id to its geometry
        lanes: Thread ids in lane order
        scale: Pixels per time unit used for the initial positions
        lane_height: Height of one lane in pixels
    """

    nodes: dict[str, NodeGeometry] = field(default_factory=dict)
    lanes: list[str] = field(default_factory=list)
    scale: float = 1.0
    lane_height: float = 0.0

    @property
    def width(self) -> float:
        return max((geometry.right for geometry in self.nodes.values()), default=0.0)

    @property
    def height(self) -> float:
        return len(self.lanes) * self.lane_height

    def to_dict(self) -> dict[str, dict[str, float]]:
        return {node_id: geometry.to_dict() for node_id, geometry in self.nodes.items()}


def lane_order(threads: list[str]) -> list[str]:
    """Order thread ids for display: numeric ids by value, then the rest.

    Example:
        >>> lane_order(["10", "main", "2", "io"])
        ['2', '10', 'io', 'main']
    """
    numeric = [t for t in threads if _NUMERIC_THREAD.match(t)]
    named = [t for t in threads if not _NUMERIC_THREAD.match(t)]
    return sorted(numeric, key=float) + sorted(named)


def time_scale(makespan: float, config: LayoutConfig) -> float:
    """Pick pixels per time unit so short timelines still get enough room."""
    total = max(makespan, config.min_total_time)
    scale = math.floor(config.target_width / max(1.0, total))
    return float(max(config.min_scale, min(config.max_scale, scale)))


class LayoutResolver:
    """Positions scheduled nodes and resolves arrow conflicts.

    Example:
        >>> resolver = LayoutResolver()
        >>> layout = resolver.layout(graph, schedule)  # doctest: +SKIP
        >>> layout.nodes["t1:b"].left >= layout.nodes["t0:a"].right + 40  # doctest: +SKIP
        True
    """

    def __init__(self, config: LayoutConfig | None = None):
        """Initialize the resolver.

        Args:
            config: Geometry constants; defaults match the timeline renderer
        """
        self.config = config or LayoutConfig()

    def layout(
        self,
        graph: "GraphModel",
        schedule: "ScheduleResult",
        scale: float | None = None,
    ) -> Layout:
        """Compute initial geometry and resolve it in one call."""
        layout = self.initial_geometry(graph, schedule, scale)
        self.resolve(graph, layout)
        return layout

    def initial_geometry(
        self,
        graph: "GraphModel",
        schedule: "ScheduleResult",
        scale: float | None = None,
    ) -> Layout:
        """Place every scheduled node proportionally to its start time.

        Args:
            graph: Graph the schedule was computed from (for lane ordering)
            schedule: Schedule to place; unresolved nodes get no geometry
            scale: Pixels per time unit; derived from the makespan if None

        Returns:
            Layout before conflict resolution
        """
        config = self.config
        if scale is None:
            scale = time_scale(schedule.makespan, config)

        lanes = lane_order(graph.threads())
        lane_index = {thread: index for index, thread in enumerate(lanes)}
        layout = Layout(lanes=lanes, scale=scale, lane_height=config.lane_height)

        for node_id, entry in schedule.entries.items():
            lane = lane_index[entry.thread]
            layout.nodes[node_id] = NodeGeometry(
                left=scale * entry.start + config.margin,
                width=max(config.min_width, scale * entry.duration),
                lane=lane,
                vertical_center=lane * config.lane_height + config.lane_height / 2,
            )

        logger.debug(
            "initial_geometry_computed",
            node_count=len(layout.nodes),
            lane_count=len(lanes),
            scale=scale,
        )

        return layout

    def resolve(self, graph: "GraphModel", layout: Layout) -> int:
        """Shift boxes until dependency arrows point left-to-right.

        With ``converge`` disabled exactly one forward pass is made, which can
        leave a constraint violated when a later shift moves a dependency that
        was already processed. Otherwise passes repeat until nothing moves.

        Returns:
            Number of passes performed
        """
        max_passes = len(layout.nodes) + 1 if self.config.converge else 1
        passes = 0

        while passes < max_passes:
            passes += 1
            if not self._resolve_pass(graph, layout):
                break
        else:
            if self.config.converge:
                logger.warning("layout_did_not_converge", passes=passes)

        logger.debug("layout_resolved", passes=passes, node_count=len(layout.nodes))
        return passes

    def _resolve_pass(self, graph: "GraphModel", layout: Layout) -> bool:
        """Run one forward pass in left-edge order.

        Returns:
            True if any box was moved
        """
        gap = self.config.gap
        epsilon = self.config.epsilon
        positions = layout.nodes
        moved = False

        order = sorted(positions, key=lambda node_id: positions[node_id].left)

        for node_id in order:
            geometry = positions[node_id]
            dependencies = [d for d in graph.get(node_id).depends_on if d in positions]
            if not dependencies:
                continue

            required_left = max(positions[d].right for d in dependencies) + gap
            if geometry.left + epsilon >= required_left:
                continue

            delta = required_left - geometry.left
            original_left = geometry.left
            geometry.left += delta
            moved = True

            # Carry later boxes on the same lane so the shift cannot overlap
            # them; zero-length ancestors at the same position stay behind
            ancestors = self._ancestors(graph, node_id)
            for other_id, other in positions.items():
                if other_id == node_id or other_id in ancestors or other.lane != geometry.lane:
                    continue
                if other.left >= original_left - epsilon:
                    other.left += delta

            logger.debug("box_shifted", node_id=node_id, delta=delta)

        return moved

    def _ancestors(self, graph: "GraphModel", node_id: str) -> set[str]:
        """Collect every id reachable through ``depends_on`` edges."""
        seen: set[str] = set()
        stack = list(graph.get(node_id).depends_on)

        while stack:
            current = stack.pop()
            if current in seen or current not in graph:
                continue
            seen.add(current)
            stack.extend(graph.get(current).depends_on)

        return seen
