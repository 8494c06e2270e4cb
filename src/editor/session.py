"""Editing session with transactional updates and bounded undo/redo.

Every edit applies its mutation to a copy of the graph and recomputes
validation, schedule and layout before the copy becomes current; the previous
graph is kept as the undo snapshot. If the mutation fails, the copy is
discarded and the error is re-raised, so observers never see a half-applied
edit.
"""

import threading
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

import structlog

from src.config import AppConfig
from src.graph.builder import GraphBuilder, ParseError
from src.graph.model import GraphModel
from src.graph.validator import DiagnosticCategory, GraphValidator, ValidationReport
from src.layout.resolver import Layout, LayoutResolver

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class HistoryError(Exception):
    """Exception raised when undo or redo has nothing to restore."""

    def __init__(self, message: str):
        """Initialize the exception with a descriptive message.

        Args:
            message: Description of the history error
        """
        super().__init__(message)
        self.message = message


@dataclass
class SessionState:
    """Everything the renderer needs after an edit.

    Attributes:
        graph: The current graph (owned by the session, treat as read-only)
        report: Diagnostics plus the schedule they were computed with
        layout: Final geometry of every scheduled node
        parse_errors: Errors from the last load of thread files
    """

    graph: GraphModel
    report: ValidationReport
    layout: Layout
    parse_errors: list[ParseError] = field(default_factory=list)

    @property
    def schedule(self):
        return self.report.schedule

    def to_dict(self) -> dict[str, Any]:
        """Serialize schedule, diagnostics and geometry for output."""
        return {
            "schedule": self.report.schedule.to_dict(),
            "unresolved": list(self.report.schedule.unresolved),
            "diagnostics": [d.to_dict() for d in self.report.diagnostics],
            "layout": self.layout.to_dict(),
        }


def analyze(
    graph: GraphModel,
    config: AppConfig | None = None,
    parse_errors: list[ParseError] | None = None,
) -> SessionState:
    """Validate, schedule and lay out a graph.

    Parse errors are folded into the report as ParseError diagnostics ahead
    of the structural ones.

    Args:
        graph: Graph to analyze; it is not modified
        config: Application configuration (defaults if None)
        parse_errors: Errors collected while building the graph

    Returns:
        SessionState for the graph
    """
    config = config or AppConfig()
    parse_errors = list(parse_errors or [])

    report = GraphValidator().validate(graph)
    if parse_errors:
        parsed = ValidationReport(schedule=report.schedule)
        for error in parse_errors:
            parsed.add(DiagnosticCategory.PARSE_ERROR, str(error), (error.file_name,))
        parsed.diagnostics.extend(report.diagnostics)
        report = parsed

    layout = LayoutResolver(config.layout).layout(graph, report.schedule)

    return SessionState(graph=graph, report=report, layout=layout, parse_errors=parse_errors)


class EditSession:
    """Single owner of the current graph during interactive editing.

    All public operations are serialized with a re-entrant lock. Each edit is
    a transaction: copy, mutate the copy, analyze, publish. The undo and redo
    stacks hold full graph snapshots and are bounded by
    ``config.session.history_limit``; any new edit clears the redo stack.

    Example:
        >>> session = EditSession()
        >>> a = session.create_node("t0", "a", 10)
        >>> b = session.create_node("t1", "b", 5)
        >>> state = session.connect(a, b)
        >>> state.schedule.entries[b].start
        10
        >>> state = session.undo()
        >>> state.schedule.entries[b].start
        0
    """

    def __init__(self, graph: GraphModel | None = None, config: AppConfig | None = None):
        """Initialize the session.

        Args:
            graph: Initial graph; an empty graph if None
            config: Application configuration (defaults if None)
        """
        self.config = config or AppConfig()
        self._lock = threading.RLock()
        limit = self.config.session.history_limit
        self._undo: deque[tuple[GraphModel, list[ParseError]]] = deque(maxlen=limit)
        self._redo: deque[tuple[GraphModel, list[ParseError]]] = deque(maxlen=limit)
        self._graph = graph if graph is not None else GraphModel()
        self._parse_errors: list[ParseError] = []
        self._state = analyze(self._graph, self.config)

        logger.info("edit_session_initialized", node_count=len(self._graph), history_limit=limit)

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def graph(self) -> GraphModel:
        return self._graph

    def can_undo(self) -> bool:
        return bool(self._undo)

    def can_redo(self) -> bool:
        return bool(self._redo)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def apply(self, description: str, mutation: Callable[[GraphModel], T]) -> T:
        """Run ``mutation`` against the graph as one undoable edit.

        Args:
            description: Short name of the edit, used for logging
            mutation: Callable receiving the graph to mutate

        Returns:
            Whatever ``mutation`` returns

        Raises:
            Exception: Any error raised by ``mutation``; the current graph and
                the published state are left untouched
        """
        with self._lock:
            working = self._graph.copy()
            try:
                result = mutation(working)
            except Exception as e:
                logger.warning("edit_failed_discarding_changes", edit=description, error=str(e))
                raise

            self._undo.append((self._graph, self._parse_errors))
            self._redo.clear()
            self._graph = working
            self._publish()

            logger.info(
                "edit_applied",
                edit=description,
                node_count=len(self._graph),
                undo_depth=len(self._undo),
            )
            return result

    def _publish(self) -> None:
        self._state = analyze(self._graph, self.config, self._parse_errors)

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    def create_node(self, thread: str, short_name: str, duration: float | None = None) -> str:
        """Create a node; returns its id."""
        return self.apply("create_node", lambda g: g.add_node(thread, short_name, duration))

    def move_node(self, node_id: str, new_thread: str) -> str:
        """Move a node to another thread; returns its new id."""
        return self.apply("move_node", lambda g: g.move_node(node_id, new_thread))

    def rename_node(self, node_id: str, new_short_name: str) -> str:
        """Rename a node; returns its new id."""
        return self.apply("rename_node", lambda g: g.rename_node(node_id, new_short_name))

    def set_duration(self, node_id: str, duration: float | None) -> SessionState:
        self.apply("set_duration", lambda g: g.set_duration(node_id, duration))
        return self._state

    def connect(self, dependency: str, dependent: str) -> SessionState:
        """Make ``dependent`` wait for ``dependency``."""
        self.apply("connect", lambda g: g.connect(dependency, dependent))
        return self._state

    def disconnect(self, dependency: str, dependent: str) -> SessionState:
        self.apply("disconnect", lambda g: g.disconnect(dependency, dependent))
        return self._state

    def delete_node(self, node_id: str) -> SessionState:
        self.apply("delete_node", lambda g: g.delete_node(node_id))
        return self._state

    def reload(self, files: dict[str, str]) -> SessionState:
        """Replace the whole graph with one built from thread files.

        The previous graph stays on the undo stack.
        """
        result = GraphBuilder().build(files)

        with self._lock:
            self._undo.append((self._graph, self._parse_errors))
            self._redo.clear()
            self._graph = result.graph
            self._parse_errors = result.parse_errors
            self._publish()

        logger.info(
            "session_reloaded",
            node_count=len(result.graph),
            parse_error_count=len(result.parse_errors),
        )
        return self._state

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def undo(self) -> SessionState:
        """Restore the graph from before the last edit.

        Raises:
            HistoryError: If there is nothing to undo
        """
        with self._lock:
            if not self._undo:
                msg = "Nothing to undo"
                raise HistoryError(msg)

            self._redo.append((self._graph, self._parse_errors))
            self._graph, self._parse_errors = self._undo.pop()
            self._publish()

            logger.info("edit_undone", undo_depth=len(self._undo), redo_depth=len(self._redo))
            return self._state

    def redo(self) -> SessionState:
        """Re-apply the last undone edit.

        Raises:
            HistoryError: If there is nothing to redo
        """
        with self._lock:
            if not self._redo:
                msg = "Nothing to redo"
                raise HistoryError(msg)

            self._undo.append((self._graph, self._parse_errors))
            self._graph, self._parse_errors = self._redo.pop()
            self._publish()

            logger.info("edit_redone", undo_depth=len(self._undo), redo_depth=len(self._redo))
            return self._state
