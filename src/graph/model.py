"""Thread graph model with invariant-preserving mutations.

This module provides the GraphModel class which owns every node of a
thread-flow diagram. Nodes are identified by a composite ``thread:module`` id
and carry two edge views, ``depends_on`` and ``dependents``, which must stay
symmetric.
"""

from dataclasses import dataclass, field

import structlog

logger = structlog.get_logger(__name__)

ID_SEPARATOR = ":"
RESERVED_NAME = "none"


class GraphError(Exception):
    """Exception raised when a graph mutation cannot be applied."""

    def __init__(self, message: str):
        """Initialize the exception with a descriptive message.

        Args:
            message: Description of the graph error
        """
        super().__init__(message)
        self.message = message


class UnknownNodeError(GraphError):
    """Raised when an operation references a node id that does not exist."""

    def __init__(self, node_id: str):
        super().__init__(f"Unknown node: {node_id}")
        self.node_id = node_id


class DuplicateNodeError(GraphError):
    """Raised when a node id is already taken."""

    def __init__(self, node_id: str):
        super().__init__(f"Node already exists: {node_id}")
        self.node_id = node_id


def make_node_id(thread: str, short_name: str) -> str:
    """Build the composite ``thread:module`` identifier."""
    return f"{thread}{ID_SEPARATOR}{short_name}"


def split_node_id(node_id: str) -> tuple[str, str]:
    """Split a composite id into ``(thread, module)`` on the first separator.

    Example:
        >>> split_node_id("t0:load:config")
        ('t0', 'load:config')
    """
    thread, sep, short_name = node_id.partition(ID_SEPARATOR)
    if not sep:
        return "", node_id
    return thread, short_name


def _check_name(kind: str, name: str) -> None:
    if not name:
        msg = f"{kind} must not be empty"
        raise GraphError(msg)
    if name != name.strip():
        msg = f"{kind} {name!r} must not start or end with whitespace"
        raise GraphError(msg)
    if name.lower() == RESERVED_NAME:
        msg = f"{kind} {name!r} is reserved for \"no reference\""
        raise GraphError(msg)


def check_thread_id(thread: str) -> None:
    """Reject thread ids that could not survive an export and re-import.

    Raises:
        GraphError: If the id is empty, untrimmed, reserved or contains ``:``
    """
    _check_name("Thread id", thread)
    if ID_SEPARATOR in thread:
        msg = f"Thread id {thread!r} must not contain {ID_SEPARATOR!r}"
        raise GraphError(msg)


def check_module_name(short_name: str) -> None:
    """Reject module names that could not survive an export and re-import.

    Raises:
        GraphError: If the name is empty, untrimmed or reserved
    """
    _check_name("Module name", short_name)


@dataclass
class Node:
    """A unit of work on a single thread.

    Attributes:
        thread: Lane identifier the node is serialized on
        short_name: Display label, unique within the thread
        duration: Non-negative duration in time units
        duration_provided: Whether the duration was given explicitly
        depends_on: Ids of nodes this node waits for
        dependents: Ids of nodes waiting for this node
    """

    thread: str
    short_name: str
    duration: float = 0.0
    duration_provided: bool = False
    depends_on: set[str] = field(default_factory=set)
    dependents: set[str] = field(default_factory=set)

    @property
    def node_id(self) -> str:
        return make_node_id(self.thread, self.short_name)

    def copy(self) -> "Node":
        return Node(
            thread=self.thread,
            short_name=self.short_name,
            duration=self.duration,
            duration_provided=self.duration_provided,
            depends_on=set(self.depends_on),
            dependents=set(self.dependents),
        )


class GraphModel:
    """Owner of all nodes and their dependency edges.

    Nodes are kept in insertion order; the scheduler relies on that order to
    break ties deterministically. Edits go through the paired operations
    (``connect``, ``disconnect``, ``rename_node``, ``move_node``,
    ``delete_node``) which keep ``depends_on`` and ``dependents`` symmetric.
    ``load_node`` is the raw import path: it stores edge sets exactly as
    given so that inconsistencies in input files can be reported by the
    validator instead of being repaired.

    Thread-safety:
        This class is NOT thread-safe. Use EditSession (or an external lock)
        when more than one thread may touch the same model.

    Example:
        >>> graph = GraphModel()
        >>> graph.add_node("t0", "a", 10)
        't0:a'
        >>> graph.add_node("t0", "b", 5)
        't0:b'
        >>> graph.connect("t0:a", "t0:b")
        >>> sorted(graph.get("t0:b").depends_on)
        ['t0:a']
    """

    def __init__(self):
        """Initialize an empty graph."""
        self._nodes: dict[str, Node] = {}

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self):
        return iter(self._nodes.values())

    def get(self, node_id: str) -> Node:
        """Return the node with the given id.

        Raises:
            UnknownNodeError: If the id is not in the graph
        """
        try:
            return self._nodes[node_id]
        except KeyError:
            raise UnknownNodeError(node_id) from None

    def node_ids(self) -> list[str]:
        """Return all node ids in insertion order."""
        return list(self._nodes)

    def threads(self) -> list[str]:
        """Return thread ids in first-seen order."""
        seen: dict[str, None] = {}
        for node in self._nodes.values():
            seen.setdefault(node.thread, None)
        return list(seen)

    def nodes_in_thread(self, thread: str) -> list[Node]:
        return [node for node in self._nodes.values() if node.thread == thread]

    def edge_count(self) -> int:
        return sum(len(node.depends_on) for node in self._nodes.values())

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def add_node(self, thread: str, short_name: str, duration: float | None = None) -> str:
        """Create an unconnected node.

        Args:
            thread: Lane identifier
            short_name: Module name, unique within the thread
            duration: Explicit duration, or None for "not provided" (0)

        Returns:
            The composite id of the new node

        Raises:
            GraphError: If the thread or module name is unusable
            DuplicateNodeError: If the id already exists
        """
        node = self._new_node(thread, short_name)
        if duration is not None:
            node.duration = duration
            node.duration_provided = True
        self._nodes[node.node_id] = node

        logger.debug("node_added", node_id=node.node_id, duration=node.duration)
        return node.node_id

    def load_node(
        self,
        thread: str,
        short_name: str,
        duration: float = 0.0,
        duration_provided: bool = False,
        depends_on: set[str] | None = None,
        dependents: set[str] | None = None,
    ) -> str:
        """Store a node with edge sets taken verbatim from input.

        No symmetry repair is performed; the referenced ids do not even have
        to exist. Used by the builder and the schema importer.

        Returns:
            The composite id of the loaded node

        Raises:
            DuplicateNodeError: If the id already exists
        """
        node = self._new_node(thread, short_name)
        node.duration = duration
        node.duration_provided = duration_provided
        node.depends_on = set(depends_on or ())
        node.dependents = set(dependents or ())
        self._nodes[node.node_id] = node
        return node.node_id

    def _new_node(self, thread: str, short_name: str) -> Node:
        check_thread_id(thread)
        check_module_name(short_name)

        node_id = make_node_id(thread, short_name)
        if node_id in self._nodes:
            raise DuplicateNodeError(node_id)
        return Node(thread=thread, short_name=short_name)

    # ------------------------------------------------------------------
    # Paired mutations
    # ------------------------------------------------------------------

    def connect(self, dependency: str, dependent: str) -> None:
        """Record that ``dependent`` waits for ``dependency``.

        Both edge views are updated together. Connecting an existing edge is
        a no-op.

        Raises:
            UnknownNodeError: If either id is unknown
            GraphError: If both ids are the same node
        """
        if dependency == dependent:
            msg = f"Node cannot depend on itself: {dependency}"
            raise GraphError(msg)

        source = self.get(dependency)
        target = self.get(dependent)
        source.dependents.add(dependent)
        target.depends_on.add(dependency)

        logger.debug("edge_connected", dependency=dependency, dependent=dependent)

    def disconnect(self, dependency: str, dependent: str) -> None:
        """Remove the edge between two nodes from both sides.

        Missing halves are ignored so that a half-edge left by hand-edited
        input can be cleaned up with the same call.

        Raises:
            UnknownNodeError: If neither id is known
        """
        if dependency not in self._nodes and dependent not in self._nodes:
            raise UnknownNodeError(dependency)

        if dependency in self._nodes:
            self._nodes[dependency].dependents.discard(dependent)
        if dependent in self._nodes:
            self._nodes[dependent].depends_on.discard(dependency)

        logger.debug("edge_disconnected", dependency=dependency, dependent=dependent)

    def set_duration(self, node_id: str, duration: float | None) -> None:
        """Set a node's duration; None resets it to "not provided"."""
        node = self.get(node_id)
        if duration is None:
            node.duration = 0.0
            node.duration_provided = False
        else:
            node.duration = duration
            node.duration_provided = True

    def rename_node(self, node_id: str, new_short_name: str) -> str:
        """Rename a node within its thread.

        Returns:
            The new composite id
        """
        node = self.get(node_id)
        return self._rekey(node_id, node.thread, new_short_name)

    def move_node(self, node_id: str, new_thread: str) -> str:
        """Move a node to another thread, keeping its edges.

        Returns:
            The new composite id
        """
        node = self.get(node_id)
        return self._rekey(node_id, new_thread, node.short_name)

    def _rekey(self, node_id: str, thread: str, short_name: str) -> str:
        node = self._nodes[node_id]
        new_id = make_node_id(thread, short_name)
        if new_id == node_id:
            return node_id

        # Validates the new name and rejects collisions before anything changes
        self._new_node(thread, short_name)

        for other in self._nodes.values():
            if node_id in other.depends_on:
                other.depends_on.discard(node_id)
                other.depends_on.add(new_id)
            if node_id in other.dependents:
                other.dependents.discard(node_id)
                other.dependents.add(new_id)

        node.thread = thread
        node.short_name = short_name
        # Rebuild the mapping to keep the node's insertion position
        self._nodes = {
            (new_id if key == node_id else key): value for key, value in self._nodes.items()
        }

        logger.info("node_rekeyed", old_id=node_id, new_id=new_id)
        return new_id

    def delete_node(self, node_id: str) -> None:
        """Delete a node and every reference to it."""
        self.get(node_id)
        del self._nodes[node_id]
        for other in self._nodes.values():
            other.depends_on.discard(node_id)
            other.dependents.discard(node_id)

        logger.info("node_deleted", node_id=node_id)

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def copy(self) -> "GraphModel":
        """Create a full, independent snapshot of the graph.

        Example:
            >>> graph = GraphModel()
            >>> _ = graph.add_node("t0", "a")
            >>> snapshot = graph.copy()
            >>> graph.delete_node("t0:a")
            >>> "t0:a" in snapshot
            True
        """
        new_graph = GraphModel()
        new_graph._nodes = {node_id: node.copy() for node_id, node in self._nodes.items()}

        logger.debug("graph_copied", node_count=len(self._nodes))

        return new_graph

    def get_stats(self) -> dict[str, int]:
        """Get statistics about the graph.

        Returns:
            Dictionary with ``total_nodes``, ``total_threads`` and
            ``total_dependencies``
        """
        return {
            "total_nodes": len(self._nodes),
            "total_threads": len(self.threads()),
            "total_dependencies": self.edge_count(),
        }
