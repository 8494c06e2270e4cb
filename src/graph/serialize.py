"""Export and import of graphs in the per-thread input schema.

Only graph structure round-trips: nodes, threads, durations and edges.
Geometry is never part of the interchange format.
"""

import json
from typing import Any

import structlog

from src.graph.builder import EntryRecord, GraphBuilder
from src.graph.model import GraphModel, split_node_id

logger = structlog.get_logger(__name__)


def _reference(node_id: str) -> dict[str, str]:
    thread, module = split_node_id(node_id)
    return {"thread": thread, "module": module}


def export_schema(graph: GraphModel) -> dict[str, list[dict[str, Any]]]:
    """Serialize a graph into one entry list per thread.

    ``time`` is written only for explicitly provided durations; references
    are written as sorted ``{thread, module}`` pairs.

    Example:
        >>> graph = GraphModel()
        >>> _ = graph.add_node("t0", "a", 10)
        >>> export_schema(graph)
        {'t0': [{'module': 'a', 'time': 10}]}
    """
    payload: dict[str, list[dict[str, Any]]] = {}

    for node in graph:
        entry: dict[str, Any] = {"module": node.short_name}
        if node.duration_provided:
            entry["time"] = node.duration
        if node.depends_on:
            entry["from"] = [_reference(d) for d in sorted(node.depends_on)]
        if node.dependents:
            entry["to"] = [_reference(d) for d in sorted(node.dependents)]
        payload.setdefault(node.thread, []).append(entry)

    logger.debug("graph_exported", thread_count=len(payload), node_count=len(graph))
    return payload


def import_schema(payload: dict[str, list[dict[str, Any]]]) -> GraphModel:
    """Rebuild a graph from the structure produced by export_schema.

    Raises:
        pydantic.ValidationError: If an entry does not match the schema
        GraphError: If a thread id or module name is unusable
    """
    threads = {
        thread: [EntryRecord.model_validate(entry) for entry in entries]
        for thread, entries in payload.items()
    }
    return GraphBuilder().build_from_records(threads)


def export_files(graph: GraphModel, suffix: str = ".json") -> dict[str, str]:
    """Render the export as one JSON document per thread file.

    Returns:
        Mapping of file name (``<thread><suffix>``) to JSON text
    """
    return {
        f"{thread}{suffix}": json.dumps(entries, indent=2, ensure_ascii=False)
        for thread, entries in export_schema(graph).items()
    }
