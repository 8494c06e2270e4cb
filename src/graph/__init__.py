"""Graph module for thread-flow dependency graphs.

This module provides the graph model, its construction from per-thread input
files, structural validation and export back to the input schema.
"""

from src.graph.builder import BuildResult, GraphBuilder, ParseError
from src.graph.model import (
    DuplicateNodeError,
    GraphError,
    GraphModel,
    Node,
    UnknownNodeError,
)
from src.graph.serialize import export_files, export_schema, import_schema
from src.graph.validator import (
    Diagnostic,
    DiagnosticCategory,
    GraphValidator,
    ValidationReport,
)

__all__ = [
    "BuildResult",
    "Diagnostic",
    "DiagnosticCategory",
    "DuplicateNodeError",
    "GraphBuilder",
    "GraphError",
    "GraphModel",
    "GraphValidator",
    "Node",
    "ParseError",
    "UnknownNodeError",
    "ValidationReport",
    "export_files",
    "export_schema",
    "import_schema",
]
