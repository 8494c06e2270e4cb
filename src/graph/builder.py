"""Graph construction from raw per-thread input files.

Each input file describes one thread. Its base name (without extension) is
the thread id and its content is a list of entries such as::

    [
        {"module": "load", "time": 10},
        {"module": "parse", "time": 5,
         "from": [{"module": "load"}],
         "to": [{"thread": "t1", "module": "render"}]}
    ]

References whose thread or module is the sentinel ``"none"`` are dropped.
"""

import json
import math
from dataclasses import dataclass, field
from pathlib import PurePath
from typing import Any

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from src.graph.model import (
    ID_SEPARATOR,
    RESERVED_NAME,
    GraphError,
    GraphModel,
    check_thread_id,
    make_node_id,
)

logger = structlog.get_logger(__name__)

NO_REFERENCE = RESERVED_NAME
YAML_SUFFIXES = (".yaml", ".yml")


class ReferenceRecord(BaseModel):
    """A ``{thread?, module}`` pointer to another entry.

    Attributes:
        thread: Thread of the referenced entry; defaults to the file's thread
        module: Module name of the referenced entry
    """

    thread: str | None = None
    module: str

    model_config = ConfigDict(str_strip_whitespace=True, coerce_numbers_to_str=True)

    def is_sentinel(self) -> bool:
        """Check whether this reference means "no reference"."""
        return self.module.lower() == NO_REFERENCE or (
            self.thread is not None and self.thread.lower() == NO_REFERENCE
        )

    def resolve(self, default_thread: str) -> str:
        thread = self.thread if self.thread else default_thread
        return make_node_id(thread, self.module)


class EntryRecord(BaseModel):
    """One entry of a thread file.

    Attributes:
        module: Module name, unique within the thread
        time: Optional duration as given in the file
        from_: References to entries this one depends on
        to: References to entries that depend on this one
    """

    module: str = Field(min_length=1)
    time: Any = None
    from_: list[ReferenceRecord] = Field(default_factory=list, alias="from")
    to: list[ReferenceRecord] = Field(default_factory=list)

    model_config = ConfigDict(
        str_strip_whitespace=True,
        coerce_numbers_to_str=True,
        populate_by_name=True,
    )

    @field_validator("module")
    @classmethod
    def validate_module(cls, v: str) -> str:
        """Reject the reserved "no reference" name as a module."""
        if v.lower() == NO_REFERENCE:
            msg = f"Module name {v!r} is reserved"
            raise ValueError(msg)
        return v

    @field_validator("from_", "to", mode="before")
    @classmethod
    def normalize_references(cls, v: Any) -> list[Any]:
        """Accept a single reference, plain strings and ``null``.

        Strings are read as ``"module"`` or ``"thread:module"``.
        """
        if v is None:
            return []
        if not isinstance(v, list):
            v = [v]

        normalized = []
        for item in v:
            if item is None or item == "":
                continue
            if isinstance(item, str):
                thread, sep, module = item.partition(ID_SEPARATOR)
                normalized.append({"thread": thread, "module": module} if sep else {"module": item})
            else:
                normalized.append(item)
        return normalized

    def duration(self) -> tuple[float, bool]:
        """Return ``(duration, duration_provided)`` for this entry.

        A present but non-numeric time is still "provided" and keeps a zero
        duration, so the validator reports it.
        """
        if self.time is None or self.time == "":
            return 0.0, False
        if isinstance(self.time, bool):
            return 0.0, True
        try:
            value = float(self.time)
        except (TypeError, ValueError, OverflowError):
            return 0.0, True
        if not math.isfinite(value):
            return 0.0, True
        return value, True


@dataclass
class ParseError:
    """A thread file that could not be read as a list of entries."""

    file_name: str
    message: str

    def __str__(self) -> str:
        return f"{self.file_name}: {self.message}"


@dataclass
class BuildResult:
    """Output of GraphBuilder.build."""

    graph: GraphModel
    parse_errors: list[ParseError] = field(default_factory=list)


def thread_id_for(file_name: str) -> str:
    """Derive the thread id from a file name by dropping its final extension.

    Example:
        >>> thread_id_for("threads/t0.json")
        't0'
    """
    path = PurePath(file_name)
    return path.stem if path.suffix else path.name


class GraphBuilder:
    """Builds a GraphModel out of per-thread file contents.

    Files that fail to parse produce a ParseError and are skipped; the
    remaining files are still processed.

    Example:
        >>> builder = GraphBuilder()
        >>> result = builder.build({"t0.json": '[{"module": "a", "time": 10}]'})
        >>> result.graph.node_ids()
        ['t0:a']
    """

    def build(self, files: dict[str, str]) -> BuildResult:
        """Parse every file and merge the entries into one graph.

        Args:
            files: Mapping of file name to raw text content

        Returns:
            BuildResult with the graph and collected parse errors
        """
        logger.info("building_graph_from_files", file_count=len(files))

        parse_errors: list[ParseError] = []
        threads: dict[str, list[EntryRecord]] = {}

        for file_name, text in files.items():
            thread = thread_id_for(file_name)
            try:
                check_thread_id(thread)
                records = self.parse_file(file_name, text)
            except (ValueError, GraphError) as e:
                error = ParseError(file_name=file_name, message=str(e))
                parse_errors.append(error)
                logger.warning("thread_file_parse_failed", file_name=file_name, error=str(e))
                continue

            threads.setdefault(thread, []).extend(records)

        graph = self.build_from_records(threads)

        logger.info(
            "graph_built",
            node_count=len(graph),
            thread_count=len(graph.threads()),
            parse_error_count=len(parse_errors),
        )

        return BuildResult(graph=graph, parse_errors=parse_errors)

    def parse_file(self, file_name: str, text: str | None) -> list[EntryRecord]:
        """Parse one file into validated entry records.

        Raises:
            ValueError: If the content is not a list of entries
        """
        content = (text or "").strip()

        if file_name.lower().endswith(YAML_SUFFIXES):
            try:
                data = yaml.safe_load(content)
            except (yaml.YAMLError, RecursionError) as e:
                msg = f"Invalid YAML ({e})"
                raise ValueError(msg) from e
        else:
            if not content.startswith(("{", "[")):
                msg = "Not a JSON file"
                raise ValueError(msg)
            try:
                data = json.loads(content)
            except (json.JSONDecodeError, RecursionError) as e:
                msg = f"Invalid JSON ({e})"
                raise ValueError(msg) from e

        if data is None:
            return []
        rows = data if isinstance(data, list) else [data]
        # Null rows are skipped
        rows = [row for row in rows if row is not None]

        try:
            return [EntryRecord.model_validate(row) for row in rows]
        except ValidationError as e:
            msg = f"Invalid entry structure ({e.error_count()} errors: {e.errors()[0]['msg']})"
            raise ValueError(msg) from e

    def build_from_records(self, threads: dict[str, list[EntryRecord]]) -> GraphModel:
        """Load parsed records into a new graph, one thread at a time.

        Args:
            threads: Mapping of thread id to its entry records

        Returns:
            The populated GraphModel
        """
        graph = GraphModel()

        for thread, records in threads.items():
            merged: dict[str, tuple[float, bool, set[str], set[str]]] = {}

            for record in records:
                duration, provided = record.duration()
                depends_on = self._resolve_references(record.from_, thread)
                dependents = self._resolve_references(record.to, thread)

                if record.module in merged:
                    logger.warning(
                        "duplicate_module_merged",
                        thread=thread,
                        module=record.module,
                    )
                    old_duration, old_provided, old_from, old_to = merged[record.module]
                    if not provided:
                        duration, provided = old_duration, old_provided
                    depends_on |= old_from
                    dependents |= old_to

                merged[record.module] = (duration, provided, depends_on, dependents)

            for module, (duration, provided, depends_on, dependents) in merged.items():
                graph.load_node(
                    thread,
                    module,
                    duration=duration,
                    duration_provided=provided,
                    depends_on=depends_on,
                    dependents=dependents,
                )

        return graph

    def _resolve_references(self, references: list[ReferenceRecord], thread: str) -> set[str]:
        resolved = set()
        for reference in references:
            if reference.is_sentinel():
                continue
            resolved.add(reference.resolve(thread))
        return resolved
