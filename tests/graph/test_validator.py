"""Unit tests for GraphValidator class.

Tests cover:
- Duration sanity
- Entry-point uniqueness per thread
- Edge symmetry and dangling references
- Ambiguous intra-thread ordering
- Unresolved dependencies and cycles
- Validation report generation
"""

import math

import pytest

from src.graph.model import GraphModel
from src.graph.validator import (
    Diagnostic,
    DiagnosticCategory,
    GraphValidator,
    ValidationReport,
)


def chain_graph() -> GraphModel:
    """t0:a -> t0:b -> t1:c, fully consistent."""
    graph = GraphModel()
    graph.add_node("t0", "a", 10)
    graph.add_node("t0", "b", 5)
    graph.add_node("t1", "c", 3)
    graph.connect("t0:a", "t0:b")
    graph.connect("t0:b", "t1:c")
    return graph


class TestValidationReport:
    """Test ValidationReport functionality."""

    def test_initialization(self):
        report = ValidationReport()

        assert report.is_valid is True
        assert report.diagnostics == []
        assert report.schedule.entries == {}

    def test_add_marks_invalid(self):
        report = ValidationReport()
        report.add(DiagnosticCategory.INVALID_DURATION, "Invalid duration for t0:a: 0", ("t0:a",))

        assert not report.is_valid
        assert report.diagnostics == [
            Diagnostic(DiagnosticCategory.INVALID_DURATION, "Invalid duration for t0:a: 0", ("t0:a",)),
        ]

    def test_summary_empty_report(self):
        summary = ValidationReport().summary()

        assert "Validation Status: PASS" in summary
        assert "Diagnostics: 0" in summary

    def test_summary_groups_by_category(self):
        report = ValidationReport()
        report.add(DiagnosticCategory.EDGE_ASYMMETRY, "edge problem")
        report.add(DiagnosticCategory.INVALID_DURATION, "duration problem")
        summary = report.summary()

        assert "Validation Status: FAIL" in summary
        assert "Diagnostics: 2" in summary
        assert summary.index("InvalidDuration:") < summary.index("EdgeAsymmetry:")
        assert "  - edge problem" in summary

    def test_diagnostic_to_dict(self):
        diagnostic = Diagnostic(DiagnosticCategory.DANGLING_REFERENCE, "missing", ("t0:a", "t0:x"))

        assert diagnostic.to_dict() == {
            "category": "DanglingReference",
            "message": "missing",
            "nodes": ["t0:a", "t0:x"],
        }


class TestValidGraph:
    """Test that consistent graphs pass."""

    def test_chain_is_valid(self):
        report = GraphValidator().validate(chain_graph())

        assert report.is_valid
        assert set(report.schedule.entries) == {"t0:a", "t0:b", "t1:c"}

    def test_empty_graph_is_valid(self):
        report = GraphValidator().validate(GraphModel())

        assert report.is_valid

    def test_validation_does_not_mutate(self):
        graph = GraphModel()
        graph.load_node("t0", "a", -1, True, dependents={"t0:b", "t9:ghost"})
        graph.load_node("t0", "b")
        before = [(n.node_id, set(n.depends_on), set(n.dependents)) for n in graph]

        GraphValidator().validate(graph)

        assert [(n.node_id, n.depends_on, n.dependents) for n in graph] == before


class TestDurationCheck:
    """Test duration sanity."""

    @pytest.mark.parametrize("duration", [0, -5, math.inf, math.nan])
    def test_bad_provided_duration(self, duration):
        graph = GraphModel()
        graph.add_node("t0", "a", duration)

        found = GraphValidator().validate(graph).by_category(DiagnosticCategory.INVALID_DURATION)

        assert len(found) == 1
        assert found[0].nodes == ("t0:a",)
        assert "t0:a" in found[0].message

    def test_unprovided_zero_duration_accepted(self):
        graph = GraphModel()
        graph.add_node("t0", "a")

        found = GraphValidator().validate(graph).by_category(DiagnosticCategory.INVALID_DURATION)

        assert found == []


class TestEntryPoints:
    """Test entry-point uniqueness."""

    def test_two_entry_points_on_one_thread(self):
        graph = GraphModel()
        graph.add_node("T1", "a", 1)
        graph.add_node("T1", "b", 1)

        found = GraphValidator().validate(graph).by_category(DiagnosticCategory.DUPLICATE_ENTRY_POINT)

        assert len(found) == 1
        assert found[0].nodes == ("T1:a", "T1:b")
        assert "T1:a" in found[0].message
        assert "T1:b" in found[0].message

    def test_one_entry_point_per_thread_ok(self):
        found = GraphValidator().validate(chain_graph()).by_category(
            DiagnosticCategory.DUPLICATE_ENTRY_POINT,
        )

        assert found == []

    def test_dangling_dependency_is_not_an_entry_point(self):
        graph = GraphModel()
        graph.load_node("t0", "a", 1, True)
        graph.load_node("t0", "b", 1, True, depends_on={"t9:ghost"})

        found = GraphValidator().validate(graph).by_category(DiagnosticCategory.DUPLICATE_ENTRY_POINT)

        assert found == []


class TestEdgeSymmetry:
    """Test edge symmetry and dangling references."""

    def test_half_edge_in_dependents(self):
        graph = GraphModel()
        graph.load_node("t0", "a", 1, True, dependents={"t1:b"})
        graph.load_node("t1", "b", 1, True)

        report = GraphValidator().validate(graph)
        found = report.by_category(DiagnosticCategory.EDGE_ASYMMETRY)

        assert len(found) == 1
        assert found[0].nodes == ("t0:a", "t1:b")
        assert "t0:a" in found[0].message
        assert "t1:b" in found[0].message

    def test_half_edge_in_depends_on(self):
        graph = GraphModel()
        graph.load_node("t0", "a", 1, True)
        graph.load_node("t1", "b", 1, True, depends_on={"t0:a"})

        found = GraphValidator().validate(graph).by_category(DiagnosticCategory.EDGE_ASYMMETRY)

        assert len(found) == 1
        assert found[0].nodes == ("t0:a", "t1:b")

    def test_dangling_references_both_directions(self):
        graph = GraphModel()
        graph.load_node("t0", "a", 1, True, depends_on={"t9:up"}, dependents={"t9:down"})

        found = GraphValidator().validate(graph).by_category(DiagnosticCategory.DANGLING_REFERENCE)

        assert len(found) == 2
        messages = " ".join(d.message for d in found)
        assert "t9:up" in messages
        assert "t9:down" in messages

    def test_model_built_graph_has_no_asymmetry(self):
        report = GraphValidator().validate(chain_graph())

        assert report.by_category(DiagnosticCategory.EDGE_ASYMMETRY) == []
        assert report.by_category(DiagnosticCategory.DANGLING_REFERENCE) == []


class TestAmbiguousOrdering:
    """Test same-thread ordering ambiguity."""

    def test_unrelated_nodes_on_same_thread(self):
        graph = GraphModel()
        graph.add_node("T1", "a", 1)
        graph.add_node("T1", "b", 1)

        found = GraphValidator().validate(graph).by_category(DiagnosticCategory.AMBIGUOUS_ORDERING)

        assert len(found) == 1
        assert found[0].nodes == ("T1:a", "T1:b")

    def test_transitive_path_via_other_thread(self):
        graph = GraphModel()
        graph.add_node("T1", "a", 1)
        graph.add_node("T2", "x", 1)
        graph.add_node("T1", "b", 1)
        graph.connect("T1:a", "T2:x")
        graph.connect("T2:x", "T1:b")

        found = GraphValidator().validate(graph).by_category(DiagnosticCategory.AMBIGUOUS_ORDERING)

        assert found == []

    def test_each_unordered_pair_reported(self):
        graph = GraphModel()
        for name in ("a", "b", "c"):
            graph.add_node("T1", name, 1)

        found = GraphValidator().validate(graph).by_category(DiagnosticCategory.AMBIGUOUS_ORDERING)

        assert [d.nodes for d in found] == [("T1:a", "T1:b"), ("T1:a", "T1:c"), ("T1:b", "T1:c")]

    def test_reachability_is_cycle_safe(self):
        graph = GraphModel()
        graph.add_node("T1", "a", 1)
        graph.add_node("T1", "b", 1)
        graph.connect("T1:a", "T1:b")
        graph.connect("T1:b", "T1:a")

        found = GraphValidator().validate(graph).by_category(DiagnosticCategory.AMBIGUOUS_ORDERING)

        assert found == []


class TestUnresolved:
    """Test cycle and unresolved dependency detection."""

    def test_three_node_cycle(self):
        graph = GraphModel()
        graph.add_node("t0", "A", 1)
        graph.add_node("t1", "B", 1)
        graph.add_node("t2", "C", 1)
        graph.connect("t0:A", "t1:B")
        graph.connect("t1:B", "t2:C")
        graph.connect("t2:C", "t0:A")

        report = GraphValidator().validate(graph)
        found = report.by_category(DiagnosticCategory.UNRESOLVED_DEPENDENCY)

        assert report.schedule.entries == {}
        assert set(report.schedule.unresolved) == {"t0:A", "t1:B", "t2:C"}
        assert len(found) == 1
        assert set(found[0].nodes) == {"t0:A", "t1:B", "t2:C"}
        assert "cycle:" in found[0].message

    def test_node_behind_cycle_is_unresolved(self):
        graph = GraphModel()
        graph.add_node("t0", "a", 1)
        graph.add_node("t0", "b", 1)
        graph.add_node("t1", "after", 1)
        graph.connect("t0:a", "t0:b")
        graph.connect("t0:b", "t0:a")
        graph.connect("t0:b", "t1:after")

        report = GraphValidator().validate(graph)
        found = report.by_category(DiagnosticCategory.UNRESOLVED_DEPENDENCY)

        assert report.schedule.unresolved == ["t0:a", "t0:b", "t1:after"]
        assert len(found) == 1
        assert "t1:after" in found[0].message

    def test_no_unresolved_diagnostic_for_dag(self):
        report = GraphValidator().validate(chain_graph())

        assert report.by_category(DiagnosticCategory.UNRESOLVED_DEPENDENCY) == []


class TestAllChecksRun:
    """Test that checks do not short-circuit."""

    def test_multiple_categories_reported_together(self):
        graph = GraphModel()
        graph.load_node("T1", "a", 0, True, dependents={"T1:b"})
        graph.load_node("T1", "b", 1, True)
        graph.load_node("T2", "x", 1, True, depends_on={"T2:y"}, dependents={"T2:y"})
        graph.load_node("T2", "y", 1, True, depends_on={"T2:x"}, dependents={"T2:x"})

        report = GraphValidator().validate(graph)
        categories = {d.category for d in report.diagnostics}

        assert categories == {
            DiagnosticCategory.INVALID_DURATION,
            DiagnosticCategory.DUPLICATE_ENTRY_POINT,
            DiagnosticCategory.EDGE_ASYMMETRY,
            DiagnosticCategory.UNRESOLVED_DEPENDENCY,
        }
