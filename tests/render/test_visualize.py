"""Unit tests for graph and timeline rendering.

Tests cover:
- Stable palette colors
- Mermaid and DOT structure views
- SVG timeline output with the diagnostics panel
"""

import xml.etree.ElementTree as ET

import pytest

from src.editor.session import analyze
from src.graph.model import GraphModel
from src.render.visualize import PALETTE, color_for, generate_visualization, render_svg

SVG_NS = "{http://www.w3.org/2000/svg}"


@pytest.fixture
def graph() -> GraphModel:
    graph = GraphModel()
    graph.add_node("t0", "load", 10)
    graph.add_node("t1", "render & draw", 5)
    graph.connect("t0:load", "t1:render & draw")
    return graph


class TestColors:
    """Test palette selection."""

    def test_color_is_stable(self):
        assert color_for("t0:load") == color_for("t0:load")
        assert color_for("t0:load") in PALETTE

    def test_color_matches_hash(self):
        h = 0
        for ch in "ab":
            h = h * 131 + ord(ch)
        assert color_for("ab") == PALETTE[h % len(PALETTE)]


class TestMermaid:
    """Test Mermaid output."""

    def test_structure(self, graph):
        text = generate_visualization(graph, "mermaid")

        assert text.startswith("graph LR")
        assert 'subgraph t0["Thread t0"]' in text
        assert 'n1["render & draw"]' in text
        assert "n0 --> n1" in text

    def test_punctuation_variants_stay_distinct(self):
        graph = GraphModel()
        graph.add_node("t0", "a_b", 1)
        graph.add_node("t0_a", "b", 1)
        graph.connect("t0:a_b", "t0_a:b")

        text = generate_visualization(graph, "mermaid")

        assert 'n0["a_b"]' in text
        assert 'n1["b"]' in text
        assert "n0 --> n1" in text

    def test_quotes_in_labels_escaped(self):
        graph = GraphModel()
        graph.add_node("t0", 'say "hi"', 1)

        assert 'n0["say #quot;hi#quot;"]' in generate_visualization(graph)

    def test_empty_graph(self):
        assert "Empty[Empty Graph]" in generate_visualization(GraphModel())

    def test_dangling_dependency_not_drawn(self):
        graph = GraphModel()
        graph.load_node("t0", "a", depends_on={"t9:ghost"})

        assert "-->" not in generate_visualization(graph)


class TestDot:
    """Test Graphviz output."""

    def test_structure(self, graph):
        text = generate_visualization(graph, "DOT")

        assert text.startswith("digraph ThreadFlow {")
        assert "subgraph cluster_0 {" in text
        assert '"t0:load" -> "t1:render & draw";' in text
        assert text.endswith("}")

    def test_empty_graph(self):
        assert 'Empty [label="Empty Graph"];' in generate_visualization(GraphModel(), "dot")

    def test_unsupported_format(self, graph):
        with pytest.raises(ValueError, match="Unsupported format"):
            generate_visualization(graph, "png")


class TestSvg:
    """Test SVG timeline rendering."""

    def test_document_is_well_formed(self, graph):
        root = ET.fromstring(render_svg(analyze(graph)))

        assert root.tag == f"{SVG_NS}svg"
        texts = [t.text for t in root.iter(f"{SVG_NS}text")]
        assert "Thread t0" in texts
        assert "render & draw" in texts
        assert "10 → 15" in texts

    def test_arrow_drawn_for_edge(self, graph):
        svg = render_svg(analyze(graph))

        assert f'stroke="{color_for("t0:load")}"' in svg

    def test_diagnostics_panel(self):
        graph = GraphModel()
        graph.add_node("t0", "a", 0)

        svg = render_svg(analyze(graph))

        assert "Validation errors" in svg
        assert 'data-category="InvalidDuration"' in svg

    def test_diagnostics_can_be_hidden(self):
        graph = GraphModel()
        graph.add_node("t0", "a", 0)

        assert "Validation errors" not in render_svg(analyze(graph), include_diagnostics=False)

    def test_valid_graph_has_no_panel(self, graph):
        assert "Validation errors" not in render_svg(analyze(graph))
