"""Text renderings of thread graphs and their timelines.

Provides Mermaid and Graphviz DOT views of the dependency structure and a
standalone SVG timeline drawn from a resolved Layout: one lane per thread,
one box per scheduled node and an arrow from each dependency's right edge to
its dependent's left edge.
"""

from typing import TYPE_CHECKING
from xml.sax.saxutils import escape, quoteattr

import structlog

if TYPE_CHECKING:
    from src.editor.session import SessionState
    from src.graph.model import GraphModel

logger = structlog.get_logger(__name__)

PALETTE = [
    "#1f78b4", "#33a02c", "#e31a1c", "#ff7f00", "#6a3d9a", "#b15928",
    "#a6cee3", "#b2df8a", "#fb9a99", "#fdbf6f", "#cab2d6", "#ffff99",
]
BOX_HEIGHT = 44
ARROW_MIN_CURVE = 60
LABEL_INSET = 12
ERROR_LINE_HEIGHT = 14


def color_for(node_id: str) -> str:
    """Pick a stable palette color for a node id."""
    h = 0
    for ch in node_id:
        h = (h * 131 + ord(ch)) & 0xFFFFFFFF
    return PALETTE[h % len(PALETTE)]


def generate_visualization(graph: "GraphModel", output_format: str = "mermaid") -> str:
    """Generate a visual representation of the dependency graph.

    Args:
        graph: The GraphModel to visualize
        output_format: Output format ('mermaid' or 'dot')

    Returns:
        String representation of the graph in the requested format

    Raises:
        ValueError: If an unsupported format is requested
    """
    output_format = output_format.lower().strip()

    if output_format == "mermaid":
        return _generate_mermaid(graph)
    if output_format == "dot":
        return _generate_graphviz(graph)
    error_msg = f"Unsupported format: {output_format}. Use 'mermaid' or 'dot'."
    raise ValueError(error_msg)


def _mermaid_label(text: str) -> str:
    return text.replace('"', "#quot;")


def _generate_mermaid(graph: "GraphModel") -> str:
    lines = ["graph LR"]

    if not len(graph):
        lines.append("    Empty[Empty Graph]")
        return "\n".join(lines)

    # Index-based identifiers; distinct ids may differ only in punctuation
    ids = {node_id: f"n{index}" for index, node_id in enumerate(graph.node_ids())}

    for index, thread in enumerate(graph.threads()):
        lines.append(f'    subgraph t{index}["Thread {_mermaid_label(thread)}"]')
        lines.extend(
            f'        {ids[node.node_id]}["{_mermaid_label(node.short_name)}"]'
            for node in graph.nodes_in_thread(thread)
        )
        lines.append("    end")

    # Arrow points from dependency to dependent
    for node in graph:
        lines.extend(
            f"    {ids[dep]} --> {ids[node.node_id]}"
            for dep in sorted(node.depends_on)
            if dep in graph
        )

    return "\n".join(lines)


def _generate_graphviz(graph: "GraphModel") -> str:
    def escape_dot_string(s: str) -> str:
        """Escape double quotes for DOT format."""
        return s.replace('"', '\\"')

    lines = ["digraph ThreadFlow {"]
    lines.append("    rankdir=LR;")
    lines.append("    node [shape=box, style=rounded];")

    if not len(graph):
        lines.append('    Empty [label="Empty Graph"];')
    else:
        for index, thread in enumerate(graph.threads()):
            lines.append(f"    subgraph cluster_{index} {{")
            lines.append(f'        label="Thread {escape_dot_string(thread)}";')
            lines.extend(
                f'        "{escape_dot_string(node.node_id)}" '
                f'[label="{escape_dot_string(node.short_name)}"];'
                for node in graph.nodes_in_thread(thread)
            )
            lines.append("    }")

        for node in graph:
            escaped_node = escape_dot_string(node.node_id)
            lines.extend(
                f'    "{escape_dot_string(dep)}" -> "{escaped_node}";'
                for dep in sorted(node.depends_on)
                if dep in graph
            )

    lines.append("}")
    return "\n".join(lines)


def render_svg(state: "SessionState", include_diagnostics: bool = True) -> str:
    """Render the resolved timeline as a standalone SVG document.

    Args:
        state: Session state holding graph, schedule and layout
        include_diagnostics: Append the diagnostic list below the lanes

    Returns:
        SVG document text
    """
    graph = state.graph
    layout = state.layout
    schedule = state.report.schedule
    diagnostics = state.report.diagnostics if include_diagnostics else []

    width = max(layout.width + layout.scale, 400)
    lanes_height = layout.height
    panel_height = (len(diagnostics) + 2) * ERROR_LINE_HEIGHT + 8 if diagnostics else 0
    height = lanes_height + panel_height + 20

    parts = [
        f'<svg xmlns="http://www.w3.org/2000/svg" width="{width:.0f}" '
        f'height="{height:.0f}" viewBox="0 0 {width:.0f} {height:.0f}">',
        "<style>text { font-family: sans-serif; } "
        ".module-name { font-size: 13px; font-weight: 600; } "
        ".module-meta { font-size: 11px; fill: #333; } "
        ".lane-label { font-size: 14px; font-weight: 700; fill: #111; } "
        ".error-line { font-size: 12px; fill: #7a0b0b; }</style>",
    ]

    for index, thread in enumerate(layout.lanes):
        top = index * layout.lane_height
        parts.append(
            f'<rect x="0" y="{top:.1f}" width="{width:.0f}" height="{layout.lane_height:.1f}" '
            f'fill="{"#f7f7f7" if index % 2 else "#ffffff"}"/>',
        )
        parts.append(
            f'<text class="lane-label" x="{LABEL_INSET}" '
            f'y="{top + layout.lane_height / 2 + 6:.1f}">Thread {escape(thread)}</text>',
        )

    for node in graph:
        start = layout.nodes.get(node.node_id)
        if start is None:
            continue
        for dependent in sorted(node.dependents):
            end = layout.nodes.get(dependent)
            if end is None:
                continue
            parts.append(
                _arrow(
                    start.right,
                    start.vertical_center,
                    end.left,
                    end.vertical_center,
                    color_for(node.node_id),
                ),
            )

    for node_id, geometry in layout.nodes.items():
        node = graph.get(node_id)
        entry = schedule.entries[node_id]
        top = geometry.vertical_center - BOX_HEIGHT / 2
        parts.append(
            f'<rect x="{geometry.left:.1f}" y="{top:.1f}" width="{geometry.width:.1f}" '
            f'height="{BOX_HEIGHT}" rx="6" fill="#ffffff" stroke="#aaa" stroke-width="1"/>',
        )
        parts.append(
            f'<rect x="{geometry.left:.1f}" y="{top:.1f}" width="6" height="{BOX_HEIGHT}" '
            f'fill="{color_for(node_id)}"/>',
        )
        parts.append(
            f'<text class="module-name" x="{geometry.left + 10:.1f}" y="{top + 18:.1f}">'
            f"{escape(node.short_name)}</text>",
        )
        parts.append(
            f'<text class="module-meta" x="{geometry.left + 10:.1f}" y="{top + BOX_HEIGHT - 8:.1f}">'
            f"{entry.start:g} → {entry.finish:g}</text>",
        )

    if diagnostics:
        top = lanes_height + 10
        parts.append(
            f'<rect x="0" y="{top:.1f}" width="{width:.0f}" height="{panel_height:.1f}" '
            'fill="#fff4f4" stroke="#e74c3c" stroke-width="1"/>',
        )
        parts.append(
            f'<text class="error-line" font-weight="700" x="{LABEL_INSET}" '
            f'y="{top + 18:.1f}">Validation errors</text>',
        )
        for index, diagnostic in enumerate(diagnostics):
            y = top + 18 + (index + 1) * ERROR_LINE_HEIGHT
            parts.append(
                f'<text class="error-line" x="{LABEL_INSET}" y="{y:.1f}" '
                f"data-category={quoteattr(diagnostic.category.value)}>"
                f"• {escape(diagnostic.message)}</text>",
            )

    parts.append("</svg>")

    logger.debug(
        "svg_rendered",
        node_count=len(layout.nodes),
        lane_count=len(layout.lanes),
        diagnostic_count=len(diagnostics),
    )

    return "\n".join(parts)


def _arrow(start_x: float, start_y: float, end_x: float, end_y: float, color: str) -> str:
    """Cubic arrow from a right edge to a left edge with a triangular head."""
    curve = max(ARROW_MIN_CURVE, abs(end_x - start_x) * 0.55)
    path = (
        f"M {start_x:.1f} {start_y:.1f} C {start_x + curve:.1f} {start_y:.1f} "
        f"{end_x - curve:.1f} {end_y:.1f} {end_x:.1f} {end_y:.1f}"
    )
    head = (
        f"M {end_x:.1f} {end_y:.1f} L {end_x - 8:.1f} {end_y - 5:.1f} "
        f"L {end_x - 8:.1f} {end_y + 5:.1f} Z"
    )
    return (
        f'<path d="{path}" stroke="{color}" fill="none" stroke-width="2" stroke-linecap="round"/>'
        f'<path d="{head}" fill="{color}"/>'
    )
