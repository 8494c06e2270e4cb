"""Text renderings (Mermaid, DOT, SVG) of thread graphs."""

from src.render.visualize import color_for, generate_visualization, render_svg

__all__ = ["color_for", "generate_visualization", "render_svg"]
