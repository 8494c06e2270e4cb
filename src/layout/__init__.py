"""Timeline layout of scheduled thread graphs."""

from src.layout.resolver import Layout, LayoutResolver, NodeGeometry, lane_order

__all__ = ["Layout", "LayoutResolver", "NodeGeometry", "lane_order"]
