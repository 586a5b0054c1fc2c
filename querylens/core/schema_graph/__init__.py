"""Schema graph for QueryLens - tables, views and their relationships."""

from .builder import (
    ForeignKeyInfo,
    SchemaInfo,
    TableInfo,
    ViewInfo,
    build_graph,
    normalize_node_id,
    view_edges,
)
from .graph import Column, GraphEdge, GraphNode, NodeType, SchemaGraph

__all__ = [
    "Column",
    "ForeignKeyInfo",
    "GraphEdge",
    "GraphNode",
    "NodeType",
    "SchemaGraph",
    "SchemaInfo",
    "TableInfo",
    "ViewInfo",
    "build_graph",
    "normalize_node_id",
    "view_edges",
]
