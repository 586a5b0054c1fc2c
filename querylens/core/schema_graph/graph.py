"""
Schema Graph for QueryLens.

This module defines:
- Which tables and views exist (nodes)
- Which columns they carry
- How they relate through foreign-key-like edges

The graph is read-only for every consumer. It is produced by schema
introspection (outside this package) and arrives as JSON in camelCase.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# -----------------------------
# Node Types
# -----------------------------


class NodeType(str, Enum):
    """Kinds of schema objects shown as graph nodes."""

    TABLE = "table"
    VIEW = "view"


class _GraphModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# -----------------------------
# Nodes & Edges
# -----------------------------


class Column(_GraphModel):
    """Metadata for a single column of a table or view."""

    name: str
    type: str = ""
    nullable: bool = True
    is_primary_key: bool = False
    is_foreign_key: bool = False
    default_value: str | None = None
    comment: str | None = None


class GraphNode(_GraphModel):
    """A table or view. The id is `schema.name` when a schema is known."""

    id: str
    label: str
    type: NodeType = NodeType.TABLE
    schema_name: str | None = Field(default=None, alias="schema")
    columns: list[Column] = Field(default_factory=list)

    def column_names(self) -> set[str]:
        return {column.name for column in self.columns}


class GraphEdge(_GraphModel):
    """
    A directed relationship from `from_table.from_column` to
    `to_table.to_column`.

    Direction matters for column semantics only; traversal treats
    every edge as bidirectional.
    """

    id: str
    from_table: str = Field(alias="from")
    to_table: str = Field(alias="to")
    from_column: str
    to_column: str
    label: str | None = None

    def connects(self, table_a: str, table_b: str) -> bool:
        """Check whether this edge joins the two tables in either direction."""
        return (self.from_table == table_a and self.to_table == table_b) or (
            self.from_table == table_b and self.to_table == table_a
        )


# -----------------------------
# Schema Graph
# -----------------------------


class SchemaGraph(_GraphModel):
    """
    The nodes/edges document served for a connection.

    Provides lookup helpers; the lists themselves are never mutated
    by the engine.
    """

    nodes: list[GraphNode] = Field(default_factory=list)
    edges: list[GraphEdge] = Field(default_factory=list)

    def get_node(self, node_id: str) -> GraphNode | None:
        """Get a node by id."""
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def node_ids(self) -> list[str]:
        """List node ids in document order."""
        return [node.id for node in self.nodes]

    def has_column(self, node_id: str, column: str) -> bool:
        """Check whether a node carries the given column."""
        node = self.get_node(node_id)
        return node is not None and column in node.column_names()

    def edges_between(self, table_a: str, table_b: str) -> list[GraphEdge]:
        """Get every edge joining two tables, in either direction."""
        return [edge for edge in self.edges if edge.connects(table_a, table_b)]
