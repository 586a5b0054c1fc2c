"""
Schema graph construction from introspected schema metadata.

Turns the tables / views / foreign keys reported by an introspector into
the node/edge document every other component consumes.
"""

import logging

from pydantic import Field

from querylens.core.analyzer.extractor import SQLAnalyzer
from querylens.core.schema_graph.graph import (
    Column,
    GraphEdge,
    GraphNode,
    NodeType,
    SchemaGraph,
    _GraphModel,
)

logger = logging.getLogger(__name__)


# -----------------------------
# Introspection payload
# -----------------------------


class TableInfo(_GraphModel):
    name: str
    schema_name: str | None = Field(default=None, alias="schema")
    columns: list[Column] = Field(default_factory=list)
    primary_keys: list[str] = Field(default_factory=list)


class ViewInfo(_GraphModel):
    name: str
    schema_name: str | None = Field(default=None, alias="schema")
    definition: str = ""
    columns: list[Column] = Field(default_factory=list)


class ForeignKeyInfo(_GraphModel):
    """One column pair of a (possibly composite) foreign key."""

    name: str
    from_table: str
    from_column: str
    to_table: str
    to_column: str


class SchemaInfo(_GraphModel):
    tables: list[TableInfo] = Field(default_factory=list)
    views: list[ViewInfo] = Field(default_factory=list)
    foreign_keys: list[ForeignKeyInfo] = Field(default_factory=list)


# -----------------------------
# Builder
# -----------------------------


def qualified_id(name: str, schema: str | None) -> str:
    """Build the node id for a schema object."""
    return f"{schema}.{name}" if schema else name


def normalize_node_id(table_name: str, valid_ids: list[str]) -> str | None:
    """
    Resolve a table reference to a known node id.

    Tries an exact match first, then matches on the trailing
    (unqualified) table name.
    """
    if table_name in valid_ids:
        return table_name

    name_only = table_name.rsplit(".", 1)[-1]
    for node_id in valid_ids:
        if node_id == name_only or node_id.endswith(f".{name_only}"):
            return node_id

    return None


def _column_named(columns: list[Column], names: list[str]) -> str | None:
    lowered = {column.name.lower(): column.name for column in columns}
    for name in names:
        if name and name.lower() in lowered:
            return lowered[name.lower()]
    return None


def view_edges(
    view: ViewInfo, nodes: list[GraphNode], analyzer: SQLAnalyzer | None = None
) -> list[GraphEdge]:
    """
    Derive view -> base table edges from a view definition.

    Each ON equality in the definition whose one side is a known base
    table column yields an edge, provided the view exposes a column
    named like either side of the equality.

    Args:
        view: The view, with its SQL definition and output columns.
        nodes: Graph nodes; only table nodes are edge targets.
        analyzer: Analyzer used to read the definition.

    Returns:
        Edges labelled "view_join", deduplicated by id.
    """
    if not view.definition.strip() or not view.columns:
        return []

    tables = {node.id: node for node in nodes if node.type == NodeType.TABLE}
    table_ids = list(tables)
    view_id = qualified_id(view.name, view.schema_name)
    analysis = (analyzer or SQLAnalyzer()).analyze(view.definition)

    edges: dict[str, GraphEdge] = {}
    for join in analysis.joins:
        sides = (
            (join.from_table, join.from_column, join.to_column),
            (join.to_table, join.to_column, join.from_column),
        )
        for table_name, table_column, other_column in sides:
            table_id = normalize_node_id(table_name, table_ids)
            if table_id is None or not table_column:
                continue
            target_column = _column_named(tables[table_id].columns, [table_column])
            view_column = _column_named(view.columns, [other_column, table_column])
            if target_column is None or view_column is None:
                continue

            edge_id = f"view_{view_id}_to_{table_id}_{view_column}_{target_column}"
            edges.setdefault(
                edge_id,
                GraphEdge(
                    id=edge_id,
                    from_table=view_id,
                    to_table=table_id,
                    from_column=view_column,
                    to_column=target_column,
                    label="view_join",
                ),
            )

    return list(edges.values())


def build_graph(schema: SchemaInfo) -> SchemaGraph:
    """
    Build the schema graph.

    Every column pair of a foreign key becomes its own edge so composite
    keys produce one edge per column. Views add edges to the base tables
    they join, read from their definitions (see `view_edges`).

    Args:
        schema: Introspected schema metadata.

    Returns:
        SchemaGraph with one node per table/view, one edge per FK column
        and the derived view edges.
    """
    nodes: list[GraphNode] = []

    for table in schema.tables:
        nodes.append(
            GraphNode(
                id=qualified_id(table.name, table.schema_name),
                label=table.name,
                type=NodeType.TABLE,
                schema_name=table.schema_name,
                columns=list(table.columns),
            )
        )

    for view in schema.views:
        nodes.append(
            GraphNode(
                id=qualified_id(view.name, view.schema_name),
                label=view.name,
                type=NodeType.VIEW,
                schema_name=view.schema_name,
                columns=list(view.columns),
            )
        )

    valid_ids = [node.id for node in nodes]
    edges: list[GraphEdge] = []
    seen: set[str] = set()

    for fk in schema.foreign_keys:
        from_id = normalize_node_id(fk.from_table, valid_ids)
        to_id = normalize_node_id(fk.to_table, valid_ids)

        if from_id is None or to_id is None:
            logger.warning(
                "Foreign key %s references unknown tables: %s -> %s",
                fk.name,
                fk.from_table,
                fk.to_table,
            )
            continue

        edge_id = f"fk_{fk.name}_{fk.from_column}_{fk.to_column}"
        if edge_id in seen:
            continue
        seen.add(edge_id)

        edges.append(
            GraphEdge(
                id=edge_id,
                from_table=from_id,
                to_table=to_id,
                from_column=fk.from_column,
                to_column=fk.to_column,
                label=fk.name,
            )
        )

    for view in schema.views:
        for edge in view_edges(view, nodes):
            if edge.id not in seen:
                seen.add(edge.id)
                edges.append(edge)

    logger.debug("Built schema graph: %d nodes, %d edges", len(nodes), len(edges))
    return SchemaGraph(nodes=nodes, edges=edges)
