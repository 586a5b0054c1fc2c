"""
Join Graph Resolver for QueryLens.

Finds relationship paths between two tables of the schema graph so a
JOIN chain can be suggested when the tables share no direct foreign key.
"""

import logging
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field

from querylens.core.config import get_resolver_settings
from querylens.core.schema_graph.graph import GraphEdge, GraphNode, SchemaGraph

logger = logging.getLogger(__name__)


# -----------------------------
# Data structures
# -----------------------------


@dataclass(frozen=True)
class PathStep:
    """One hop of a join path, oriented in the direction of travel."""

    from_table: str
    to_table: str
    from_column: str
    to_column: str
    edge_id: str

    def to_dict(self) -> dict:
        return {
            "from": self.from_table,
            "to": self.to_table,
            "fromColumn": self.from_column,
            "toColumn": self.to_column,
            "edgeId": self.edge_id,
        }


@dataclass(frozen=True)
class JoinPath:
    """
    A chain of hops from one table to another.

    `intermediate_tables` lists the tables between the endpoints;
    `length` is the number of hops.
    """

    edges: tuple[PathStep, ...]
    intermediate_tables: tuple[str, ...]
    length: int

    def to_dict(self) -> dict:
        return {
            "edges": [step.to_dict() for step in self.edges],
            "intermediateTables": list(self.intermediate_tables),
            "length": self.length,
        }


@dataclass(frozen=True)
class JoinOption:
    """A path presented to the user with a readable description."""

    path: JoinPath
    description: str
    direct_relationships: int

    def to_dict(self) -> dict:
        return {
            "path": self.path.to_dict(),
            "description": self.description,
            "directRelationships": self.direct_relationships,
        }


@dataclass(frozen=True)
class Relationship:
    """
    An edge touching an included table.

    `direction` is "to" when the candidate is the edge's target and
    "from" when it is the edge's source.
    """

    edge: GraphEdge
    direction: str
    related_table_id: str


@dataclass
class RelatedTable:
    """A table one hop away from the current query, with every linking edge."""

    table_id: str
    table_name: str
    relationships: list[Relationship] = field(default_factory=list)


# -----------------------------
# Errors
# -----------------------------


class JoinResolutionError(Exception):
    """Raised when a path search is called with invalid arguments."""

    pass


# -----------------------------
# Resolver
# -----------------------------


class JoinGraphResolver:
    """
    Path finder over the schema graph.

    Every edge is indexed from both endpoints. The reverse entry swaps
    tables and columns, so a path walked against an edge's direction
    still reports which column belongs to which table.
    """

    def __init__(
        self,
        nodes: Iterable[GraphNode],
        edges: Iterable[GraphEdge],
        max_depth: int | None = None,
        best_path_depth: int | None = None,
    ):
        """
        Initialize the resolver.

        Args:
            nodes: Schema graph nodes.
            edges: Schema graph edges; endpoints missing from `nodes`
                are still traversed.
            max_depth: Default hop limit for find_all_paths.
            best_path_depth: Hop limit for find_best_path / find_join_options.
        """
        settings = get_resolver_settings()
        self._nodes: dict[str, GraphNode] = {node.id: node for node in nodes}
        self._edges: list[GraphEdge] = list(edges)
        self._max_depth = settings.max_path_depth if max_depth is None else max_depth
        self._best_path_depth = (
            settings.best_path_depth if best_path_depth is None else best_path_depth
        )

        self._adjacency: dict[str, list[tuple[str, PathStep]]] = {
            node_id: [] for node_id in self._nodes
        }
        for edge in self._edges:
            forward = PathStep(
                from_table=edge.from_table,
                to_table=edge.to_table,
                from_column=edge.from_column,
                to_column=edge.to_column,
                edge_id=edge.id,
            )
            reverse = PathStep(
                from_table=edge.to_table,
                to_table=edge.from_table,
                from_column=edge.to_column,
                to_column=edge.from_column,
                edge_id=edge.id,
            )
            self._adjacency.setdefault(edge.from_table, []).append((edge.to_table, forward))
            self._adjacency.setdefault(edge.to_table, []).append((edge.from_table, reverse))

    @classmethod
    def from_graph(cls, graph: SchemaGraph, **kwargs) -> "JoinGraphResolver":
        """Build a resolver from a SchemaGraph document."""
        return cls(graph.nodes, graph.edges, **kwargs)

    # -------------------------
    # Path search
    # -------------------------

    def find_all_paths(
        self, from_id: str, to_id: str, max_depth: int | None = None
    ) -> list[JoinPath]:
        """
        Enumerate paths between two tables, shortest first.

        Breadth-first search keyed on (table, hops so far): a table may be
        expanded again at a different depth, so longer alternatives to a
        short path survive. A path never passes through the same table
        twice. The depth limit bounds the otherwise exponential search.

        Args:
            from_id: Starting table id.
            to_id: Target table id.
            max_depth: Maximum hops; defaults to the resolver's limit.

        Returns:
            Paths sorted by length. Empty when the tables are the same
            or not connected within `max_depth`.

        Raises:
            JoinResolutionError: If `max_depth` is negative.
        """
        depth_limit = self._max_depth if max_depth is None else max_depth
        if depth_limit < 0:
            raise JoinResolutionError(f"max_depth must be >= 0, got {depth_limit}")

        if from_id == to_id:
            return []

        paths: list[JoinPath] = []
        visited: set[tuple[str, int]] = set()
        queue: deque[tuple[str, tuple[PathStep, ...]]] = deque([(from_id, ())])

        while queue:
            current, steps = queue.popleft()

            if len(steps) > depth_limit:
                continue

            if current == to_id and steps:
                paths.append(
                    JoinPath(
                        edges=steps,
                        intermediate_tables=tuple(step.to_table for step in steps[:-1]),
                        length=len(steps),
                    )
                )
                continue

            key = (current, len(steps))
            if key in visited:
                continue
            visited.add(key)

            on_path = {from_id, *(step.to_table for step in steps)}
            for neighbor, step in self._adjacency.get(current, []):
                if neighbor in on_path:
                    continue
                queue.append((neighbor, steps + (step,)))

        paths.sort(key=lambda path: path.length)
        logger.debug(
            "Found %d join paths from %s to %s (max_depth=%d)",
            len(paths),
            from_id,
            to_id,
            depth_limit,
        )
        return paths

    def find_best_path(self, from_id: str, to_id: str) -> JoinPath | None:
        """Get the shortest path within the best-path depth, or None."""
        paths = self.find_all_paths(from_id, to_id, self._best_path_depth)
        return paths[0] if paths else None

    def find_join_options(self, from_id: str, to_id: str) -> list[JoinOption]:
        """Describe every candidate path so the user can pick one."""
        options = []
        for path in self.find_all_paths(from_id, to_id, self._best_path_depth):
            direct = sum(
                1
                for step in path.edges
                if step.from_table == from_id or step.to_table == from_id
            )

            if path.length == 1:
                step = path.edges[0]
                description = (
                    f"Direct relationship via {step.from_column} -> {step.to_column}"
                )
            else:
                description = (
                    f"Path via {len(path.intermediate_tables)} table(s): "
                    + " -> ".join(path.intermediate_tables)
                )

            options.append(
                JoinOption(path=path, description=description, direct_relationships=direct)
            )
        return options

    # -------------------------
    # Neighbourhood queries
    # -------------------------

    def find_direct_relationships(self, table_a: str, table_b: str) -> list[GraphEdge]:
        """Get every edge between two tables, in either direction."""
        return [edge for edge in self._edges if edge.connects(table_a, table_b)]

    def are_directly_connected(self, table_a: str, table_b: str) -> GraphEdge | None:
        """Get the first edge between two tables, or None."""
        edges = self.find_direct_relationships(table_a, table_b)
        return edges[0] if edges else None

    def find_connected_tables(self, base_table_id: str, max_depth: int = 2) -> set[str]:
        """Get every table reachable from `base_table_id` within `max_depth` hops."""
        connected = {base_table_id}
        queue = deque([(base_table_id, 0)])

        while queue:
            table, depth = queue.popleft()
            if depth >= max_depth:
                continue
            for neighbor, _ in self._adjacency.get(table, []):
                if neighbor not in connected:
                    connected.add(neighbor)
                    queue.append((neighbor, depth + 1))

        return connected

    def find_tables_with_relationships(
        self, included_table_ids: Iterable[str]
    ) -> list[RelatedTable]:
        """
        Suggest the next tables to add to a query.

        Finds every table outside `included_table_ids` that shares at least
        one edge with an included table, collecting all such edges.

        Args:
            included_table_ids: Tables already in the query; iteration order
                determines result order.

        Returns:
            One RelatedTable per candidate, in discovery order.
        """
        included = list(dict.fromkeys(included_table_ids))
        included_set = set(included)
        result: dict[str, RelatedTable] = {}

        for included_id in included:
            for edge in self._edges:
                if edge.from_table == included_id and edge.to_table not in included_set:
                    related_id, direction = edge.to_table, "to"
                elif edge.to_table == included_id and edge.from_table not in included_set:
                    related_id, direction = edge.from_table, "from"
                else:
                    continue

                if related_id not in self._nodes:
                    continue

                if related_id not in result:
                    result[related_id] = RelatedTable(
                        table_id=related_id,
                        table_name=related_id.rsplit(".", 1)[-1],
                    )
                result[related_id].relationships.append(
                    Relationship(
                        edge=edge,
                        direction=direction,
                        related_table_id=included_id,
                    )
                )

        return list(result.values())


# -----------------------------
# Functional interface
# -----------------------------


def find_all_paths(
    nodes: Iterable[GraphNode],
    edges: Iterable[GraphEdge],
    from_id: str,
    to_id: str,
    max_depth: int | None = None,
) -> list[JoinPath]:
    """See JoinGraphResolver.find_all_paths."""
    return JoinGraphResolver(nodes, edges).find_all_paths(from_id, to_id, max_depth)


def find_best_path(
    nodes: Iterable[GraphNode],
    edges: Iterable[GraphEdge],
    from_id: str,
    to_id: str,
) -> JoinPath | None:
    """See JoinGraphResolver.find_best_path."""
    return JoinGraphResolver(nodes, edges).find_best_path(from_id, to_id)


def find_join_options(
    nodes: Iterable[GraphNode],
    edges: Iterable[GraphEdge],
    from_id: str,
    to_id: str,
) -> list[JoinOption]:
    """See JoinGraphResolver.find_join_options."""
    return JoinGraphResolver(nodes, edges).find_join_options(from_id, to_id)


def find_tables_with_relationships(
    nodes: Iterable[GraphNode],
    edges: Iterable[GraphEdge],
    included_table_ids: Iterable[str],
) -> list[RelatedTable]:
    """See JoinGraphResolver.find_tables_with_relationships."""
    return JoinGraphResolver(nodes, edges).find_tables_with_relationships(
        included_table_ids
    )
