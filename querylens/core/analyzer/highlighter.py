"""
Schema matching for analyzed SQL.

Maps the tables and joins found by the analyzer onto schema graph node
and edge ids, producing the sets a visualization highlights.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from querylens.core.analyzer.extractor import (
    AnalysisResult,
    JoinRelationship,
    SQLAnalyzer,
)
from querylens.core.schema_graph.graph import GraphEdge

logger = logging.getLogger(__name__)


def normalize_table_name(name: str) -> str:
    """Lower-case a table reference and drop brackets and spaces."""
    return name.lower().strip().replace("[", "").replace("]", "").replace(" ", "")


def bare_table_name(name: str) -> str:
    """Table name without schema qualification, normalized."""
    return normalize_table_name(name).rsplit(".", 1)[-1]


def tables_match(name_a: str, name_b: str) -> bool:
    """Two references match on the full name or on the bare table name."""
    return (
        normalize_table_name(name_a) == normalize_table_name(name_b)
        or bare_table_name(name_a) == bare_table_name(name_b)
    )


# -----------------------------
# Results
# -----------------------------


@dataclass
class HighlightResult:
    highlighted_table_ids: set[str] = field(default_factory=set)
    highlighted_edge_ids: set[str] = field(default_factory=set)
    analysis: AnalysisResult = field(default_factory=AnalysisResult)

    def to_dict(self) -> dict:
        return {
            "highlightedTableIds": sorted(self.highlighted_table_ids),
            "highlightedEdgeIds": sorted(self.highlighted_edge_ids),
            "analysis": self.analysis.to_dict(),
        }


# -----------------------------
# Matcher
# -----------------------------


class SchemaMatcher:
    """
    Resolves table names written in SQL to schema node ids.

    An exact (case-insensitive) id match wins. Otherwise candidates are
    the ids sharing the bare table name; with several candidates the
    first schema-qualified one is taken, else the first overall. The
    choice between same-named tables in different schemas is therefore
    arbitrary and follows `table_ids` order.
    """

    def __init__(self, table_ids: Iterable[str]):
        self._ids = list(dict.fromkeys(table_ids))
        self._exact: dict[str, str] = {}
        self._by_bare_name: dict[str, list[str]] = {}

        for table_id in self._ids:
            self._exact.setdefault(normalize_table_name(table_id), table_id)
            self._by_bare_name.setdefault(bare_table_name(table_id), []).append(table_id)

    def candidates(self, name: str) -> list[str]:
        """Every node id the name could refer to."""
        normalized = normalize_table_name(name)
        if normalized in self._exact:
            return [self._exact[normalized]]
        return list(self._by_bare_name.get(bare_table_name(name), []))

    def related(self, name: str) -> list[str]:
        """Every node id sharing the full or bare name, in graph order."""
        return [table_id for table_id in self._ids if tables_match(table_id, name)]

    def match(self, name: str) -> str | None:
        """The single node id chosen for `name`, or None."""
        candidates = self.candidates(name)
        if not candidates:
            return None
        if len(candidates) == 1:
            return candidates[0]

        normalized = normalize_table_name(name)
        bare = bare_table_name(name)
        for candidate in candidates:
            lowered = candidate.lower()
            if lowered == normalized or lowered.endswith(f".{bare}"):
                return candidate
        return candidates[0]


# -----------------------------
# Highlighting
# -----------------------------


def _edge_matches_join(edge: GraphEdge, join: JoinRelationship, highlighted: set[str]) -> bool:
    forward = tables_match(edge.from_table, join.from_table) and tables_match(
        edge.to_table, join.to_table
    )
    reverse = tables_match(edge.from_table, join.to_table) and tables_match(
        edge.to_table, join.from_table
    )
    if not (forward or reverse):
        return False

    if join.from_column and join.to_column:
        join_columns = (join.from_column.lower(), join.to_column.lower())
        edge_columns = (edge.from_column.lower(), edge.to_column.lower())
        return edge_columns in (join_columns, join_columns[::-1])

    # Without column information any edge between two highlighted tables counts.
    return edge.from_table in highlighted and edge.to_table in highlighted


def _edges_within(edges: list[GraphEdge], table_ids: set[str]) -> set[str]:
    return {
        edge.id
        for edge in edges
        if edge.from_table in table_ids and edge.to_table in table_ids
    }


def highlight_analysis(
    analysis: AnalysisResult,
    all_table_ids: Iterable[str],
    all_edges: Iterable[GraphEdge],
) -> HighlightResult:
    """
    Match an analysis result against the schema graph.

    With explicit joins, the highlighted tables are every id matching a
    join endpoint, in all schemas for an ambiguous bare name, and the
    highlighted edges are those matching a join (by columns when known);
    if none match, every edge among the join tables is used.
    Without joins, every mentioned table is highlighted, narrowed to
    those connected by an edge when there are several.
    """
    edges = list(all_edges)
    matcher = SchemaMatcher(all_table_ids)

    mentioned: set[str] = set()
    for table in analysis.tables:
        table_id = matcher.match(table)
        if table_id is not None:
            mentioned.add(table_id)

    if analysis.joins:
        edge_ids = {
            edge.id
            for join in analysis.joins
            for edge in edges
            if _edge_matches_join(edge, join, mentioned)
        }

        table_ids: set[str] = set()
        for join in analysis.joins:
            for name in (join.from_table, join.to_table):
                table_ids.update(matcher.related(name))

        if not edge_ids and table_ids:
            edge_ids = _edges_within(edges, table_ids)
    else:
        connected: set[str] = set()
        for edge in edges:
            if edge.from_table in mentioned and edge.to_table in mentioned:
                connected.update((edge.from_table, edge.to_table))

        if len(mentioned) == 1 or not connected:
            table_ids = mentioned
        else:
            table_ids = connected
        edge_ids = _edges_within(edges, table_ids)

    logger.debug(
        "Highlighted %d tables and %d edges", len(table_ids), len(edge_ids)
    )
    return HighlightResult(
        highlighted_table_ids=table_ids,
        highlighted_edge_ids=edge_ids,
        analysis=analysis,
    )


def highlight_query(
    sql: str,
    all_table_ids: Iterable[str],
    all_edges: Iterable[GraphEdge],
    analyzer: SQLAnalyzer | None = None,
) -> HighlightResult:
    """Analyze `sql` and match it against the schema graph."""
    analysis = (analyzer or SQLAnalyzer()).analyze(sql)
    return highlight_analysis(analysis, all_table_ids, all_edges)
