"""
Tests for schema matching and highlighting.

Tests that analyzed SQL is mapped onto schema node and edge ids.
"""

import pytest

from querylens.core.analyzer.extractor import AnalysisResult, JoinRelationship
from querylens.core.analyzer.highlighter import (
    SchemaMatcher,
    highlight_analysis,
    highlight_query,
    tables_match,
)
from querylens.core.schema_graph.graph import GraphEdge


# -----------------------------
# Fixtures
# -----------------------------


@pytest.fixture
def table_ids() -> list[str]:
    """Schema ids with orders in two schemas."""
    return [
        "sales.orders",
        "sales.customers",
        "sales.products",
        "sales.regions",
        "archive.orders",
    ]


@pytest.fixture
def edges() -> list[GraphEdge]:
    """Foreign-key edges among the sales tables."""
    return [
        GraphEdge(id="e1", from_table="sales.orders", from_column="customer_id",
                  to_table="sales.customers", to_column="id"),
        GraphEdge(id="e2", from_table="sales.orders", from_column="product_id",
                  to_table="sales.products", to_column="id"),
        GraphEdge(id="e3", from_table="sales.customers", from_column="region_id",
                  to_table="sales.regions", to_column="id"),
        GraphEdge(id="e4", from_table="sales.orders", from_column="billing_customer_id",
                  to_table="sales.customers", to_column="id"),
    ]


# -----------------------------
# Matcher Tests
# -----------------------------


class TestSchemaMatcher:
    """Tests for table name resolution."""

    def test_exact_match_case_insensitive(self, table_ids: list[str]) -> None:
        """A full id should match regardless of case."""
        matcher = SchemaMatcher(table_ids)

        assert matcher.match("SALES.Customers") == "sales.customers"

    def test_bare_name_unique(self, table_ids: list[str]) -> None:
        """A unique bare name should match its schema id."""
        assert SchemaMatcher(table_ids).match("products") == "sales.products"

    def test_bare_name_ambiguous_takes_first(self, table_ids: list[str]) -> None:
        """Same table name in two schemas: the first id wins."""
        matcher = SchemaMatcher(table_ids)

        assert matcher.candidates("orders") == ["sales.orders", "archive.orders"]
        assert matcher.match("orders") == "sales.orders"

    def test_qualified_name_prefers_its_schema(self, table_ids: list[str]) -> None:
        """A qualified name should match its own schema."""
        assert SchemaMatcher(table_ids).match("archive.orders") == "archive.orders"

    def test_brackets_ignored(self, table_ids: list[str]) -> None:
        """Bracketed names should match unbracketed ids."""
        assert SchemaMatcher(table_ids).match("[sales].[regions]") == "sales.regions"

    def test_unknown_table(self, table_ids: list[str]) -> None:
        """An unknown name should match nothing."""
        assert SchemaMatcher(table_ids).match("nope") is None

    def test_tables_match(self) -> None:
        """Names should match on the full or bare name."""
        assert tables_match("dbo.orders", "orders")
        assert tables_match("Orders", "ORDERS")
        assert not tables_match("orders", "customers")


# -----------------------------
# Highlighting Tests
# -----------------------------


class TestHighlightQuery:
    """Tests for node and edge highlighting."""

    def test_join_highlights_matching_edge(
        self, table_ids: list[str], edges: list[GraphEdge]
    ) -> None:
        """A join should highlight its tables and the matching edge."""
        result = highlight_query(
            "SELECT * FROM orders o JOIN customers c ON o.customer_id = c.id",
            table_ids,
            edges,
        )

        assert result.highlighted_table_ids == {
            "sales.orders", "archive.orders", "sales.customers"
        }
        assert result.highlighted_edge_ids == {"e1"}

    def test_ambiguous_name_highlights_edge_endpoints(self, edges: list[GraphEdge]) -> None:
        """Every schema sharing a joined bare name is highlighted, so edge endpoints are too."""
        table_ids = ["archive.orders", "sales.orders", "sales.customers"]
        result = highlight_query(
            "SELECT * FROM orders o JOIN customers c ON o.customer_id = c.id",
            table_ids,
            edges,
        )

        assert result.highlighted_edge_ids == {"e1"}
        assert result.highlighted_table_ids == set(table_ids)
        for edge in edges:
            if edge.id in result.highlighted_edge_ids:
                assert {edge.from_table, edge.to_table} <= result.highlighted_table_ids

    def test_columns_checked_in_both_directions(
        self, table_ids: list[str], edges: list[GraphEdge]
    ) -> None:
        """Join columns should match an edge written the other way round."""
        result = highlight_query(
            "SELECT * FROM customers c JOIN orders o ON c.id = o.billing_customer_id",
            table_ids,
            edges,
        )

        assert result.highlighted_edge_ids == {"e4"}

    def test_unmatched_columns_fall_back_to_all_edges(
        self, table_ids: list[str], edges: list[GraphEdge]
    ) -> None:
        """A join on columns no edge carries highlights every edge between the tables."""
        result = highlight_query(
            "SELECT * FROM orders o JOIN customers c ON o.note = c.note",
            table_ids,
            edges,
        )

        assert result.highlighted_edge_ids == {"e1", "e4"}

    def test_join_without_columns(
        self, table_ids: list[str], edges: list[GraphEdge]
    ) -> None:
        """A join without columns should match any edge between its tables."""
        analysis = AnalysisResult(
            tables=["orders", "products"],
            joins=[JoinRelationship(from_table="orders", to_table="products")],
        )
        result = highlight_analysis(analysis, table_ids, edges)

        assert result.highlighted_edge_ids == {"e2"}

    def test_no_joins_single_table(
        self, table_ids: list[str], edges: list[GraphEdge]
    ) -> None:
        """A single table should be highlighted without edges."""
        result = highlight_query("SELECT * FROM regions", table_ids, edges)

        assert result.highlighted_table_ids == {"sales.regions"}
        assert result.highlighted_edge_ids == set()

    def test_no_joins_connected_tables(
        self, table_ids: list[str], edges: list[GraphEdge]
    ) -> None:
        """Comma joins: tables linked by an edge are kept, with their edges."""
        result = highlight_query(
            "SELECT * FROM customers c, regions r, products p WHERE c.region_id = r.id",
            table_ids,
            edges,
        )

        assert result.highlighted_table_ids == {"sales.customers", "sales.regions"}
        assert result.highlighted_edge_ids == {"e3"}

    def test_no_joins_unconnected_tables(
        self, table_ids: list[str], edges: list[GraphEdge]
    ) -> None:
        """Unconnected tables should all stay highlighted."""
        result = highlight_query("SELECT * FROM products p, regions r", table_ids, edges)

        assert result.highlighted_table_ids == {"sales.products", "sales.regions"}
        assert result.highlighted_edge_ids == set()

    def test_unknown_tables_ignored(
        self, table_ids: list[str], edges: list[GraphEdge]
    ) -> None:
        """Tables missing from the graph should not be highlighted."""
        result = highlight_query("SELECT * FROM audit_log", table_ids, edges)

        assert result.highlighted_table_ids == set()
        assert result.to_dict()["analysis"]["tables"] == ["audit_log"]
