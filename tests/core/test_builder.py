"""
Tests for Query Builder.

Tests that builder actions produce a consistent QueryAST: automatic
joins, unique aliases, clause ordering and SQL preview.
"""

import pytest

from querylens.core.schema_graph.graph import Column, GraphEdge, GraphNode, SchemaGraph
from querylens.core.sql_ast.builder import QueryBuilder, create_empty_ast
from querylens.core.sql_ast.models import (
    Dialect,
    FromClause,
    JoinType,
    OrderDirection,
    QueryAST,
    UnionType,
    WhereCondition,
    WhereOperator,
)
from querylens.core.sql_ast.utils import generate_alias


# -----------------------------
# Fixtures
# -----------------------------


@pytest.fixture
def graph() -> SchemaGraph:
    """orders -> customers -> regions; orders -> products; audit isolated."""
    return SchemaGraph(
        nodes=[
            GraphNode(id="orders", label="orders",
                      columns=[Column(name="id"), Column(name="customer_id"),
                               Column(name="product_id")]),
            GraphNode(id="customers", label="customers",
                      columns=[Column(name="id"), Column(name="region_id")]),
            GraphNode(id="regions", label="regions", columns=[Column(name="id")]),
            GraphNode(id="products", label="products", columns=[Column(name="id")]),
            GraphNode(id="audit", label="audit", columns=[Column(name="id")]),
        ],
        edges=[
            GraphEdge(id="e_ord_cus", from_table="orders", from_column="customer_id",
                      to_table="customers", to_column="id"),
            GraphEdge(id="e_cus_reg", from_table="customers", from_column="region_id",
                      to_table="regions", to_column="id"),
            GraphEdge(id="e_ord_pro", from_table="orders", from_column="product_id",
                      to_table="products", to_column="id"),
        ],
    )


@pytest.fixture
def builder(graph: SchemaGraph) -> QueryBuilder:
    """Create a MySQL builder based on orders."""
    builder = QueryBuilder(graph, dialect=Dialect.MYSQL)
    builder.set_base_table("orders")
    return builder


# -----------------------------
# Alias Tests
# -----------------------------


class TestAliases:
    """Tests for alias generation."""

    def test_first_three_characters(self) -> None:
        """An alias should be the first three characters of the table."""
        assert generate_alias("customers", set()) == "cus"

    def test_schema_prefix_ignored(self) -> None:
        """The schema prefix should not count toward the alias."""
        assert generate_alias("dbo.tbProduct", set()) == "tbp"

    def test_numbered_on_collision(self) -> None:
        """A taken alias should get the next free number."""
        assert generate_alias("customers", {"cus", "cus1"}) == "cus2"

    def test_non_alphanumeric_dropped(self) -> None:
        """Non-alphanumerics should be dropped, falling back to t."""
        assert generate_alias("_x_y", set()) == "xy"
        assert generate_alias("___", set()) == "t"


# -----------------------------
# Base Table and Columns
# -----------------------------


class TestColumns:
    """Tests for base table and SELECT actions."""

    def test_empty_builder_has_no_sql(self, graph: SchemaGraph) -> None:
        """A builder without a base table should produce no SQL."""
        builder = QueryBuilder(graph)

        assert builder.sql() == ""
        assert builder.ast == create_empty_ast()

    def test_set_base_table(self, builder: QueryBuilder) -> None:
        """Setting the base table should assign its alias."""
        assert builder.ast.from_.table == "orders"
        assert builder.ast.from_.alias == "ord"
        assert builder.table_aliases() == {"orders": "ord"}

    def test_add_column_same_table(self, builder: QueryBuilder) -> None:
        """A base-table column should be added without joins."""
        field = builder.add_column("orders", "id")

        assert field is not None
        assert field.id.startswith("field-")
        assert builder.ast.joins == []
        assert builder.sql(pretty=False) == "SELECT ord.`id` FROM `orders` AS ord"

    def test_duplicate_column_ignored(self, builder: QueryBuilder) -> None:
        """Adding the same column twice should be a no-op."""
        builder.add_column("orders", "id")

        assert builder.add_column("orders", "id") is None
        assert len(builder.ast.select.fields) == 1

    def test_add_column_auto_joins_path(self, builder: QueryBuilder) -> None:
        """A column two hops away brings in both joins."""
        builder.add_column("regions", "id")
        joins = builder.ast.joins

        assert [(j.source_table_id, j.target_table_id) for j in joins] == [
            ("orders", "customers"),
            ("customers", "regions"),
        ]
        assert joins[1].source_alias == joins[0].target_alias == "cus"
        assert joins[0].type == JoinType.LEFT
        assert joins[0].edge_id == "e_ord_cus"
        assert builder.included_tables() == {"orders", "customers", "regions"}

    def test_auto_join_reuses_existing_joins(self, builder: QueryBuilder) -> None:
        """An auto-join path should reuse joins already present."""
        builder.add_column("customers", "id")
        builder.add_column("regions", "id")

        assert len(builder.ast.joins) == 2
        assert builder.ast.joins[1].source_alias == "cus"

    def test_unreachable_column_added_without_join(self, builder: QueryBuilder) -> None:
        """A column with no join path should be added alone."""
        builder.add_column("audit", "id")

        assert builder.ast.joins == []
        assert builder.ast.select.fields[0].table_id == "audit"

    def test_alias_and_reorder(self, builder: QueryBuilder) -> None:
        """Aliases should update and reordering should renumber."""
        first = builder.add_column("orders", "id")
        second = builder.add_column("orders", "customer_id")
        builder.update_column_alias(first.id, "order_id")
        builder.reorder_columns(list(reversed(builder.ast.select.fields)))

        fields = builder.ast.select.fields
        assert [f.id for f in fields] == [second.id, first.id]
        assert [f.order for f in fields] == [0, 1]
        assert fields[1].alias == "order_id"

        builder.update_column_alias(first.id, "")
        assert builder.ast.select.fields[1].alias is None

    def test_remove_column(self, builder: QueryBuilder) -> None:
        """Removing a column should report whether it existed."""
        field = builder.add_column("orders", "id")

        assert builder.remove_column(field.id) is True
        assert builder.remove_column(field.id) is False

    def test_add_expression(self, builder: QueryBuilder) -> None:
        """A raw expression should be selected with its alias."""
        builder.add_expression("COUNT(*)", alias="n")

        assert builder.sql(pretty=False) == "SELECT COUNT(*) AS `n` FROM `orders` AS ord"


# -----------------------------
# Join Actions
# -----------------------------


class TestJoins:
    """Tests for explicit join actions."""

    def test_add_direct_join(self, builder: QueryBuilder) -> None:
        """A directly related table should join on the edge columns."""
        created = builder.add_join("customers")

        assert len(created) == 1
        assert created[0].source_column == "customer_id"
        assert created[0].target_column == "id"

    def test_direct_join_against_edge_direction(self, graph: SchemaGraph) -> None:
        """Joining against the edge direction should swap columns."""
        builder = QueryBuilder(graph)
        builder.set_base_table("customers")
        join = builder.add_join("orders")[0]

        assert join.source_column == "id"
        assert join.target_column == "customer_id"

    def test_add_join_multi_hop(self, builder: QueryBuilder) -> None:
        """A distant table should join through the intermediate tables."""
        created = builder.add_join("regions")

        assert [j.target_table_id for j in created] == ["customers", "regions"]

    def test_add_join_twice_is_noop(self, builder: QueryBuilder) -> None:
        """Joining an included table should add nothing."""
        builder.add_join("customers")

        assert builder.add_join("customers") == []

    def test_add_join_unreachable(self, builder: QueryBuilder) -> None:
        """An unreachable table should add no joins."""
        assert builder.add_join("audit") == []

    def test_manual_join_composite(self, builder: QueryBuilder) -> None:
        """Several column pairs should become one escaped condition."""
        join = builder.add_manual_join(
            "customers", "orders", [("customer_id", "id"), ("region", "region")],
            join_type="INNER",
        )

        assert join.type == JoinType.INNER
        assert join.custom_condition == (
            "ord.`customer_id` = cus.`id` AND ord.`region` = cus.`region`"
        )
        assert "INNER JOIN `customers` AS cus ON ord.`customer_id` = cus.`id` AND" in (
            builder.sql(pretty=False)
        )

    def test_manual_join_single_pair(self, builder: QueryBuilder) -> None:
        """A single column pair should not need a custom condition."""
        join = builder.add_manual_join("customers", "orders", [("customer_id", "id")])

        assert join.custom_condition is None

    def test_manual_join_sqlserver_escaping(self, graph: SchemaGraph) -> None:
        """Manual join conditions should use the builder dialect."""
        builder = QueryBuilder(graph, dialect="sqlserver")
        builder.set_base_table("orders")
        join = builder.add_manual_join("customers", "orders", [("a", "b"), ("c]", "d")])

        assert join.custom_condition == "ord.[a] = cus.[b] AND ord.[c]]] = cus.[d]"

    def test_manual_join_requires_conditions(self, builder: QueryBuilder) -> None:
        """A manual join without column pairs should raise."""
        with pytest.raises(ValueError):
            builder.add_manual_join("customers", "orders", [])

    def test_update_and_remove_join(self, builder: QueryBuilder) -> None:
        """Join updates should re-validate and removal should drop the join."""
        join = builder.add_join("customers")[0]
        updated = builder.update_join(join.id, type="INNER")

        assert updated.type == JoinType.INNER
        assert builder.remove_join(join.id) is True
        assert builder.ast.joins == []


# -----------------------------
# Clause Actions
# -----------------------------


class TestClauses:
    """Tests for WHERE, GROUP BY, ORDER BY, CTE, UNION and LIMIT actions."""

    def test_where_conditions(self, builder: QueryBuilder) -> None:
        """WHERE conditions should keep order and follow reordering."""
        first = builder.add_where_condition(
            WhereCondition(table_id="orders", column="id", operator=WhereOperator.GT, value=5)
        )
        second = builder.add_where_condition(
            WhereCondition(table_id="orders", column="id", operator=WhereOperator.LT, value=9)
        )

        assert first.id and second.id
        assert (first.order, second.order) == (0, 1)
        assert builder.sql(pretty=False).endswith("WHERE ord.`id` > 5 AND ord.`id` < 9")

        builder.reorder_where_conditions([second, first])
        assert builder.sql(pretty=False).endswith("WHERE ord.`id` < 9 AND ord.`id` > 5")

        assert builder.remove_where_condition(first.id) is True
        assert len(builder.ast.where.conditions) == 1

    def test_update_where_condition(self, builder: QueryBuilder) -> None:
        """A condition's operator should accept its string value."""
        cond = builder.add_where_condition(WhereCondition(table_id="orders", column="id", value=1))
        builder.update_where_condition(cond.id, operator="IS NULL")

        assert builder.ast.where.conditions[0].operator == WhereOperator.IS_NULL

    def test_group_and_order(self, builder: QueryBuilder) -> None:
        """GROUP BY and ORDER BY should be added, updated and removed."""
        group = builder.add_group_by("orders", "customer_id")
        assert builder.add_group_by("orders", "customer_id") is None

        order = builder.add_order_by("orders", "id", "DESC")
        builder.update_order_by(order.id, direction=OrderDirection.ASC)

        sql = builder.sql(pretty=False)
        assert sql.endswith("GROUP BY ord.`customer_id` ORDER BY ord.`id` ASC")

        assert builder.remove_group_by(group.id) is True
        assert builder.remove_order_by(order.id) is True

    def test_cte_and_union(self, builder: QueryBuilder) -> None:
        """CTEs and unions should compile and be removable."""
        sub = QueryAST(from_=FromClause(table="customers", alias="c"))
        cte = builder.add_cte("recent", sub, columns=["id"])
        union = builder.add_union(QueryAST(from_=FromClause(table="orders", alias="o")),
                                  UnionType.UNION_ALL)

        sql = builder.sql(pretty=False)
        assert sql.startswith("WITH `recent` (`id`) AS (SELECT * FROM `customers` AS c)")
        assert "UNION ALL SELECT * FROM `orders` AS o" in sql

        builder.update_cte(cte.id, recursive=True)
        assert builder.sql(pretty=False).startswith("WITH RECURSIVE")

        assert builder.remove_cte(cte.id) is True
        assert builder.remove_union(union.id) is True

    def test_limit(self, builder: QueryBuilder) -> None:
        """LIMIT and OFFSET should be set and cleared."""
        builder.set_limit(10, 5)
        assert builder.sql(pretty=False).endswith("LIMIT 10 OFFSET 5")

        builder.set_limit(None)
        assert builder.ast.limit is None

    def test_from_subquery(self, builder: QueryBuilder) -> None:
        """A FROM subquery should be set and cleared."""
        sub = QueryAST(from_=FromClause(table="customers", alias="c"))
        builder.set_from_subquery(sub, "x")

        assert builder.ast.from_.subquery == sub
        assert builder.ast.from_.alias == "x"

        builder.clear_from_subquery()
        assert builder.ast.from_.subquery is None

    def test_reset_and_load(self, builder: QueryBuilder) -> None:
        """Reset should clear the query and load should restore a copy."""
        builder.add_column("orders", "id")
        snapshot = builder.ast.model_copy(deep=True)

        builder.reset()
        assert builder.sql() == ""

        builder.load_ast(snapshot)
        assert builder.ast == snapshot
        assert builder.ast is not snapshot
