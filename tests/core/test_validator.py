"""
Tests for AST Validator.

Tests that structural problems in a QueryAST are reported with the
right issue types.
"""

import pytest

from querylens.core.safety.validator import (
    ASTValidationError,
    ASTValidator,
    IssueType,
)
from querylens.core.schema_graph.graph import Column, GraphEdge, GraphNode, SchemaGraph
from querylens.core.sql_ast.models import (
    CTEClause,
    FromClause,
    QueryAST,
    QueryJoin,
    SelectClause,
    SelectField,
    WhereClause,
    WhereCondition,
)


# -----------------------------
# Fixtures
# -----------------------------


@pytest.fixture
def graph() -> SchemaGraph:
    """Schema graph with orders, customers and regions."""
    return SchemaGraph(
        nodes=[
            GraphNode(id="orders", label="orders",
                      columns=[Column(name="id"), Column(name="customer_id")]),
            GraphNode(id="customers", label="customers",
                      columns=[Column(name="id"), Column(name="name")]),
            GraphNode(id="regions", label="regions", columns=[Column(name="id")]),
        ],
        edges=[
            GraphEdge(id="e1", from_table="orders", from_column="customer_id",
                      to_table="customers", to_column="id"),
        ],
    )


@pytest.fixture
def validator(graph: SchemaGraph) -> ASTValidator:
    """Create a validator over the graph."""
    return ASTValidator(graph)


def join(**kwargs) -> QueryJoin:
    values = dict(
        id="j1",
        source_table_id="orders",
        source_alias="ord",
        source_column="customer_id",
        target_table_id="customers",
        target_alias="cus",
        target_column="id",
    )
    values.update(kwargs)
    return QueryJoin(**values)


def query(**kwargs) -> QueryAST:
    return QueryAST(from_=FromClause(table="orders", alias="ord"), **kwargs)


def issue_types(validator: ASTValidator, ast: QueryAST) -> list[IssueType]:
    return [issue.type for issue in validator.collect_issues(ast)]


# -----------------------------
# Valid Query Tests
# -----------------------------


class TestValidQueries:
    """Tests that well-formed queries pass."""

    def test_simple_query(self, validator: ASTValidator) -> None:
        """A single-table query should pass."""
        ast = query(
            select=SelectClause(fields=[SelectField(table_id="orders", column="id")])
        )

        validator.validate(ast)

    def test_join_and_references(self, validator: ASTValidator) -> None:
        """Joined tables should be referenceable by id or alias."""
        ast = query(
            joins=[join()],
            select=SelectClause(fields=[SelectField(table_id="customers", column="name")]),
            where=WhereClause(conditions=[WhereCondition(table_id="cus", column="name", value="x")]),
        )

        assert validator.collect_issues(ast) == []

    def test_consolidated_pair_is_not_circular(self, validator: ASTValidator) -> None:
        """Repeating a table pair should not be circular."""
        ast = query(joins=[join(), join(id="j2", source_column="id", target_column="id")])

        assert validator.collect_issues(ast) == []

    def test_without_graph_only_structure(self) -> None:
        """Without a graph only structure should be checked."""
        ast = QueryAST(from_=FromClause(table="anything", alias="a"))

        assert ASTValidator().collect_issues(ast) == []


# -----------------------------
# Issue Tests
# -----------------------------


class TestIssues:
    """Tests for each issue type."""

    def test_missing_from(self, validator: ASTValidator) -> None:
        """A query without FROM should be reported."""
        assert issue_types(validator, QueryAST()) == [IssueType.MISSING_TABLE]

    def test_unknown_from_table(self, validator: ASTValidator) -> None:
        """A FROM table missing from the graph should be reported."""
        ast = QueryAST(from_=FromClause(table="nope", alias="n"))

        assert issue_types(validator, ast) == [IssueType.MISSING_TABLE]

    def test_cte_name_is_known(self, validator: ASTValidator) -> None:
        """A CTE name should count as a known table."""
        ast = QueryAST(
            from_=FromClause(table="recent", alias="r"),
            ctes=[CTEClause(name="recent", query=query())],
        )

        assert validator.collect_issues(ast) == []

    def test_duplicate_column(self, validator: ASTValidator) -> None:
        """A column selected twice without alias should be reported."""
        ast = query(
            select=SelectClause(
                fields=[
                    SelectField(id="a", table_id="orders", column="id"),
                    SelectField(id="b", table_id="orders", column="id"),
                    SelectField(id="c", table_id="orders", column="id", alias="id2"),
                ]
            )
        )
        issues = validator.collect_issues(ast)

        assert [i.type for i in issues] == [IssueType.DUPLICATE_COLUMN]
        assert issues[0].field == "b"

    def test_join_source_not_in_scope(self, validator: ASTValidator) -> None:
        """A join from a table not yet joined should be invalid."""
        ast = query(
            joins=[
                join(source_table_id="customers", source_alias="cus", source_column="id",
                     target_table_id="regions", target_alias="reg", target_column="id"),
            ]
        )

        assert issue_types(validator, ast) == [IssueType.INVALID_JOIN]

    def test_unknown_join_column(self, validator: ASTValidator) -> None:
        """A join column missing from the node should be invalid."""
        ast = query(joins=[join(target_column="missing")])
        issues = validator.collect_issues(ast)

        assert [i.type for i in issues] == [IssueType.INVALID_JOIN]
        assert "missing" in issues[0].message

    def test_custom_condition_skips_column_check(self, validator: ASTValidator) -> None:
        """A custom condition should skip the column check."""
        ast = query(joins=[join(target_column="", custom_condition="ord.x = cus.y")])

        assert validator.collect_issues(ast) == []

    def test_self_join_under_new_alias(self, validator: ASTValidator) -> None:
        """A table joined to itself under a fresh alias is valid."""
        ast = query(
            joins=[join(source_table_id="orders", target_table_id="orders",
                        target_alias="ord2", source_column="customer_id", target_column="id")],
            select=SelectClause(fields=[SelectField(table_id="ord2", column="id")]),
        )

        assert validator.collect_issues(ast) == []

    def test_circular_join_reuses_base_alias(self, validator: ASTValidator) -> None:
        """A join target bound to the FROM alias is circular."""
        ast = query(joins=[join(target_alias="ord")])

        assert IssueType.CIRCULAR_JOIN in issue_types(validator, ast)

    def test_circular_join_alias_reused(self, validator: ASTValidator) -> None:
        """Reusing an alias for another table should be circular."""
        ast = query(
            joins=[
                join(),
                join(id="j2", source_table_id="customers", source_alias="cus",
                     source_column="id", target_table_id="regions", target_alias="cus",
                     target_column="id"),
            ]
        )

        assert IssueType.CIRCULAR_JOIN in issue_types(validator, ast)

    def test_unknown_join_target(self, validator: ASTValidator) -> None:
        """A join to an unknown table should be reported."""
        ast = query(joins=[join(target_table_id="ghost", target_alias="gho")])

        assert issue_types(validator, ast) == [IssueType.MISSING_TABLE]

    def test_missing_join(self, validator: ASTValidator) -> None:
        """Referencing a table that is not joined should be reported."""
        ast = query(
            select=SelectClause(
                fields=[SelectField(id="f1", table_id="customers", column="name")]
            )
        )
        issues = validator.collect_issues(ast)

        assert [i.type for i in issues] == [IssueType.MISSING_JOIN]
        assert issues[0].to_dict() == {
            "type": "missing_join",
            "message": "SELECT references 'customers', which is not joined",
            "field": "f1",
        }

    def test_validate_raises_with_all_issues(self, validator: ASTValidator) -> None:
        """validate should raise listing every issue."""
        ast = QueryAST(
            select=SelectClause(fields=[SelectField(table_id="customers", column="name")])
        )

        with pytest.raises(ASTValidationError) as exc_info:
            validator.validate(ast)

        assert [i.type for i in exc_info.value.issues] == [
            IssueType.MISSING_TABLE,
            IssueType.MISSING_JOIN,
        ]
