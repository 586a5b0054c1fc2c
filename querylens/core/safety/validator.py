"""
AST Validator for QueryLens.

Checks that a QueryAST is structurally sound before it is compiled:
a FROM source exists, joins chain from tables already in scope, and
every clause refers to tables that are actually joined. With a schema
graph, table and join column names are checked against it as well.
"""

from dataclasses import dataclass
from enum import Enum

from querylens.core.schema_graph.graph import SchemaGraph
from querylens.core.sql_ast.models import QueryAST, QueryJoin


# -----------------------------
# Issues
# -----------------------------


class IssueType(str, Enum):
    MISSING_TABLE = "missing_table"
    DUPLICATE_COLUMN = "duplicate_column"
    INVALID_JOIN = "invalid_join"
    CIRCULAR_JOIN = "circular_join"
    MISSING_JOIN = "missing_join"


@dataclass(frozen=True)
class ValidationIssue:
    """One problem found in an AST. `field` names the offending clause item."""

    type: IssueType
    message: str
    field: str | None = None

    def to_dict(self) -> dict:
        result = {"type": self.type.value, "message": self.message}
        if self.field is not None:
            result["field"] = self.field
        return result


# -----------------------------
# Errors
# -----------------------------


class ASTValidationError(Exception):
    """Raised when an AST is structurally invalid."""

    def __init__(self, issues: list[ValidationIssue]):
        self.issues = issues
        super().__init__("; ".join(issue.message for issue in issues))


# -----------------------------
# Validator
# -----------------------------


class ASTValidator:
    """
    Validates QueryAST objects, optionally against a schema graph.

    Without a graph only the AST's internal consistency is checked.
    Nested subqueries are not validated.
    """

    def __init__(self, graph: SchemaGraph | None = None):
        """
        Initialize the validator.

        Args:
            graph: Schema graph used to check table and column names.
        """
        self._graph = graph

    def validate(self, ast: QueryAST) -> None:
        """
        Validate the given AST.

        Raises:
            ASTValidationError: Listing every issue found.
        """
        issues = self.collect_issues(ast)
        if issues:
            raise ASTValidationError(issues)

    def collect_issues(self, ast: QueryAST) -> list[ValidationIssue]:
        """Return every issue found in `ast`, in clause order."""
        issues: list[ValidationIssue] = []
        cte_names = {cte.name for cte in ast.ctes}

        issues.extend(self._validate_from(ast, cte_names))
        scope, join_issues = self._validate_joins(ast, cte_names)
        issues.extend(join_issues)
        issues.extend(self._validate_select(ast))
        issues.extend(self._validate_references(ast, scope))
        return issues

    # -------------------------
    # Validation Methods
    # -------------------------

    def _table_known(self, table_id: str, cte_names: set[str]) -> bool:
        if self._graph is None or table_id in cte_names:
            return True
        return self._graph.get_node(table_id) is not None

    def _validate_from(self, ast: QueryAST, cte_names: set[str]) -> list[ValidationIssue]:
        from_ = ast.from_
        if not from_.table and from_.subquery is None:
            return [
                ValidationIssue(
                    IssueType.MISSING_TABLE, "Query has no FROM table", field="from"
                )
            ]
        if from_.subquery is None and not self._table_known(from_.table, cte_names):
            return [
                ValidationIssue(
                    IssueType.MISSING_TABLE,
                    f"Unknown table '{from_.table}'",
                    field="from",
                )
            ]
        return []

    def _validate_joins(
        self, ast: QueryAST, cte_names: set[str]
    ) -> tuple[set[str], list[ValidationIssue]]:
        """Walk joins in order, growing the set of table ids and aliases in scope."""
        issues: list[ValidationIssue] = []
        scope: set[str] = {name for name in (ast.from_.table, ast.from_.alias) if name}
        # Alias -> (source, target); repeated pairs are consolidated, not circular.
        bound: dict[str, tuple[str, str]] = {}
        base_name = ast.from_.alias or ast.from_.table
        if base_name:
            bound[base_name] = ("", ast.from_.table)

        for join in ast.joins:
            pair = (join.source_table_id, join.target_table_id)

            if join.source_table_id not in scope:
                issues.append(
                    ValidationIssue(
                        IssueType.INVALID_JOIN,
                        f"Join source '{join.source_table_id}' is not in the query "
                        f"before joining '{join.target_table_id}'",
                        field=join.id or None,
                    )
                )

            if bound.get(join.target_alias, pair) != pair:
                issues.append(
                    ValidationIssue(
                        IssueType.CIRCULAR_JOIN,
                        f"Join target '{join.target_table_id}' as '{join.target_alias}' "
                        "is already in the query",
                        field=join.id or None,
                    )
                )

            if join.target_subquery is None:
                if not self._table_known(join.target_table_id, cte_names):
                    issues.append(
                        ValidationIssue(
                            IssueType.MISSING_TABLE,
                            f"Unknown table '{join.target_table_id}'",
                            field=join.id or None,
                        )
                    )
                else:
                    issues.extend(self._validate_join_columns(join))

            bound.setdefault(join.target_alias, pair)
            scope.update(
                name
                for name in (join.target_table_id, join.target_alias, join.target_subquery_alias)
                if name
            )

        return scope, issues

    def _validate_join_columns(self, join: QueryJoin) -> list[ValidationIssue]:
        if self._graph is None or join.custom_condition:
            return []

        issues = []
        for table_id, column in (
            (join.source_table_id, join.source_column),
            (join.target_table_id, join.target_column),
        ):
            node = self._graph.get_node(table_id)
            if node is None or not node.columns:
                continue
            if not column or column not in node.column_names():
                issues.append(
                    ValidationIssue(
                        IssueType.INVALID_JOIN,
                        f"Join column '{column}' does not exist on '{table_id}'",
                        field=join.id or None,
                    )
                )
        return issues

    def _validate_select(self, ast: QueryAST) -> list[ValidationIssue]:
        issues = []
        seen: set[tuple[str, str]] = set()
        for field in ast.select.fields:
            if field.expression or field.subquery is not None or field.alias:
                continue
            key = (field.table_id, field.column)
            if key in seen:
                issues.append(
                    ValidationIssue(
                        IssueType.DUPLICATE_COLUMN,
                        f"Column '{field.table_id}.{field.column}' is selected more "
                        "than once without an alias",
                        field=field.id or None,
                    )
                )
            seen.add(key)
        return issues

    def _validate_references(self, ast: QueryAST, scope: set[str]) -> list[ValidationIssue]:
        """Every clause item naming a table must name one in scope."""
        references: list[tuple[str, str, str]] = [
            (field.id, field.table_id, "SELECT")
            for field in ast.select.fields
            if not field.expression
        ]
        if ast.where:
            references.extend((c.id, c.table_id, "WHERE") for c in ast.where.conditions)
        if ast.group_by:
            references.extend((f.id, f.table_id, "GROUP BY") for f in ast.group_by.fields)
        if ast.order_by:
            references.extend((f.id, f.table_id, "ORDER BY") for f in ast.order_by.fields)

        issues = []
        for item_id, table_id, clause in references:
            if table_id and table_id not in scope:
                issues.append(
                    ValidationIssue(
                        IssueType.MISSING_JOIN,
                        f"{clause} references '{table_id}', which is not joined",
                        field=item_id or None,
                    )
                )
        return issues
