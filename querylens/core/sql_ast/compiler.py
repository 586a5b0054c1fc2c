"""
SQL Compiler for QueryLens.

Renders a QueryAST into SQL text for MySQL or SQL Server.
"""

import logging

from querylens.core.config import get_generator_settings
from querylens.core.sql_ast.models import (
    CTEClause,
    Dialect,
    FromClause,
    LimitClause,
    LogicalOperator,
    QueryAST,
    QueryJoin,
    SelectField,
    WhereCondition,
    WhereOperator,
)
from querylens.core.sql_ast.utils import (
    ConsolidatedJoin,
    build_table_aliases,
    consolidate_joins,
    escape_identifier,
    escape_value,
    qualified_table,
    resolve_dialect,
)

logger = logging.getLogger(__name__)


# -----------------------------
# Errors
# -----------------------------


class SQLCompileError(Exception):
    """Raised when the compiler is called with unusable arguments."""

    pass


_NULL_OPERATORS = (WhereOperator.IS_NULL, WhereOperator.IS_NOT_NULL)
_EXISTS_OPERATORS = (WhereOperator.EXISTS, WhereOperator.NOT_EXISTS)
_IN_OPERATORS = (WhereOperator.IN, WhereOperator.NOT_IN)
_BETWEEN_OPERATORS = (WhereOperator.BETWEEN, WhereOperator.NOT_BETWEEN)


# -----------------------------
# Compiler
# -----------------------------


class SQLCompiler:
    """
    Compiles a QueryAST into SQL text.

    The AST is not validated: a FROM with neither table nor subquery,
    or a join pointing at an unknown alias, produces incomplete SQL
    rather than an error. Validate upstream with ASTValidator.

    Identifiers (tables, schemas, columns, CTE names and select-field
    aliases) are escaped for the dialect. Table aliases, `expression`
    and `custom_condition` strings are emitted verbatim.
    """

    def __init__(
        self,
        dialect: Dialect | str | None = None,
        pretty: bool | None = None,
    ):
        """
        Initialize the compiler.

        Args:
            dialect: Target dialect. Defaults to the configured dialect.
            pretty: One clause per line with indentation. Defaults to
                the configured value.

        Raises:
            SQLCompileError: If the dialect is not supported.
        """
        settings = get_generator_settings()
        try:
            self._dialect = resolve_dialect(dialect or settings.default_dialect)
        except ValueError as e:
            raise SQLCompileError(f"Unsupported dialect: {dialect!r}") from e
        self._pretty = settings.pretty if pretty is None else pretty
        self._newline = "\n" if self._pretty else " "
        self._indent = "  " if self._pretty else ""

    @property
    def dialect(self) -> Dialect:
        return self._dialect

    def compile(self, ast: QueryAST) -> str:
        """
        Compile an AST into SQL.

        Args:
            ast: The query to render.

        Returns:
            SQL text.

        Raises:
            SQLCompileError: If `ast` is not a QueryAST.
        """
        if not isinstance(ast, QueryAST):
            raise SQLCompileError(
                f"Expected a QueryAST, got {type(ast).__name__}"
            )

        sql = self._compile_query(ast)
        logger.debug("Compiled %s query (%d chars)", self._dialect.value, len(sql))
        return sql

    def _compile_query(self, ast: QueryAST) -> str:
        aliases = build_table_aliases(ast)
        order_fields = ast.order_by.fields if ast.order_by else []
        offset_fetch = self._uses_offset_fetch(ast.limit, bool(order_fields))
        parts: list[str] = []

        # 1. WITH
        if ast.ctes:
            parts.append(self._compile_ctes(ast.ctes))

        # 2. SELECT (TOP for SQL Server)
        top = None
        if ast.limit and self._dialect == Dialect.SQLSERVER and not offset_fetch:
            top = ast.limit.limit
        parts.append(self._compile_select(ast.select.fields, aliases, top))

        # 3. FROM
        parts.append(self._compile_from(ast.from_))

        # 4. JOINs, merged per (source, target) pair
        for group in consolidate_joins(ast.joins):
            parts.append(self._compile_join(group))

        # 5. WHERE
        if ast.where and ast.where.conditions:
            parts.append(self._compile_where(ast.where.conditions, aliases))

        # 6. GROUP BY
        if ast.group_by and ast.group_by.fields:
            columns = [
                self._column_ref(f.table_id, f.column, aliases)
                for f in sorted(ast.group_by.fields, key=lambda f: f.order)
            ]
            parts.append("GROUP BY " + ", ".join(columns))

        # 7. UNION branches
        for union in sorted(ast.unions, key=lambda u: u.order):
            parts.append(f"{union.type.value} {self._subquery(union.query)}")

        # 8. ORDER BY
        if order_fields:
            columns = [
                f"{self._column_ref(f.table_id, f.column, aliases)} {f.direction.value}"
                for f in sorted(order_fields, key=lambda f: f.order)
            ]
            parts.append("ORDER BY " + ", ".join(columns))

        # 9. LIMIT / OFFSET
        if ast.limit:
            if self._dialect == Dialect.MYSQL:
                parts.append(self._compile_limit(ast.limit))
            elif offset_fetch:
                parts.append(
                    f"OFFSET {ast.limit.offset} ROWS "
                    f"FETCH NEXT {ast.limit.limit} ROWS ONLY"
                )

        return self._newline.join(parts)

    # -------------------------
    # Clauses
    # -------------------------

    def _compile_ctes(self, ctes: list[CTEClause]) -> str:
        keyword = "WITH"
        # T-SQL infers recursion; RECURSIVE is only valid for MySQL.
        if self._dialect == Dialect.MYSQL and any(cte.recursive for cte in ctes):
            keyword = "WITH RECURSIVE"

        rendered = []
        for cte in ctes:
            name = self._escape(cte.name)
            columns = ""
            if cte.columns:
                columns = " (" + ", ".join(self._escape(c) for c in cte.columns) + ")"
            rendered.append(f"{name}{columns} AS ({self._subquery(cte.query)})")

        return f"{keyword} " + f",{self._newline}".join(rendered)

    def _compile_select(
        self,
        fields: list[SelectField],
        aliases: dict[str, str],
        top: int | None,
    ) -> str:
        head = "SELECT" if top is None else f"SELECT TOP {top}"

        if not fields:
            return f"{head} *"

        rendered = [
            self._compile_field(field, aliases)
            for field in sorted(fields, key=lambda f: f.order)
        ]

        if self._pretty and len(rendered) > 1:
            separator = f",{self._newline}{self._indent}"
            return f"{head}{self._newline}{self._indent}{separator.join(rendered)}"

        return f"{head} {', '.join(rendered)}"

    def _compile_field(self, field: SelectField, aliases: dict[str, str]) -> str:
        if field.subquery is not None:
            expr = f"({self._subquery(field.subquery)})"
        elif field.expression:
            expr = field.expression
        else:
            expr = self._column_ref(field.table_id, field.column, aliases)
            if field.aggregate_function:
                # An aggregate over * takes no table prefix.
                argument = "*" if field.column == "*" else expr
                expr = f"{field.aggregate_function.value}({argument})"

        if field.alias:
            return f"{expr} AS {self._escape(field.alias)}"
        return expr

    def _compile_from(self, from_: FromClause) -> str:
        if from_.subquery is not None:
            source = f"({self._subquery(from_.subquery)})"
        else:
            source = qualified_table(from_.table, from_.schema_name, self._dialect)

        if from_.alias:
            return f"FROM {source} AS {from_.alias}"
        return f"FROM {source}"

    def _compile_join(self, group: ConsolidatedJoin) -> str:
        join = group.join

        if join.target_subquery is not None:
            alias = join.target_subquery_alias or join.target_alias
            target = f"({self._subquery(join.target_subquery)}) AS {alias}"
        else:
            table = qualified_table(join.target_table_id, None, self._dialect)
            target = f"{table} AS {join.target_alias}"

        condition = " AND ".join(self._join_condition(m) for m in group.members)

        if self._pretty:
            return f"{self._indent}{join.type.value} JOIN {target}\n    ON {condition}"
        return f"{join.type.value} JOIN {target} ON {condition}"

    def _join_condition(self, join: QueryJoin) -> str:
        if join.custom_condition:
            return join.custom_condition
        return (
            f"{join.source_alias}.{self._escape(join.source_column)} = "
            f"{join.target_alias}.{self._escape(join.target_column)}"
        )

    def _compile_where(
        self, conditions: list[WhereCondition], aliases: dict[str, str]
    ) -> str:
        lines: list[str] = []
        for index, cond in enumerate(sorted(conditions, key=lambda c: c.order)):
            rendered = self._compile_condition(cond, aliases)
            if index == 0:
                lines.append(rendered)
                continue
            connective = cond.logical_operator or LogicalOperator.AND
            lines.append(f"{self._indent}{connective.value} {rendered}")

        return "WHERE " + self._newline.join(lines)

    def _compile_condition(
        self, cond: WhereCondition, aliases: dict[str, str]
    ) -> str:
        operator = cond.operator
        op = operator.value

        if operator in _EXISTS_OPERATORS:
            if cond.subquery is not None:
                return f"{op} ({self._subquery(cond.subquery)})"
            return f"{op} ({cond.value or 'SELECT 1'})"

        column = self._column_ref(cond.table_id, cond.column, aliases)

        if operator in _NULL_OPERATORS:
            return f"{column} {op}"

        if cond.subquery is not None:
            return f"{column} {op} ({self._subquery(cond.subquery)})"

        if operator in _BETWEEN_OPERATORS:
            value = cond.value
            if isinstance(value, (list, tuple)) and len(value) >= 2:
                return f"{column} {op} {escape_value(value[0])} AND {escape_value(value[1])}"
            return f"{column} {op} {escape_value(value)}"

        if operator in _IN_OPERATORS:
            values = cond.value if isinstance(cond.value, (list, tuple)) else [cond.value]
            return f"{column} {op} {escape_value(list(values))}"

        return f"{column} {op} {escape_value(cond.value)}"

    def _compile_limit(self, limit: LimitClause) -> str:
        if limit.offset:
            return f"LIMIT {limit.limit} OFFSET {limit.offset}"
        return f"LIMIT {limit.limit}"

    # -------------------------
    # Helpers
    # -------------------------

    def _uses_offset_fetch(self, limit: LimitClause | None, has_order: bool) -> bool:
        """SQL Server can only skip rows with OFFSET/FETCH after an ORDER BY."""
        return (
            self._dialect == Dialect.SQLSERVER
            and limit is not None
            and bool(limit.offset)
            and has_order
        )

    def _column_ref(self, table_id: str, column: str, aliases: dict[str, str]) -> str:
        """Resolve `table_id` to its alias (falling back to the raw id)."""
        column_sql = "*" if column == "*" else self._escape(column)
        alias = aliases.get(table_id) or table_id
        if not alias:
            return column_sql
        return f"{alias}.{column_sql}"

    def _escape(self, name: str) -> str:
        return escape_identifier(name, self._dialect)

    def _subquery(self, ast: QueryAST) -> str:
        """Render a nested query on a single line."""
        return SQLCompiler(dialect=self._dialect, pretty=False)._compile_query(ast)


def generate_sql(
    ast: QueryAST,
    dialect: Dialect | str | None = None,
    pretty: bool | None = None,
) -> str:
    """Compile `ast` for `dialect`. See SQLCompiler."""
    return SQLCompiler(dialect=dialect, pretty=pretty).compile(ast)
