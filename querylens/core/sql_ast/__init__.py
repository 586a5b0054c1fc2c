"""SQL AST models, compiler and builder for QueryLens."""

from .builder import QueryBuilder, create_empty_ast
from .compiler import SQLCompileError, SQLCompiler, generate_sql
from .formatter import format_sql
from .models import (
    AggregateFunction,
    CTEClause,
    Dialect,
    FromClause,
    GroupByClause,
    GroupByField,
    JoinType,
    LimitClause,
    LogicalOperator,
    OrderByClause,
    OrderByField,
    OrderDirection,
    QueryAST,
    QueryJoin,
    SelectClause,
    SelectField,
    UnionClause,
    UnionType,
    WhereClause,
    WhereCondition,
    WhereOperator,
)
from .utils import escape_identifier, escape_value, generate_alias, unescape_identifier

__all__ = [
    # Models
    "AggregateFunction",
    "CTEClause",
    "Dialect",
    "FromClause",
    "GroupByClause",
    "GroupByField",
    "JoinType",
    "LimitClause",
    "LogicalOperator",
    "OrderByClause",
    "OrderByField",
    "OrderDirection",
    "QueryAST",
    "QueryJoin",
    "SelectClause",
    "SelectField",
    "UnionClause",
    "UnionType",
    "WhereClause",
    "WhereCondition",
    "WhereOperator",
    # Compilation
    "SQLCompileError",
    "SQLCompiler",
    "format_sql",
    "generate_sql",
    # Building
    "QueryBuilder",
    "create_empty_ast",
    "escape_identifier",
    "escape_value",
    "generate_alias",
    "unescape_identifier",
]
