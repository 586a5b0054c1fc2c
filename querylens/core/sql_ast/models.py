"""
AST models for QueryLens.

These models are the structured form of a query as the builder edits it.
They describe SQL structure (tables, aliases, joins, predicates), and
nest recursively wherever SQL allows a subquery.

The JSON form uses camelCase keys; Python attributes are snake_case.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# -----------------------------
# Enums
# -----------------------------


class Dialect(str, Enum):
    """SQL dialects the compiler can target."""

    MYSQL = "mysql"
    SQLSERVER = "sqlserver"


class JoinType(str, Enum):
    """Supported SQL join types."""

    INNER = "INNER"
    LEFT = "LEFT"
    RIGHT = "RIGHT"
    FULL = "FULL"


class WhereOperator(str, Enum):
    """Supported operators for WHERE conditions."""

    EQ = "="
    NOT_EQ = "!="
    NOT_EQ_ANSI = "<>"
    GT = ">"
    GTE = ">="
    LT = "<"
    LTE = "<="
    LIKE = "LIKE"
    NOT_LIKE = "NOT LIKE"
    IN = "IN"
    NOT_IN = "NOT IN"
    IS_NULL = "IS NULL"
    IS_NOT_NULL = "IS NOT NULL"
    BETWEEN = "BETWEEN"
    NOT_BETWEEN = "NOT BETWEEN"
    EXISTS = "EXISTS"
    NOT_EXISTS = "NOT EXISTS"


class LogicalOperator(str, Enum):
    """Connective placed before a WHERE condition."""

    AND = "AND"
    OR = "OR"


class OrderDirection(str, Enum):
    """Sort direction for ORDER BY clauses."""

    ASC = "ASC"
    DESC = "DESC"


class AggregateFunction(str, Enum):
    """Aggregates a select field may wrap its column in."""

    COUNT = "COUNT"
    SUM = "SUM"
    AVG = "AVG"
    MIN = "MIN"
    MAX = "MAX"


class UnionType(str, Enum):
    UNION = "UNION"
    UNION_ALL = "UNION ALL"


class _ASTModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# -----------------------------
# Clause Nodes
# -----------------------------


class FromClause(_ASTModel):
    """
    The driving table of a query.

    Exactly one of `table` or `subquery` is meant to be set; this is
    not enforced (an empty FROM compiles to incomplete SQL).
    """

    table: str = ""
    alias: str = ""
    schema_name: str | None = Field(default=None, alias="schema")
    subquery: "QueryAST | None" = None


class SelectField(_ASTModel):
    """
    One entry of the SELECT list.

    Examples:
        o.`total`
        SUM(o.`total`) AS `revenue`
        UPPER(c.name) AS `name`      (expression, emitted verbatim)
    """

    id: str = ""
    table_id: str = ""
    column: str = ""
    alias: str | None = None
    order: int = 0
    expression: str | None = None
    aggregate_function: AggregateFunction | None = None
    subquery: "QueryAST | None" = None


class QueryJoin(_ASTModel):
    """
    One JOIN between an already-present table and a target table.

    `custom_condition`, when set, replaces the equality implied by
    `source_column` / `target_column`.
    """

    id: str = ""
    type: JoinType = JoinType.LEFT
    source_table_id: str
    source_alias: str
    source_column: str = ""
    target_table_id: str
    target_alias: str
    target_column: str = ""
    custom_condition: str | None = None
    edge_id: str | None = None
    target_subquery: "QueryAST | None" = None
    target_subquery_alias: str | None = None


class WhereCondition(_ASTModel):
    """
    Represents a WHERE clause condition.

    Examples:
        o.`status` = 'paid'
        o.`created_at` BETWEEN '2024-01-01' AND '2024-03-31'
        c.`id` IN (SELECT ...)
    """

    id: str = ""
    table_id: str = ""
    column: str = ""
    operator: WhereOperator = WhereOperator.EQ
    value: Any = None  # scalar, list (IN / BETWEEN) or raw SQL for EXISTS
    logical_operator: LogicalOperator | None = None
    order: int = 0
    subquery: "QueryAST | None" = None


class GroupByField(_ASTModel):
    id: str = ""
    table_id: str
    column: str
    order: int = 0


class OrderByField(_ASTModel):
    id: str = ""
    table_id: str
    column: str
    direction: OrderDirection = OrderDirection.ASC
    order: int = 0


class SelectClause(_ASTModel):
    fields: list[SelectField] = Field(default_factory=list)


class WhereClause(_ASTModel):
    conditions: list[WhereCondition] = Field(default_factory=list)


class GroupByClause(_ASTModel):
    fields: list[GroupByField] = Field(default_factory=list)


class OrderByClause(_ASTModel):
    fields: list[OrderByField] = Field(default_factory=list)


class LimitClause(_ASTModel):
    limit: int = Field(..., ge=0)
    offset: int | None = Field(default=None, ge=0)


class CTEClause(_ASTModel):
    """A named common table expression. `recursive` is a marker only."""

    id: str = ""
    name: str
    query: "QueryAST"
    columns: list[str] | None = None
    recursive: bool = False


class UnionClause(_ASTModel):
    id: str = ""
    type: UnionType = UnionType.UNION
    query: "QueryAST"
    order: int = 0


# -----------------------------
# Root Query AST
# -----------------------------


class QueryAST(_ASTModel):
    """
    Root object representing a query under construction.

    Built and mutated by the query builder, consumed read-only by
    the compiler and validator.
    """

    from_: FromClause = Field(default_factory=FromClause, alias="from")
    select: SelectClause = Field(default_factory=SelectClause)
    joins: list[QueryJoin] = Field(default_factory=list)
    where: WhereClause | None = None
    group_by: GroupByClause | None = None
    order_by: OrderByClause | None = None
    limit: LimitClause | None = None
    ctes: list[CTEClause] = Field(default_factory=list)
    unions: list[UnionClause] = Field(default_factory=list)


FromClause.model_rebuild()
SelectField.model_rebuild()
QueryJoin.model_rebuild()
WhereCondition.model_rebuild()
CTEClause.model_rebuild()
UnionClause.model_rebuild()
QueryAST.model_rebuild()
