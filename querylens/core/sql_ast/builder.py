"""
Query Builder for QueryLens.

Stateful editor around a QueryAST. Each operation mirrors one user action
(pick a base table, add a column, join a table, add a filter...) and keeps
the AST consistent: adding a column from an unjoined table creates the
JOIN chain to reach it, aliases stay unique, and clause items keep their
`order` in sync with their position.
"""

import logging
from collections.abc import Iterable, Sequence
from typing import Any, TypeVar
from uuid import uuid4

from pydantic import BaseModel

from querylens.core.config import get_generator_settings
from querylens.core.join_graph.resolver import JoinGraphResolver, JoinPath
from querylens.core.schema_graph.graph import SchemaGraph
from querylens.core.sql_ast.compiler import generate_sql
from querylens.core.sql_ast.models import (
    CTEClause,
    Dialect,
    FromClause,
    GroupByClause,
    GroupByField,
    JoinType,
    LimitClause,
    OrderByClause,
    OrderByField,
    OrderDirection,
    QueryAST,
    QueryJoin,
    SelectField,
    UnionClause,
    UnionType,
    WhereClause,
    WhereCondition,
)
from querylens.core.sql_ast.utils import (
    build_table_aliases,
    escape_identifier,
    generate_alias,
    resolve_dialect,
)

logger = logging.getLogger(__name__)

_Item = TypeVar("_Item", bound=BaseModel)


def create_empty_ast() -> QueryAST:
    """An AST with no FROM table, no fields and no joins."""
    return QueryAST(from_=FromClause(table="", alias=""))


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid4().hex}"


def _renumber(items: Sequence[_Item]) -> list[_Item]:
    return [item.model_copy(update={"order": index}) for index, item in enumerate(items)]


def _update_by_id(items: list[_Item], item_id: str, updates: dict[str, Any]) -> _Item | None:
    # Re-validate so enum fields accept plain strings.
    for index, item in enumerate(items):
        if item.id == item_id:
            items[index] = type(item).model_validate({**item.model_dump(), **updates})
            return items[index]
    return None


def _remove_by_id(items: list[_Item], item_id: str) -> bool:
    remaining = [item for item in items if item.id != item_id]
    removed = len(remaining) != len(items)
    items[:] = remaining
    return removed


class QueryBuilder:
    """
    Builds a QueryAST one action at a time.

    The builder owns its AST; `ast` returns the live object. Use
    `load_ast` to start from an existing query.
    """

    def __init__(
        self,
        graph: SchemaGraph,
        dialect: Dialect | str | None = None,
        resolver: JoinGraphResolver | None = None,
    ):
        """
        Initialize the builder.

        Args:
            graph: Schema graph the query is built against.
            dialect: Dialect for `sql` and composite join conditions.
                Defaults to the configured dialect.
            resolver: Path finder used for automatic joins. Built from
                `graph` when omitted.
        """
        self._graph = graph
        self._resolver = resolver or JoinGraphResolver.from_graph(graph)
        self._dialect = resolve_dialect(dialect or get_generator_settings().default_dialect)
        self._ast = create_empty_ast()

    @property
    def ast(self) -> QueryAST:
        return self._ast

    @property
    def dialect(self) -> Dialect:
        return self._dialect

    # -------------------------
    # Derived state
    # -------------------------

    def table_aliases(self) -> dict[str, str]:
        """Map of table id to alias for FROM and every join target."""
        return build_table_aliases(self._ast)

    def included_tables(self) -> set[str]:
        """Table ids currently in scope."""
        return set(self.table_aliases())

    def table_alias(self, table_id: str) -> str:
        """Alias of an included table, or the table id itself."""
        return self.table_aliases().get(table_id) or table_id

    def sql(self, pretty: bool = True) -> str:
        """Compile the current AST; empty when no FROM source is set."""
        if not self._ast.from_.table and self._ast.from_.subquery is None:
            return ""
        return generate_sql(self._ast, dialect=self._dialect, pretty=pretty)

    def _unique_alias(self, table_id: str) -> str:
        return generate_alias(table_id, self.table_aliases().values())

    def _find_join(self, target_table_id: str) -> QueryJoin | None:
        for join in self._ast.joins:
            if join.target_table_id == target_table_id:
                return join
        return None

    # -------------------------
    # FROM
    # -------------------------

    def set_base_table(self, table_id: str) -> None:
        """Start a new query from `table_id`, discarding the current one."""
        self._ast = QueryAST(
            from_=FromClause(table=table_id, alias=generate_alias(table_id, ()))
        )
        logger.debug("Base table set to %s", table_id)

    def set_from_subquery(self, subquery: QueryAST, alias: str) -> None:
        """Use a derived table as the FROM source."""
        self._ast.from_ = self._ast.from_.model_copy(
            update={"subquery": subquery, "alias": alias}
        )

    def clear_from_subquery(self) -> None:
        self._ast.from_ = self._ast.from_.model_copy(update={"subquery": None})

    # -------------------------
    # SELECT
    # -------------------------

    def add_column(self, table_id: str, column: str) -> SelectField | None:
        """
        Add `table_id.column` to the SELECT list.

        When the table is not yet in scope, the shortest relationship path
        from the base table is joined first (LEFT joins). If no path
        exists, the column is still added and the query is left with a
        missing join for the validator to report.

        Returns:
            The new field, or None if the column is already selected.
        """
        fields = self._ast.select.fields
        if any(f.table_id == table_id and f.column == column for f in fields):
            return None

        base_table = self._ast.from_.table
        if base_table and table_id not in self.included_tables():
            path = self._resolver.find_best_path(base_table, table_id)
            if path is not None:
                self._join_path(base_table, path)
            else:
                logger.warning("No join path from %s to %s", base_table, table_id)

        field = SelectField(
            id=_new_id("field"),
            table_id=table_id,
            column=column,
            order=len(fields),
        )
        fields.append(field)
        return field

    def add_expression(self, expression: str, alias: str | None = None) -> SelectField:
        """Add a raw SQL expression to the SELECT list."""
        field = SelectField(
            id=_new_id("expr"),
            expression=expression,
            alias=alias,
            order=len(self._ast.select.fields),
        )
        self._ast.select.fields.append(field)
        return field

    def remove_column(self, field_id: str) -> bool:
        return _remove_by_id(self._ast.select.fields, field_id)

    def update_column_alias(self, field_id: str, alias: str | None) -> SelectField | None:
        """Set or clear (empty string / None) the output alias of a field."""
        return _update_by_id(self._ast.select.fields, field_id, {"alias": alias or None})

    def reorder_columns(self, fields: Sequence[SelectField]) -> None:
        """Replace the SELECT list with `fields`, renumbering `order`."""
        self._ast.select.fields = _renumber(fields)

    # -------------------------
    # JOIN
    # -------------------------

    def _join_path(self, source_table_id: str, path: JoinPath) -> list[QueryJoin]:
        """Append one LEFT join per hop of `path`, reusing joins already present."""
        created: list[QueryJoin] = []
        current_id = source_table_id
        current_alias = self.table_alias(source_table_id)

        for step in path.edges:
            existing = self._find_join(step.to_table)
            if existing is not None:
                current_id, current_alias = existing.target_table_id, existing.target_alias
                continue

            join = QueryJoin(
                id=_new_id("join"),
                type=JoinType.LEFT,
                source_table_id=current_id,
                source_alias=current_alias,
                source_column=step.from_column,
                target_table_id=step.to_table,
                target_alias=self._unique_alias(step.to_table),
                target_column=step.to_column,
                edge_id=step.edge_id,
            )
            self._ast.joins.append(join)
            created.append(join)
            current_id, current_alias = join.target_table_id, join.target_alias

        return created

    def add_join(
        self, target_table_id: str, source_table_id: str | None = None
    ) -> list[QueryJoin]:
        """
        Join `target_table_id` from `source_table_id` (default: base table).

        Uses the first direct edge between the two tables, oriented so the
        source column belongs to the source table. Without a direct edge,
        the best multi-hop path is joined instead.

        Returns:
            The joins created; empty if the target is already joined or
            unreachable.
        """
        source = source_table_id or self._ast.from_.table
        if not source or self._find_join(target_table_id) is not None:
            return []

        relationships = self._resolver.find_direct_relationships(source, target_table_id)
        if not relationships:
            path = self._resolver.find_best_path(source, target_table_id)
            if path is None:
                logger.warning("No relationship found between %s and %s", source, target_table_id)
                return []
            return self._join_path(source, path)

        edge = relationships[0]
        forward = edge.from_table == source
        join = QueryJoin(
            id=_new_id("join"),
            type=JoinType.LEFT,
            source_table_id=source,
            source_alias=self.table_alias(source),
            source_column=edge.from_column if forward else edge.to_column,
            target_table_id=target_table_id,
            target_alias=self._unique_alias(target_table_id),
            target_column=edge.to_column if forward else edge.from_column,
            edge_id=edge.id,
        )
        self._ast.joins.append(join)
        return [join]

    def add_manual_join(
        self,
        target_table_id: str,
        source_table_id: str,
        conditions: Sequence[tuple[str, str]],
        join_type: JoinType | str = JoinType.LEFT,
        target_subquery: QueryAST | None = None,
        target_subquery_alias: str | None = None,
    ) -> QueryJoin:
        """
        Add a join with user-chosen column pairs.

        Args:
            target_table_id: Table (or derived-table name) to join.
            source_table_id: Table already in scope.
            conditions: (source_column, target_column) pairs; several
                pairs become one ANDed custom condition.
            join_type: Join type.
            target_subquery: Derived table to join instead of a table.
            target_subquery_alias: Alias of the derived table.

        Raises:
            ValueError: If `conditions` is empty.
        """
        if not conditions:
            raise ValueError("A manual join needs at least one column pair")

        source_alias = self.table_aliases().get(source_table_id) or self._unique_alias(
            source_table_id
        )
        target_alias = target_subquery_alias or self._unique_alias(target_table_id)

        custom_condition = None
        if len(conditions) > 1:
            custom_condition = " AND ".join(
                f"{source_alias}.{escape_identifier(source_column, self._dialect)}"
                f" = {target_alias}.{escape_identifier(target_column, self._dialect)}"
                for source_column, target_column in conditions
            )

        join = QueryJoin(
            id=_new_id("join"),
            type=JoinType(join_type),
            source_table_id=source_table_id,
            source_alias=source_alias,
            source_column=conditions[0][0],
            target_table_id=target_table_id,
            target_alias=target_alias,
            target_column=conditions[0][1],
            custom_condition=custom_condition,
            target_subquery=target_subquery,
            target_subquery_alias=target_subquery_alias,
        )
        self._ast.joins.append(join)
        return join

    def update_join(self, join_id: str, **updates: Any) -> QueryJoin | None:
        return _update_by_id(self._ast.joins, join_id, updates)

    def remove_join(self, join_id: str) -> bool:
        return _remove_by_id(self._ast.joins, join_id)

    # -------------------------
    # WHERE
    # -------------------------

    def add_where_condition(self, condition: WhereCondition) -> WhereCondition:
        """Append a condition, assigning an id and position when missing."""
        if self._ast.where is None:
            self._ast.where = WhereClause()
        conditions = self._ast.where.conditions
        condition = condition.model_copy(
            update={"id": condition.id or _new_id("where"), "order": len(conditions)}
        )
        conditions.append(condition)
        return condition

    def update_where_condition(self, condition_id: str, **updates: Any) -> WhereCondition | None:
        if self._ast.where is None:
            return None
        return _update_by_id(self._ast.where.conditions, condition_id, updates)

    def remove_where_condition(self, condition_id: str) -> bool:
        if self._ast.where is None:
            return False
        return _remove_by_id(self._ast.where.conditions, condition_id)

    def reorder_where_conditions(self, conditions: Sequence[WhereCondition]) -> None:
        self._ast.where = WhereClause(conditions=_renumber(conditions))

    # -------------------------
    # GROUP BY / ORDER BY
    # -------------------------

    def add_group_by(self, table_id: str, column: str) -> GroupByField | None:
        if self._ast.group_by is None:
            self._ast.group_by = GroupByClause()
        fields = self._ast.group_by.fields
        if any(f.table_id == table_id and f.column == column for f in fields):
            return None

        field = GroupByField(
            id=_new_id("groupby"), table_id=table_id, column=column, order=len(fields)
        )
        fields.append(field)
        return field

    def remove_group_by(self, field_id: str) -> bool:
        if self._ast.group_by is None:
            return False
        return _remove_by_id(self._ast.group_by.fields, field_id)

    def reorder_group_by(self, fields: Sequence[GroupByField]) -> None:
        self._ast.group_by = GroupByClause(fields=_renumber(fields))

    def add_order_by(
        self,
        table_id: str,
        column: str,
        direction: OrderDirection | str = OrderDirection.ASC,
    ) -> OrderByField | None:
        if self._ast.order_by is None:
            self._ast.order_by = OrderByClause()
        fields = self._ast.order_by.fields
        if any(f.table_id == table_id and f.column == column for f in fields):
            return None

        field = OrderByField(
            id=_new_id("orderby"),
            table_id=table_id,
            column=column,
            direction=OrderDirection(direction),
            order=len(fields),
        )
        fields.append(field)
        return field

    def update_order_by(self, field_id: str, **updates: Any) -> OrderByField | None:
        if self._ast.order_by is None:
            return None
        return _update_by_id(self._ast.order_by.fields, field_id, updates)

    def remove_order_by(self, field_id: str) -> bool:
        if self._ast.order_by is None:
            return False
        return _remove_by_id(self._ast.order_by.fields, field_id)

    def reorder_order_by(self, fields: Sequence[OrderByField]) -> None:
        self._ast.order_by = OrderByClause(fields=_renumber(fields))

    # -------------------------
    # CTE / UNION
    # -------------------------

    def add_cte(
        self,
        name: str,
        query: QueryAST,
        columns: Iterable[str] | None = None,
        recursive: bool = False,
    ) -> CTEClause:
        cte = CTEClause(
            id=_new_id("cte"),
            name=name,
            query=query,
            columns=list(columns) if columns is not None else None,
            recursive=recursive,
        )
        self._ast.ctes.append(cte)
        return cte

    def update_cte(self, cte_id: str, **updates: Any) -> CTEClause | None:
        return _update_by_id(self._ast.ctes, cte_id, updates)

    def remove_cte(self, cte_id: str) -> bool:
        return _remove_by_id(self._ast.ctes, cte_id)

    def add_union(
        self, query: QueryAST, union_type: UnionType | str = UnionType.UNION
    ) -> UnionClause:
        union = UnionClause(
            id=_new_id("union"),
            type=UnionType(union_type),
            query=query,
            order=len(self._ast.unions),
        )
        self._ast.unions.append(union)
        return union

    def remove_union(self, union_id: str) -> bool:
        return _remove_by_id(self._ast.unions, union_id)

    # -------------------------
    # LIMIT and whole-query actions
    # -------------------------

    def set_limit(self, limit: int | None, offset: int | None = None) -> None:
        """Set the row limit; a falsy `limit` removes the clause."""
        self._ast.limit = LimitClause(limit=limit, offset=offset) if limit else None

    def reset(self) -> None:
        self._ast = create_empty_ast()

    def load_ast(self, ast: QueryAST) -> None:
        """Replace the current query with a copy of `ast`."""
        self._ast = ast.model_copy(deep=True)
