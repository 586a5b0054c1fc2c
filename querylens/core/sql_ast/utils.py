"""
Shared SQL helpers: identifier and value escaping, table alias
bookkeeping and JOIN consolidation.
"""

import re
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from sqlalchemy.dialects import mssql, mysql
from sqlalchemy.engine import Dialect as SQLAlchemyDialect

from querylens.core.sql_ast.models import Dialect, QueryAST, QueryJoin


# -----------------------------
# Dialects
# -----------------------------

# SQLAlchemy's preparers carry the quoting rules: backticks doubled for
# MySQL, [brackets] with `]]` for SQL Server. A "named" paramstyle keeps
# the preparer from doubling `%` in identifiers.
_SQLALCHEMY_DIALECTS: dict[Dialect, SQLAlchemyDialect] = {
    Dialect.MYSQL: mysql.dialect(paramstyle="named"),
    Dialect.SQLSERVER: mssql.dialect(paramstyle="named"),
}


def resolve_dialect(dialect: Dialect | str) -> Dialect:
    """Coerce a dialect name to `Dialect`, raising ValueError if unknown."""
    if isinstance(dialect, Dialect):
        return dialect
    return Dialect(str(dialect).lower())


def escape_identifier(name: str, dialect: Dialect | str) -> str:
    """Quote a table, schema, column or alias name for the dialect."""
    preparer = _SQLALCHEMY_DIALECTS[resolve_dialect(dialect)].identifier_preparer
    return preparer.quote_identifier(name)


def unescape_identifier(quoted: str, dialect: Dialect | str) -> str:
    """Reverse `escape_identifier`."""
    match resolve_dialect(dialect):
        case Dialect.SQLSERVER:
            if quoted.startswith("[") and quoted.endswith("]"):
                return quoted[1:-1].replace("]]", "]")
        case Dialect.MYSQL:
            if quoted.startswith("`") and quoted.endswith("`"):
                return quoted[1:-1].replace("``", "`")
    return quoted


def escape_value(value: Any) -> str:
    """
    Render a Python value as a SQL literal.

    Numbers are emitted as-is, booleans as 1/0, strings single-quoted
    with quotes doubled, sequences as a parenthesized list and None
    as NULL. The rules are the same for both dialects.
    """
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    if isinstance(value, (list, tuple)):
        return "(" + ", ".join(escape_value(v) for v in value) + ")"
    text = str(value)
    return "'" + text.replace("'", "''") + "'"


def qualified_table(table: str, schema: str | None, dialect: Dialect | str) -> str:
    """
    Escape a possibly schema-qualified table reference.

    A table id such as `dbo.tbProduct` is split on its first dot when
    no explicit schema is given.
    """
    if schema:
        return f"{escape_identifier(schema, dialect)}.{escape_identifier(table, dialect)}"
    if "." in table:
        schema_part, table_part = table.split(".", 1)
        return (
            f"{escape_identifier(schema_part, dialect)}."
            f"{escape_identifier(table_part, dialect)}"
        )
    return escape_identifier(table, dialect)


# -----------------------------
# Aliases
# -----------------------------

_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")


def build_table_aliases(ast: QueryAST) -> dict[str, str]:
    """Map every table id present in FROM / JOINs to its alias."""
    aliases: dict[str, str] = {}
    if ast.from_.table:
        aliases[ast.from_.table] = ast.from_.alias
    for join in ast.joins:
        aliases[join.target_table_id] = join.target_alias
    return aliases


def generate_alias(table_id: str, existing_aliases: Iterable[str]) -> str:
    """
    Generate a short alias for a table, unique among `existing_aliases`.

    Uses the first three alphanumeric characters of the unqualified
    table name, numbered on collision: `customers` -> `cus`, `cus1`, ...
    """
    taken = set(existing_aliases)
    base_name = table_id.rsplit(".", 1)[-1]
    alias = _NON_ALNUM.sub("", base_name).lower()[:3] or "t"

    candidate = alias
    counter = 1
    while candidate in taken:
        candidate = f"{alias}{counter}"
        counter += 1
    return candidate


# -----------------------------
# JOIN consolidation
# -----------------------------


@dataclass(frozen=True)
class ConsolidatedJoin:
    """
    One emitted JOIN: the first join seen for a (source, target) pair
    plus every join sharing that pair, whose conditions are ANDed.
    """

    join: QueryJoin
    members: tuple[QueryJoin, ...]


def consolidate_joins(joins: Iterable[QueryJoin]) -> list[ConsolidatedJoin]:
    """
    Group joins by (source_table_id, target_table_id).

    Groups keep the position of their first member; members keep
    encounter order. Input joins are not modified.
    """
    groups: dict[tuple[str, str], list[QueryJoin]] = {}
    for join in joins:
        key = (join.source_table_id, join.target_table_id)
        groups.setdefault(key, []).append(join)

    return [
        ConsolidatedJoin(join=members[0], members=tuple(members))
        for members in groups.values()
    ]
