"""
SQL pretty printer.

Puts each main clause of a flat SELECT on its own line: select, group
and order items one per line when there are several, JOIN conditions
indented under their join, AND/OR connectives on separate lines.
Nested queries are not re-indented, and a leading WITH list stays on one
line ahead of the main query.
"""

import re

_INDENT = "  "

_CLAUSE_END = (
    r"(?=\s+(?:(?:INNER|LEFT|RIGHT|FULL)\s+)?JOIN\b|\s+WHERE\b|\s+GROUP\s+BY\b"
    r"|\s+ORDER\s+BY\b|\s+LIMIT\b|$)"
)

_SELECT = re.compile(r"\bSELECT\s+(TOP\s+\d+\s+)?(.+?)(?=\s+FROM\b)", re.IGNORECASE | re.DOTALL)
_FROM = re.compile(r"\bFROM\s+(.+?)" + _CLAUSE_END, re.IGNORECASE | re.DOTALL)
_JOIN = re.compile(
    r"\b(?:(INNER|LEFT|RIGHT|FULL)\s+)?JOIN\s+(.+?)(?:\s+ON\s+(.+?))?" + _CLAUSE_END,
    re.IGNORECASE | re.DOTALL,
)
_WHERE = re.compile(
    r"\bWHERE\s+(.+?)(?=\s+GROUP\s+BY\b|\s+ORDER\s+BY\b|\s+LIMIT\b|$)",
    re.IGNORECASE | re.DOTALL,
)
_GROUP_BY = re.compile(
    r"\bGROUP\s+BY\s+(.+?)(?=\s+ORDER\s+BY\b|\s+LIMIT\b|$)", re.IGNORECASE | re.DOTALL
)
_ORDER_BY = re.compile(
    r"\bORDER\s+BY\s+(.+?)(?=\s+LIMIT\b|\s+OFFSET\b|$)", re.IGNORECASE | re.DOTALL
)
_PAGING = re.compile(
    r"\b(LIMIT\s+\d+(?:\s+OFFSET\s+\d+)?"
    r"|OFFSET\s+\d+\s+ROWS(?:\s+FETCH\s+NEXT\s+\d+\s+ROWS\s+ONLY)?)",
    re.IGNORECASE,
)
_NESTING = re.compile(r"\(|\)|\bSELECT\b", re.IGNORECASE)
_CONNECTIVE = re.compile(r"\s+(AND|OR)\s+", re.IGNORECASE)


def _split_items(text: str) -> list[str]:
    return [item.strip() for item in text.split(",") if item.strip()]


def _item_lines(head: str, items: list[str]) -> list[str]:
    if len(items) == 1:
        return [f"{head} {items[0]}"]
    lines = [head]
    for index, item in enumerate(items):
        separator = "," if index < len(items) - 1 else ""
        lines.append(f"{_INDENT}{item}{separator}")
    return lines


def _condition_lines(head: str, condition: str, indent: str) -> list[str]:
    # re.split with a capture group interleaves the connectives.
    parts = _CONNECTIVE.split(condition)
    lines = [f"{head} {parts[0].strip()}"]
    for index in range(1, len(parts), 2):
        operator = parts[index].upper()
        following = parts[index + 1].strip() if index + 1 < len(parts) else ""
        lines.append(f"{indent}{operator} {following}")
    return lines


def _main_select(text: str) -> int | None:
    """Index of the first SELECT outside parentheses, or None."""
    depth = 0
    for match in _NESTING.finditer(text):
        token = match.group(0)
        if token == "(":
            depth += 1
        elif token == ")":
            depth = max(depth - 1, 0)
        elif depth == 0:
            return match.start()
    return None


def format_sql(sql: str) -> str:
    """
    Format a flat SELECT statement for display.

    Args:
        sql: SQL text, in any layout.

    Returns:
        The formatted statement, or the whitespace-normalized input when
        no clause is recognized. Blank input is returned unchanged.
    """
    if not sql or not sql.strip():
        return sql

    normalized = re.sub(r"\s+", " ", sql)
    normalized = re.sub(r"\s*,\s*", ", ", normalized).strip()

    lines: list[str] = []

    # A WITH prefix becomes one leading line; clauses come from the main query.
    start = _main_select(normalized)
    body = normalized[start:] if start else normalized

    select_match = _SELECT.search(body)
    if select_match:
        top = select_match.group(1)
        head = f"SELECT {top.strip()}" if top else "SELECT"
        lines.extend(_item_lines(head, _split_items(select_match.group(2).strip())))

    from_match = _FROM.search(body)
    if from_match:
        lines.append(f"FROM {from_match.group(1).strip()}")

    for join_match in _JOIN.finditer(body):
        join_type, table, condition = join_match.groups()
        keyword = f"{join_type.upper()} JOIN" if join_type else "JOIN"
        lines.append(f"{_INDENT}{keyword} {table.strip()}")
        if condition:
            lines.extend(
                _condition_lines(f"{_INDENT * 2}ON", condition.strip(), _INDENT * 2)
            )

    where_match = _WHERE.search(body)
    if where_match:
        lines.extend(_condition_lines("WHERE", where_match.group(1).strip(), _INDENT))

    group_match = _GROUP_BY.search(body)
    if group_match:
        lines.extend(_item_lines("GROUP BY", _split_items(group_match.group(1))))

    order_match = _ORDER_BY.search(body)
    if order_match:
        lines.extend(_item_lines("ORDER BY", _split_items(order_match.group(1))))

    paging_match = _PAGING.search(body)
    if paging_match:
        lines.append(paging_match.group(1).upper())

    if not lines:
        return normalized
    if start:
        lines.insert(0, normalized[:start].strip())
    return "\n".join(lines)
