"""
Reverse SQL analysis for QueryLens.

Extracts referenced tables, join relationships and aliases from
hand-written SQL so they can be matched against the schema graph.

This is a lexical scanner built on regular expressions, not a parser.
Constructs it does not recognise are skipped: the result loses
precision but the call never fails on odd SQL.
"""

import logging
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from querylens.core.config import get_analyzer_settings

logger = logging.getLogger(__name__)


# -----------------------------
# Results
# -----------------------------


@dataclass(frozen=True)
class JoinRelationship:
    """
    A table pair related by an ON condition, named by full table name.

    Example:
        orders -> customers, "orders.customer_id = customers.id"
    """

    from_table: str
    to_table: str
    condition: str | None = None
    from_column: str | None = None
    to_column: str | None = None

    def to_dict(self) -> dict:
        return {"from": self.from_table, "to": self.to_table, "condition": self.condition}


@dataclass
class AnalysisResult:
    """
    Tables, joins and aliases found in a SQL text.

    `tables` excludes CTE names and derived-table aliases. `aliases`
    maps lower-cased aliases (and bare table names) to full table names.
    """

    tables: list[str] = field(default_factory=list)
    joins: list[JoinRelationship] = field(default_factory=list)
    aliases: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "tables": list(self.tables),
            "joins": [join.to_dict() for join in self.joins],
            "aliases": dict(self.aliases),
        }


# -----------------------------
# Errors
# -----------------------------


class SQLAnalysisError(Exception):
    """Raised when the analyzer is called with something other than text."""

    pass


# -----------------------------
# Patterns
# -----------------------------

# Words that can follow a table reference and must not be taken as its alias.
_KEYWORDS = (
    "WHERE|JOIN|INNER|LEFT|RIGHT|FULL|CROSS|OUTER|NATURAL|STRAIGHT_JOIN|ON|USING|"
    "GROUP|ORDER|HAVING|LIMIT|OFFSET|FETCH|UNION|EXCEPT|INTERSECT|WINDOW|FOR|"
    "WITH|SELECT|SET|VALUES|AS|OPTION|INTO|APPLY|PIVOT|UNPIVOT|LATERAL|"
    "TABLESAMPLE|WHEN|THEN|ELSE|END|AND|OR|NOT|IN"
)

_TABLE_REF = r"(?!(?:SELECT|LATERAL)\b)(?:(\w+)\.)?(?:(\w+)\.)?(\w+)"
_ALIAS = rf"(?:\s+(?:AS\s+)?(?!(?:{_KEYWORDS})\b)(\w+))?"

_FROM_TABLE = re.compile(rf"\bFROM\s+{_TABLE_REF}{_ALIAS}", re.IGNORECASE)
_COMMA_TABLE = re.compile(rf"\s*,\s*{_TABLE_REF}{_ALIAS}", re.IGNORECASE)
_JOIN_TABLE = re.compile(
    rf"\b(?:(?:INNER|LEFT|RIGHT|FULL|CROSS)\s+(?:OUTER\s+)?)?JOIN\s+{_TABLE_REF}{_ALIAS}",
    re.IGNORECASE,
)

_WITH_HEAD = re.compile(r";?\s*WITH\s+(?:RECURSIVE\s+)?", re.IGNORECASE)
_CTE_HEAD = re.compile(r"\s*(\w+)\s*(?:\([^()]*\)\s*)?AS\s*\(", re.IGNORECASE)
_CTE_SEPARATOR = re.compile(r"\s*,")

_DERIVED_OPEN = re.compile(r"\b(?:FROM|JOIN)\s*\(\s*(?=SELECT\b)", re.IGNORECASE)
_PREDICATE_OPEN = re.compile(
    r"\b(?:NOT\s+)?(?:IN|EXISTS)\s*\(\s*(?=SELECT\b)", re.IGNORECASE
)
_SCALAR_OPEN = re.compile(r"\(\s*(?=SELECT\b)", re.IGNORECASE)
_SUBQUERY_START = re.compile(r"\s*SELECT\b", re.IGNORECASE)
_DERIVED_ALIAS = re.compile(rf"\s*(?:AS\s+)?(?!(?:{_KEYWORDS})\b)(\w+)", re.IGNORECASE)

_ON_BLOCK = re.compile(
    r"\bON\s+(.+?)(?="
    r"\s+(?:(?:INNER|LEFT|RIGHT|FULL|CROSS)\s+(?:OUTER\s+)?)?JOIN\b"
    r"|\s+(?:WHERE|GROUP\s+BY|ORDER\s+BY|HAVING|LIMIT|UNION|EXCEPT|INTERSECT|WINDOW)\b"
    r"|\s*\)|\s*;|$)",
    re.IGNORECASE,
)
_EQUALITY = re.compile(r"(?:(\w+)\.)?(\w+)\.(\w+)\s*=\s*(?:(\w+)\.)?(\w+)\.(\w+)")

_SCRUB_MARK = re.compile(r"'|--|/\*")
_QUOTED_IDENTIFIER = re.compile(r"\[(\w+)\]|`(\w+)`|\"(\w+)\"")
_WHITESPACE = re.compile(r"\s+")


# -----------------------------
# Text preparation
# -----------------------------


def scrub_sql(sql: str) -> str:
    """
    Prepare SQL text for scanning.

    Removes `--` and `/* */` comments, replaces string literals with ''
    (so quoted text cannot look like SQL), unquotes simple
    [bracketed], `backticked` and "double-quoted" identifiers and
    collapses whitespace. Runs in linear time.
    """
    pieces: list[str] = []
    pos = 0
    length = len(sql)

    while pos < length:
        mark = _SCRUB_MARK.search(sql, pos)
        if mark is None:
            pieces.append(sql[pos:])
            break

        pieces.append(sql[pos : mark.start()])
        token = mark.group()

        if token == "'":
            end = mark.end()
            while True:
                quote = sql.find("'", end)
                if quote == -1:
                    end = length
                    break
                if sql.startswith("''", quote):
                    end = quote + 2
                    continue
                end = quote + 1
                break
            pieces.append("''")
            pos = end
        elif token == "--":
            newline = sql.find("\n", mark.end())
            pos = length if newline == -1 else newline
        else:
            close = sql.find("*/", mark.end())
            pieces.append(" ")
            pos = length if close == -1 else close + 2

    text = "".join(pieces)
    text = _QUOTED_IDENTIFIER.sub(lambda m: m.group(1) or m.group(2) or m.group(3), text)
    return _WHITESPACE.sub(" ", text).strip()


def find_closing_paren(text: str, open_index: int) -> int:
    """Index of the `)` matching the `(` at `open_index`, or -1."""
    depth = 0
    for index in range(open_index, len(text)):
        char = text[index]
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth == 0:
                return index
    return -1


def function_call_positions(text: str, positions: Iterable[int]) -> set[int]:
    """
    Of `positions`, those directly inside a parenthesis that does not
    open a subquery, such as the FROM of `EXTRACT(YEAR FROM d)`.
    """
    inside: set[int] = set()
    pending = iter(sorted(positions))
    next_position = next(pending, None)
    stack: list[int] = []

    for index, char in enumerate(text):
        if next_position is None:
            break
        while next_position is not None and next_position <= index:
            if stack and not _SUBQUERY_START.match(text, stack[-1] + 1):
                inside.add(next_position)
            next_position = next(pending, None)
        if char == "(":
            stack.append(index)
        elif char == ")" and stack:
            stack.pop()

    return inside


# -----------------------------
# Analyzer
# -----------------------------


@dataclass
class _ScanState:
    tables: list[str] = field(default_factory=list)
    aliases: dict[str, str] = field(default_factory=dict)
    excluded: set[str] = field(default_factory=set)  # CTE names, derived aliases
    joins: list[JoinRelationship] = field(default_factory=list)
    truncated: bool = False


class SQLAnalyzer:
    """
    Heuristic extractor of tables, joins and aliases.

    Bounded by three ceilings: input length (longer input yields an
    empty result), matches consumed per regex scan, and subquery
    nesting followed.
    """

    def __init__(
        self,
        max_sql_length: int | None = None,
        max_matches_per_pass: int | None = None,
        max_subquery_depth: int | None = None,
    ):
        settings = get_analyzer_settings()
        self._max_sql_length = max_sql_length or settings.max_sql_length
        self._max_matches = max_matches_per_pass or settings.max_matches_per_pass
        self._max_depth = (
            settings.max_subquery_depth if max_subquery_depth is None else max_subquery_depth
        )

    def analyze(self, sql: str) -> AnalysisResult:
        """
        Analyze a SQL text.

        Args:
            sql: Any SQL text, possibly with CTEs, subqueries and comments.

        Returns:
            AnalysisResult with deduplicated tables, join relationships
            and the alias map.

        Raises:
            SQLAnalysisError: If `sql` is not a string.
        """
        if not isinstance(sql, str):
            raise SQLAnalysisError(f"Expected SQL text, got {type(sql).__name__}")

        if len(sql) > self._max_sql_length:
            logger.warning(
                "SQL text of %d chars exceeds the %d char analysis limit; skipping",
                len(sql),
                self._max_sql_length,
            )
            return AnalysisResult()

        cleaned = scrub_sql(sql)
        state = _ScanState()

        final_query = self._extract_ctes(cleaned, state)
        self._scan_scope(final_query, state, depth=0)
        self._extract_joins(cleaned, state)

        if state.truncated:
            logger.warning("SQL analysis hit the match limit; result is partial")

        result = AnalysisResult(
            tables=self._unique_tables(state),
            joins=state.joins,
            aliases=state.aliases,
        )
        logger.debug(
            "Analyzed SQL: tables=%s joins=%d aliases=%d",
            result.tables,
            len(result.joins),
            len(result.aliases),
        )
        return result

    # -------------------------
    # CTEs
    # -------------------------

    def _extract_ctes(self, text: str, state: _ScanState) -> str:
        """Scan each CTE body, record CTE names, and return the final SELECT."""
        head = _WITH_HEAD.match(text)
        if head is None:
            return text

        pos = head.end()
        while True:
            cte = _CTE_HEAD.match(text, pos)
            if cte is None:
                break

            state.excluded.add(cte.group(1).lower())
            open_index = cte.end() - 1
            close_index = find_closing_paren(text, open_index)

            if close_index == -1:
                self._scan_scope(text[cte.end() :], state, depth=1)
                return ""

            self._scan_scope(text[cte.end() : close_index], state, depth=1)
            pos = close_index + 1

            separator = _CTE_SEPARATOR.match(text, pos)
            if separator is None:
                break
            pos = separator.end()

        return text[pos:].strip()

    # -------------------------
    # Tables & subqueries
    # -------------------------

    def _scan_scope(self, text: str, state: _ScanState, depth: int) -> None:
        """Collect FROM / JOIN tables of `text`, then descend into subqueries."""
        from_matches = list(self._bounded(_FROM_TABLE.finditer(text), state))
        in_calls = function_call_positions(text, (m.start() for m in from_matches))

        for match in from_matches:
            if match.start() in in_calls:
                continue
            self._register_table(match, state)
            end = match.end()
            while (more := _COMMA_TABLE.match(text, end)) is not None:
                self._register_table(more, state)
                end = more.end()

        for match in self._bounded(_JOIN_TABLE.finditer(text), state):
            self._register_table(match, state)

        self._scan_subqueries(text, state, depth)

    def _scan_subqueries(self, text: str, state: _ScanState, depth: int) -> None:
        """
        Follow `(SELECT ...)` bodies found by three patterns: derived
        tables, IN/EXISTS predicates and any other (scalar or correlated)
        subquery. Only outermost bodies are followed here; the recursion
        reaches the nested ones.
        """
        candidates: dict[int, str] = {}
        for kind, pattern in (
            ("derived", _DERIVED_OPEN),
            ("predicate", _PREDICATE_OPEN),
            ("scalar", _SCALAR_OPEN),
        ):
            for match in self._bounded(pattern.finditer(text), state):
                open_index = text.index("(", match.start())
                candidates.setdefault(open_index, kind)

        covered_until = -1
        for open_index in sorted(candidates):
            if open_index < covered_until:
                continue

            close_index = find_closing_paren(text, open_index)
            end = len(text) if close_index == -1 else close_index
            covered_until = end

            if candidates[open_index] == "derived" and close_index != -1:
                alias = _DERIVED_ALIAS.match(text, close_index + 1)
                if alias is not None:
                    state.excluded.add(alias.group(1).lower())

            if depth >= self._max_depth:
                logger.warning("Subquery nesting deeper than %d not followed", self._max_depth)
                continue

            body = text[open_index + 1 : end].strip()
            self._scan_scope(body, state, depth + 1)

    def _register_table(self, match: re.Match, state: _ScanState) -> None:
        first, second, table, alias = match.groups()
        schema = second or first

        if table.lower() in state.excluded:
            # A CTE referenced under an alias: the alias is not a table either.
            if alias:
                state.excluded.add(alias.lower())
            return

        full_name = f"{schema}.{table}" if schema else table
        state.tables.append(full_name)
        if alias:
            state.aliases[alias.lower()] = full_name
        state.aliases[table.lower()] = full_name

    # -------------------------
    # Joins
    # -------------------------

    def _extract_joins(self, text: str, state: _ScanState) -> None:
        """Record one relationship per table pair found in ON conditions."""
        for block in self._bounded(_ON_BLOCK.finditer(text), state):
            for match in _EQUALITY.finditer(block.group(1)):
                schema1, ref1, col1, schema2, ref2, col2 = match.groups()

                if ref1.lower() in state.excluded or ref2.lower() in state.excluded:
                    continue

                table1 = self._resolve(ref1, schema1, state)
                table2 = self._resolve(ref2, schema2, state)

                if table1.lower() in state.excluded or table2.lower() in state.excluded:
                    continue
                if table1.lower() == table2.lower():
                    continue
                if self._has_join(state, table1, table2):
                    continue

                state.joins.append(
                    JoinRelationship(
                        from_table=table1,
                        to_table=table2,
                        condition=f"{table1}.{col1} = {table2}.{col2}",
                        from_column=col1,
                        to_column=col2,
                    )
                )

    @staticmethod
    def _resolve(reference: str, schema: str | None, state: _ScanState) -> str:
        resolved = state.aliases.get(reference.lower())
        if resolved is not None:
            return resolved
        if schema:
            return f"{schema}.{reference}"
        return reference

    @staticmethod
    def _has_join(state: _ScanState, table1: str, table2: str) -> bool:
        pair = {table1.lower(), table2.lower()}
        return any(
            {join.from_table.lower(), join.to_table.lower()} == pair
            for join in state.joins
        )

    # -------------------------
    # Helpers
    # -------------------------

    def _bounded(self, matches: Iterator[re.Match], state: _ScanState) -> Iterator[re.Match]:
        for count, match in enumerate(matches):
            if count >= self._max_matches:
                state.truncated = True
                return
            yield match

    @staticmethod
    def _unique_tables(state: _ScanState) -> list[str]:
        seen: set[str] = set()
        tables = []
        for table in state.tables:
            key = table.lower()
            if key in seen or key in state.excluded:
                continue
            seen.add(key)
            tables.append(table)
        return tables


def analyze_sql(sql: str) -> AnalysisResult:
    """Analyze `sql` with the configured limits. See SQLAnalyzer."""
    return SQLAnalyzer().analyze(sql)
