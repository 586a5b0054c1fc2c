"""
QueryLens command line interface.

Generate SQL from an AST document, explore join paths in a schema graph,
and reverse-analyze SQL files.
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ValidationError
from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from querylens.core.analyzer import SQLAnalysisError, SQLAnalyzer, highlight_query
from querylens.core.join_graph import JoinGraphResolver, JoinResolutionError
from querylens.core.safety import ASTValidationError, ASTValidator
from querylens.core.schema_graph import SchemaGraph
from querylens.core.sql_ast import QueryAST, SQLCompileError, SQLCompiler, format_sql

console = Console()


# -----------------------------
# Loading
# -----------------------------


def _read_text(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    return Path(path).read_text(encoding="utf-8")


def load_graph(path: str) -> SchemaGraph:
    """Load a schema graph document ({nodes, edges})."""
    return SchemaGraph.model_validate(json.loads(_read_text(path)))


def load_ast(path: str) -> QueryAST:
    return QueryAST.model_validate(json.loads(_read_text(path)))


# -----------------------------
# Display Functions
# -----------------------------


def show_sql(sql_text: str, title: str = "Generated SQL"):
    """Display SQL with syntax highlighting."""
    syntax = Syntax(sql_text, "sql", theme="monokai", line_numbers=False)
    console.print(Panel(
        syntax,
        title=f"[bold yellow]{title}[/bold yellow]",
        border_style="yellow",
    ))


def show_error(title: str, message: str):
    """Display an error message."""
    console.print(Panel(
        f"[red]{message}[/red]",
        title=f"[bold red]{title}[/bold red]",
        border_style="red",
    ))


def _table(title: str) -> Table:
    return Table(
        title=f"[bold cyan]{title}[/bold cyan]",
        box=box.ROUNDED,
        show_header=True,
        header_style="bold magenta",
    )


# -----------------------------
# Commands
# -----------------------------


def cmd_generate(args: argparse.Namespace) -> int:
    ast = load_ast(args.ast)

    if args.validate:
        graph = load_graph(args.graph) if args.graph else None
        try:
            ASTValidator(graph).validate(ast)
        except ASTValidationError as e:
            show_error("Validation Error", "\n".join(i.message for i in e.issues))
            return 1

    compiler = SQLCompiler(dialect=args.dialect, pretty=not args.compact)
    sql = compiler.compile(ast)
    if args.raw:
        print(sql)
    else:
        show_sql(sql, title=f"Generated SQL ({compiler.dialect.value})")
    return 0


def cmd_paths(args: argparse.Namespace) -> int:
    resolver = JoinGraphResolver.from_graph(load_graph(args.graph))
    paths = resolver.find_all_paths(args.source, args.target, args.max_depth)

    if not paths:
        console.print(f"[dim]No path from {args.source} to {args.target}.[/dim]")
        return 0

    table = _table(f"Join paths: {args.source} → {args.target}")
    table.add_column("#", style="dim")
    table.add_column("Hops", style="yellow")
    table.add_column("Path", style="green")
    for index, path in enumerate(paths, start=1):
        hops = " → ".join(
            f"{s.from_table}.{s.from_column} = {s.to_table}.{s.to_column}"
            for s in path.edges
        )
        table.add_row(str(index), str(path.length), hops)
    console.print(table)
    return 0


def cmd_suggest(args: argparse.Namespace) -> int:
    resolver = JoinGraphResolver.from_graph(load_graph(args.graph))
    related = resolver.find_tables_with_relationships(args.tables)

    if not related:
        console.print("[dim]No related tables.[/dim]")
        return 0

    table = _table("Related tables")
    table.add_column("Table", style="cyan")
    table.add_column("Via", style="green")
    for candidate in related:
        via = ", ".join(
            f"{r.edge.from_table}.{r.edge.from_column} → {r.edge.to_table}.{r.edge.to_column}"
            for r in candidate.relationships
        )
        table.add_row(candidate.table_id, via)
    console.print(table)
    return 0


def cmd_analyze(args: argparse.Namespace) -> int:
    result = SQLAnalyzer().analyze(_read_text(args.sql))

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
        return 0

    tables = _table("Tables")
    tables.add_column("Table", style="cyan")
    for name in result.tables:
        tables.add_row(name)
    console.print(tables)

    joins = _table("Joins")
    joins.add_column("From", style="cyan")
    joins.add_column("To", style="cyan")
    joins.add_column("Condition", style="green")
    for join in result.joins:
        joins.add_row(join.from_table, join.to_table, join.condition)
    console.print(joins)
    return 0


def cmd_highlight(args: argparse.Namespace) -> int:
    graph = load_graph(args.graph)
    result = highlight_query(_read_text(args.sql), graph.node_ids(), graph.edges)

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
        return 0

    console.print(f"[bold cyan]Tables:[/bold cyan] {', '.join(sorted(result.highlighted_table_ids)) or '-'}")
    console.print(f"[bold cyan]Edges:[/bold cyan] {', '.join(sorted(result.highlighted_edge_ids)) or '-'}")
    return 0


def cmd_format(args: argparse.Namespace) -> int:
    formatted = format_sql(_read_text(args.sql))
    if args.raw:
        print(formatted)
    else:
        show_sql(formatted, title="Formatted SQL")
    return 0


# -----------------------------
# Entry point
# -----------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="querylens", description="Query generation and SQL analysis tools"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    generate = sub.add_parser("generate", help="Compile a QueryAST JSON document to SQL")
    generate.add_argument("ast", help="AST JSON file, or - for stdin")
    generate.add_argument("--dialect", choices=["mysql", "sqlserver"], default=None)
    generate.add_argument("--compact", action="store_true", help="Single-line output")
    generate.add_argument("--validate", action="store_true", help="Validate before compiling")
    generate.add_argument("--graph", help="Schema graph JSON used by --validate")
    generate.add_argument("--raw", action="store_true", help="Print plain SQL")
    generate.set_defaults(func=cmd_generate)

    paths = sub.add_parser("paths", help="List join paths between two tables")
    paths.add_argument("graph", help="Schema graph JSON file")
    paths.add_argument("source")
    paths.add_argument("target")
    paths.add_argument("--max-depth", type=int, default=None)
    paths.set_defaults(func=cmd_paths)

    suggest = sub.add_parser("suggest", help="Suggest tables related to the given ones")
    suggest.add_argument("graph", help="Schema graph JSON file")
    suggest.add_argument("tables", nargs="+")
    suggest.set_defaults(func=cmd_suggest)

    analyze = sub.add_parser("analyze", help="Extract tables and joins from SQL")
    analyze.add_argument("sql", help="SQL file, or - for stdin")
    analyze.add_argument("--json", action="store_true")
    analyze.set_defaults(func=cmd_analyze)

    highlight = sub.add_parser("highlight", help="Match SQL against a schema graph")
    highlight.add_argument("sql", help="SQL file, or - for stdin")
    highlight.add_argument("graph", help="Schema graph JSON file")
    highlight.add_argument("--json", action="store_true")
    highlight.set_defaults(func=cmd_highlight)

    fmt = sub.add_parser("format", help="Pretty-print a SQL statement")
    fmt.add_argument("sql", help="SQL file, or - for stdin")
    fmt.add_argument("--raw", action="store_true", help="Print plain SQL")
    fmt.set_defaults(func=cmd_format)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    load_dotenv()
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_time=False, show_path=False)],
    )

    try:
        return args.func(args)
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        show_error("Input Error", str(e))
    except SQLCompileError as e:
        show_error("Compilation Error", str(e))
    except JoinResolutionError as e:
        show_error("Join Resolution Error", str(e))
    except SQLAnalysisError as e:
        show_error("Analysis Error", str(e))
    return 1


if __name__ == "__main__":
    sys.exit(main())
