"""Reverse SQL analysis: tables, joins and aliases from SQL text."""

from .extractor import (
    AnalysisResult,
    JoinRelationship,
    SQLAnalysisError,
    SQLAnalyzer,
    analyze_sql,
    scrub_sql,
)
from .highlighter import (
    HighlightResult,
    SchemaMatcher,
    highlight_analysis,
    highlight_query,
    tables_match,
)

__all__ = [
    "AnalysisResult",
    "HighlightResult",
    "JoinRelationship",
    "SQLAnalysisError",
    "SQLAnalyzer",
    "SchemaMatcher",
    "analyze_sql",
    "highlight_analysis",
    "highlight_query",
    "scrub_sql",
    "tables_match",
]
