"""Join path discovery over the schema graph."""

from .resolver import (
    JoinGraphResolver,
    JoinOption,
    JoinPath,
    JoinResolutionError,
    PathStep,
    RelatedTable,
    Relationship,
    find_all_paths,
    find_best_path,
    find_join_options,
    find_tables_with_relationships,
)

__all__ = [
    "JoinGraphResolver",
    "JoinOption",
    "JoinPath",
    "JoinResolutionError",
    "PathStep",
    "RelatedTable",
    "Relationship",
    "find_all_paths",
    "find_best_path",
    "find_join_options",
    "find_tables_with_relationships",
]
