"""Safety module for QueryLens - structural AST validation."""

from .validator import ASTValidationError, ASTValidator, IssueType, ValidationIssue

__all__ = [
    "ASTValidationError",
    "ASTValidator",
    "IssueType",
    "ValidationIssue",
]
