# gql_intel/extractors/__init__.py
"""
Extractors Package
Heuristic recovery of GraphQL operations from script text
"""

from .operation_extract import (
    DEFAULT_MATCHERS,
    OperationExtractor,
    PatternMatcher,
    extract_operations,
    parse_operation,
)

__all__ = [
    "DEFAULT_MATCHERS",
    "OperationExtractor",
    "PatternMatcher",
    "extract_operations",
    "parse_operation",
]
