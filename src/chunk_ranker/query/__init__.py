# query/__init__.py
"""
Query syntax parsing.

Components:
- parse_query: raw string -> ParsedQuery
- to_semantic_query / to_fts_query: derived strings for embedding and lexical search
- should_exclude / matches_filters: post-search result filters
"""

from .parser import (
    BooleanOp,
    ParsedQuery,
    QueryFilter,
    matches_filters,
    parse_query,
    should_exclude,
    to_fts_query,
    to_semantic_query,
)

__all__ = [
    "BooleanOp",
    "ParsedQuery",
    "QueryFilter",
    "matches_filters",
    "parse_query",
    "should_exclude",
    "to_fts_query",
    "to_semantic_query",
]
