# query/parser.py
"""
Query syntax parser.

Turns a raw search string into structured intent for the retrieval pipeline.

Supported syntax:
- "exact phrase"   -> phrase (also used for semantic search)
- field:value      -> metadata filter (partial, case-insensitive match)
- -term            -> exclusion
- term1 OR term2   -> either term (a standalone OR anywhere switches the mode)
- term1 AND term2  -> both terms (the default)
- ( ... )          -> accepted but ignored; grouping is not implemented

The parser is total: any input produces a ParsedQuery, never an exception.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, Optional, Sequence

# Characters that terminate a bare word
_WORD_BREAKS = frozenset('()"')


class BooleanOp(str, Enum):
    """How semantic terms combine."""

    AND = "AND"
    OR = "OR"


class TokenType(str, Enum):
    """Lexical token kinds."""

    PHRASE = "phrase"
    FILTER = "filter"
    EXCLUDE = "exclude"
    AND = "and"
    OR = "or"
    LPAREN = "lparen"
    RPAREN = "rparen"
    TERM = "term"


@dataclass(frozen=True)
class Token:
    type: TokenType
    value: str
    field: Optional[str] = None


@dataclass(frozen=True)
class QueryFilter:
    """A field:value metadata constraint."""

    field: str
    value: str

    def to_dict(self) -> dict[str, str]:
        return {"field": self.field, "value": self.value}


@dataclass
class ParsedQuery:
    """
    Structured form of a raw query.

    Invariants:
    - original_query is the input, verbatim
    - semantic_terms keeps left-to-right input order and includes phrases
    - filters and exclusions never appear in semantic_terms
    """

    original_query: str
    phrases: list[str] = field(default_factory=list)
    semantic_terms: list[str] = field(default_factory=list)
    filters: list[QueryFilter] = field(default_factory=list)
    exclude_terms: list[str] = field(default_factory=list)
    boolean_op: BooleanOp = BooleanOp.AND

    @property
    def has_post_filters(self) -> bool:
        """True when results need exclusion or metadata filtering after search."""
        return bool(self.exclude_terms or self.filters)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "original_query": self.original_query,
            "phrases": list(self.phrases),
            "semantic_terms": list(self.semantic_terms),
            "filters": [f.to_dict() for f in self.filters],
            "exclude_terms": list(self.exclude_terms),
            "boolean_op": self.boolean_op.value,
        }


def _read_word(query: str, start: int) -> int:
    """Return the index just past the bare word beginning at start."""
    i = start
    while i < len(query) and not query[i].isspace() and query[i] not in _WORD_BREAKS:
        i += 1
    return i


def tokenize(query: str) -> list[Token]:
    """
    Split a query into tokens.

    Args:
        query: Raw query string

    Returns:
        Tokens in input order
    """
    tokens: list[Token] = []
    i = 0
    n = len(query)

    while i < n:
        char = query[i]

        if char.isspace():
            i += 1
            continue

        if char == '"':
            # An unterminated quote runs to end of input
            end = query.find('"', i + 1)
            if end == -1:
                end = n
            phrase = query[i + 1:end]
            if phrase:
                tokens.append(Token(TokenType.PHRASE, phrase))
            i = end + 1
            continue

        if char == "(":
            tokens.append(Token(TokenType.LPAREN, char))
            i += 1
            continue
        if char == ")":
            tokens.append(Token(TokenType.RPAREN, char))
            i += 1
            continue

        if char == "-":
            end = _read_word(query, i + 1)
            term = query[i + 1:end]
            if term:
                tokens.append(Token(TokenType.EXCLUDE, term))
            i = end
            continue

        end = _read_word(query, i)
        word = query[i:end]
        i = end

        upper = word.upper()
        if upper == "AND":
            tokens.append(Token(TokenType.AND, "AND"))
            continue
        if upper == "OR":
            tokens.append(Token(TokenType.OR, "OR"))
            continue

        colon = word.find(":")
        if 0 < colon < len(word) - 1:
            tokens.append(Token(TokenType.FILTER, word[colon + 1:], field=word[:colon]))
            continue

        tokens.append(Token(TokenType.TERM, word))

    return tokens


def parse_query(query: str) -> ParsedQuery:
    """
    Parse a raw query string into a ParsedQuery.

    Args:
        query: Raw query string (may be empty)

    Returns:
        ParsedQuery with original_query preserved verbatim
    """
    result = ParsedQuery(original_query=query)

    if not query or not query.strip():
        return result

    has_or = False

    for token in tokenize(query):
        if token.type is TokenType.PHRASE:
            result.phrases.append(token.value)
            result.semantic_terms.append(token.value)
        elif token.type is TokenType.FILTER:
            result.filters.append(QueryFilter(field=token.field, value=token.value))
        elif token.type is TokenType.EXCLUDE:
            result.exclude_terms.append(token.value)
        elif token.type is TokenType.OR:
            has_or = True
        elif token.type is TokenType.TERM:
            result.semantic_terms.append(token.value)
        # AND is the default; parentheses carry no structure

    if has_or:
        result.boolean_op = BooleanOp.OR

    return result


def to_semantic_query(parsed: ParsedQuery) -> str:
    """
    Build the text to embed for vector search.

    Semantic terms (phrases included) in original order, minus any term
    that contains an excluded term.
    """
    excluded = [ex.lower() for ex in parsed.exclude_terms]
    kept = [
        term for term in parsed.semantic_terms
        if not any(ex in term.lower() for ex in excluded)
    ]
    return " ".join(kept)


def to_fts_query(parsed: ParsedQuery) -> str:
    """
    Build the lexical (full-text) search string.

    Phrases keep their quotes; bare terms already covered by a phrase are
    not repeated.
    """
    parts = [f'"{phrase}"' for phrase in parsed.phrases]
    for term in parsed.semantic_terms:
        if not any(term in phrase for phrase in parsed.phrases):
            parts.append(term)
    return " ".join(parts)


def should_exclude(text: str, exclude_terms: Sequence[str]) -> bool:
    """True if text contains any exclude term (case-insensitive)."""
    lowered = text.lower()
    return any(term.lower() in lowered for term in exclude_terms)


def matches_filters(
    metadata: Optional[Mapping[str, str]],
    filters: Sequence[QueryFilter],
) -> bool:
    """
    Check metadata against field filters.

    Every filter's field must exist and its value must contain the filter
    value, case-insensitively. No filters always matches; missing metadata
    with any filter never matches.
    """
    if not filters:
        return True
    if metadata is None:
        return False

    for query_filter in filters:
        value = metadata.get(query_filter.field)
        if value is None:
            return False
        if query_filter.value.lower() not in str(value).lower():
            return False
    return True
