"""
Seedify Table Reference Extraction
==================================

Finds the tables a captured query touches, so the subsetting tool knows
which relations the test actually read or wrote.

APPROACH:
    Regex scan after FROM / JOIN / INTO / UPDATE / DELETE FROM. No parser.
    Join-type prefixes (LEFT, INNER, CROSS ...) need no handling because the
    JOIN pattern matches the bare keyword wherever it appears.

KNOWN LIMITATION:
    CTE names (`WITH recent AS (...) SELECT * FROM recent`) are reported as
    tables. Jailer ignores names that do not exist in the data model.
"""

import re
import logging
from typing import FrozenSet, List, Tuple

import sqlparse

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Words that can follow FROM/JOIN/INTO/UPDATE without being a relation
# (subqueries, LATERAL, INSERT ... VALUES, UPDATE ... SET, etc.)
# ---------------------------------------------------------------------------
SQL_RESERVED_WORDS: FrozenSet[str] = frozenset({
    'select', 'where', 'and', 'or', 'not', 'null', 'true', 'false',
    'order', 'group', 'having', 'limit', 'offset', 'union', 'intersect',
    'except', 'case', 'when', 'then', 'else', 'end', 'as', 'on',
    'lateral', 'recursive', 'with', 'values', 'returning', 'set',
})

# identifier, optionally schema-qualified: public.users
_TABLE_NAME = r'([A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z_][A-Za-z0-9_]*)?)'

_TABLE_PATTERNS: Tuple[re.Pattern, ...] = (
    re.compile(r'\bFROM\s+' + _TABLE_NAME, re.IGNORECASE),
    re.compile(r'\bJOIN\s+' + _TABLE_NAME, re.IGNORECASE),
    re.compile(r'\bINTO\s+' + _TABLE_NAME, re.IGNORECASE),
    re.compile(r'\bUPDATE\s+' + _TABLE_NAME, re.IGNORECASE),
    re.compile(r'\bDELETE\s+FROM\s+' + _TABLE_NAME, re.IGNORECASE),
)

_WHITESPACE_RE = re.compile(r'\s+')


def normalize_query(sql: str) -> str:
    """
    Strip SQL comments and collapse whitespace runs to a single space.

    Comment stripping goes through sqlparse so that `--` inside a string
    literal is left alone.
    """
    if not sql:
        return ""
    if '--' in sql or '/*' in sql:
        sql = sqlparse.format(sql, strip_comments=True)
    return _WHITESPACE_RE.sub(' ', sql).strip()


def is_reserved_word(word: str) -> bool:
    return word.lower() in SQL_RESERVED_WORDS


class TableReferenceExtractor:
    """
    Extracts lower-cased table names from a SQL string.

    Stateless; one instance can serve any number of queries and threads.
    """

    def extract(self, sql: str) -> List[str]:
        """
        Return distinct table names in discovery order.

        Discovery order is pattern order first (FROM, JOIN, INTO, UPDATE,
        DELETE FROM), then position in the text. The aggregator relies on
        this order when it assigns a table to an unqualified condition.
        """
        normalized = normalize_query(sql)
        if not normalized:
            return []

        # dict keeps insertion order and gives set semantics
        found = {}
        for pattern in _TABLE_PATTERNS:
            for match in pattern.finditer(normalized):
                name = match.group(1).lower()
                if name in SQL_RESERVED_WORDS:
                    continue
                found.setdefault(name, None)

        tables = list(found)
        logger.debug(f"[TABLES] {len(tables)} table(s): {tables}")
        return tables


_default_extractor = TableReferenceExtractor()


def extract_table_names(sql: str) -> List[str]:
    """Convenience wrapper around TableReferenceExtractor.extract()."""
    return _default_extractor.extract(sql)
