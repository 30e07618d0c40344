"""
Seedify Condition Extraction - Layered Predicate Recognition
============================================================

Turns one captured query plus its positional parameters into filter
conditions:

    SELECT * FROM orders WHERE status NOT IN ($1, $2) AND created_at >= $3
    params = ["cancelled", "deleted", "2024-01-01"]

        -> Condition(column="status",     operator="NOT IN", values=["cancelled", "deleted"])
        -> Condition(column="created_at", operator=">=",     values=["2024-01-01"])

DESIGN:
    An ordered list of pattern families. Each family is a compiled regex and
    a handler that turns a match into a Condition (or None when a placeholder
    does not resolve). Most families come in two forms:

        bare       col = $1
        qualified  users.col = $1

    Every family runs over the whole normalized text. Families are NOT
    mutually exclusive: `users.id = $1` produces a qualified condition from
    the qualified equality pattern AND an unqualified one from the bare
    pattern. Reconciliation happens in the aggregator.

PLACEHOLDERS:
    $N resolves to params[N-1]. $0 and indexes past the end never resolve.
    A JSON null parameter DOES resolve (to None).

WHAT THIS IS NOT:
    - NOT a SQL parser (no AST, no precedence, OR/AND are ignored)
    - NOT a validator (garbage in produces best-effort garbage out)
"""

import re
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from table_extractor import SQL_RESERVED_WORDS, normalize_query

logger = logging.getLogger(__name__)


# =============================================================================
# Condition model
# =============================================================================

OP_EQ = "="
OP_IN = "IN"
OP_NOT_IN = "NOT IN"
OP_ANY = "=ANY"
OP_BETWEEN = "BETWEEN"
OP_LIKE = "LIKE"
OP_ILIKE = "ILIKE"
OP_IS_NULL = "IS NULL"
OP_IS_NOT_NULL = "IS NOT NULL"

COMPARISON_OPERATORS = (">=", "<=", ">", "<", "!=", "<>")
PATTERN_OPERATORS = (OP_LIKE, OP_ILIKE)
NULL_CHECK_OPERATORS = (OP_IS_NULL, OP_IS_NOT_NULL)

OPERATORS = frozenset(
    (OP_EQ, OP_IN, OP_NOT_IN, OP_ANY, OP_BETWEEN)
    + COMPARISON_OPERATORS
    + PATTERN_OPERATORS
    + NULL_CHECK_OPERATORS
)


@dataclass
class Condition:
    """
    One filter predicate recognized in a query.

    Attributes:
        table: Lower-cased qualifier from `table.col`, or None when the
               predicate was unqualified
        column: Lower-cased column name
        operator: One of OPERATORS
        values: Literal values in source order; empty iff operator is a
                null check
    """
    table: Optional[str]
    column: str
    operator: str = OP_EQ
    values: List[Any] = field(default_factory=list)

    def __post_init__(self):
        if self.operator not in OPERATORS:
            raise ValueError(f"Unknown condition operator: {self.operator!r}")
        if (self.operator in NULL_CHECK_OPERATORS) != (not self.values):
            raise ValueError(
                f"{self.operator} condition on {self.column!r} has "
                f"{len(self.values)} value(s)"
            )

    @property
    def key(self) -> Tuple[Optional[str], str]:
        return (self.table, self.column)

    def with_table(self, table: Optional[str]) -> "Condition":
        return replace(self, table=table, values=list(self.values))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "table": self.table,
            "column": self.column,
            "operator": self.operator,
            "values": list(self.values),
        }


# =============================================================================
# Placeholder resolution
# =============================================================================

_MISSING = object()
_PLACEHOLDER_RE = re.compile(r'\$(\d+)')


def resolve_placeholder(params: Sequence[Any], number: str) -> Any:
    """Return params[N-1] for a `$N` index string, or _MISSING."""
    index = int(number) - 1
    if index < 0 or index >= len(params):
        return _MISSING
    return params[index]


def resolve_placeholder_list(params: Sequence[Any], text: str) -> List[Any]:
    """Resolve every `$N` token in a parenthesized list, dropping misses."""
    values = []
    for number in _PLACEHOLDER_RE.findall(text):
        value = resolve_placeholder(params, number)
        if value is not _MISSING:
            values.append(value)
    return values


# =============================================================================
# Pattern families
# =============================================================================

_IDENT = r'[A-Za-z_][A-Za-z0-9_]*'

Handler = Callable[[re.Match, Sequence[Any]], Optional[Condition]]


@dataclass(frozen=True)
class PatternFamily:
    """A compiled predicate shape and the handler that interprets it."""
    name: str
    pattern: re.Pattern
    handler: Handler


def _bare(body: str) -> re.Pattern:
    return re.compile(r'\b(?P<column>' + _IDENT + r')' + body, re.IGNORECASE)


def _qualified(body: str) -> re.Pattern:
    return re.compile(
        r'\b(?P<table>' + _IDENT + r')\.(?P<column>' + _IDENT + r')' + body,
        re.IGNORECASE,
    )


def _target(match: re.Match) -> Optional[Tuple[Optional[str], str]]:
    """(table, column) lower-cased, or None if either is a SQL keyword."""
    groups = match.groupdict()
    column = groups["column"].lower()
    table = groups.get("table")
    if column in SQL_RESERVED_WORDS:
        return None
    if table is not None:
        table = table.lower()
        if table in SQL_RESERVED_WORDS:
            return None
    return table, column


def _single_value(operator: Optional[str] = None) -> Handler:
    """col <op> $N -> one value; operator taken from the match if not fixed."""
    def handle(match, params):
        target = _target(match)
        if target is None:
            return None
        value = resolve_placeholder(params, match.group("param"))
        if value is _MISSING:
            return None
        op = operator or match.group("op").upper()
        return Condition(target[0], target[1], op, [value])
    return handle


def _membership(operator: str) -> Handler:
    def handle(match, params):
        target = _target(match)
        if target is None:
            return None
        values = resolve_placeholder_list(params, match.group("list"))
        if not values:
            return None
        return Condition(target[0], target[1], operator, values)
    return handle


def _array_equality(match, params):
    target = _target(match)
    if target is None:
        return None
    value = resolve_placeholder(params, match.group("param"))
    if value is _MISSING:
        return None
    values = list(value) if isinstance(value, (list, tuple)) else [value]
    if not values:
        return None
    return Condition(target[0], target[1], OP_ANY, values)


def _range(match, params):
    target = _target(match)
    if target is None:
        return None
    low = resolve_placeholder(params, match.group("param"))
    high = resolve_placeholder(params, match.group("param2"))
    if low is _MISSING or high is _MISSING:
        return None
    return Condition(target[0], target[1], OP_BETWEEN, [low, high])


def _null_check(match, params):
    target = _target(match)
    if target is None:
        return None
    operator = OP_IS_NOT_NULL if match.group("negated") else OP_IS_NULL
    return Condition(target[0], target[1], operator, [])


def _integer_literal(match, params):
    target = _target(match)
    if target is None:
        return None
    return Condition(target[0], target[1], OP_EQ, [int(match.group("literal"))])


def _string_literal(match, params):
    target = _target(match)
    if target is None:
        return None
    return Condition(target[0], target[1], OP_EQ, [match.group("literal")])


_EQ = r'\s*=\s*\$(?P<param>\d+)'
_IN = r'\s+IN\s*\((?P<list>[^)]+)\)'
_NOT_IN = r'\s+NOT\s+IN\s*\((?P<list>[^)]+)\)'
_ANY = r'\s*=\s*ANY\s*\(\s*\$(?P<param>\d+)\s*\)'
_CMP = r'\s*(?P<op>>=|<=|<>|!=|>|<)\s*\$(?P<param>\d+)'
_BETWEEN = r'\s+BETWEEN\s+\$(?P<param>\d+)\s+AND\s+\$(?P<param2>\d+)'
_LIKE = r'\s+(?P<op>I?LIKE)\s+\$(?P<param>\d+)'
_NULL = r'\s+IS\s+(?P<negated>NOT\s+)?NULL\b'
_INT_LITERAL = r'\s*=\s*(?P<literal>\d+)(?![\w.])'
_STR_LITERAL = r"\s*=\s*'(?P<literal>[^']+)'"

# Emission order matters: it is the order conditions come out of extract()
PATTERN_FAMILIES: Tuple[PatternFamily, ...] = (
    PatternFamily("equality", _bare(_EQ), _single_value(OP_EQ)),
    PatternFamily("equality.qualified", _qualified(_EQ), _single_value(OP_EQ)),
    PatternFamily("membership", _bare(_IN), _membership(OP_IN)),
    PatternFamily("membership.qualified", _qualified(_IN), _membership(OP_IN)),
    PatternFamily("negated_membership", _bare(_NOT_IN), _membership(OP_NOT_IN)),
    PatternFamily("negated_membership.qualified", _qualified(_NOT_IN), _membership(OP_NOT_IN)),
    PatternFamily("array_equality", _bare(_ANY), _array_equality),
    PatternFamily("array_equality.qualified", _qualified(_ANY), _array_equality),
    PatternFamily("comparison", _bare(_CMP), _single_value()),
    PatternFamily("comparison.qualified", _qualified(_CMP), _single_value()),
    PatternFamily("range", _bare(_BETWEEN), _range),
    PatternFamily("range.qualified", _qualified(_BETWEEN), _range),
    PatternFamily("pattern_match", _bare(_LIKE), _single_value()),
    PatternFamily("pattern_match.qualified", _qualified(_LIKE), _single_value()),
    PatternFamily("null_check", _bare(_NULL), _null_check),
    PatternFamily("null_check.qualified", _qualified(_NULL), _null_check),
    PatternFamily("integer_literal.qualified", _qualified(_INT_LITERAL), _integer_literal),
    PatternFamily("string_literal.qualified", _qualified(_STR_LITERAL), _string_literal),
)


# =============================================================================
# Extractor
# =============================================================================

class ConditionExtractor:
    """
    Runs every pattern family over a query and collects the conditions.

    Stateless with respect to instance state; safe to share.
    """

    def __init__(self, families: Sequence[PatternFamily] = PATTERN_FAMILIES):
        self.families = tuple(families)

    def extract(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Condition]:
        """
        Extract conditions from a query.

        Args:
            sql: Raw query text (normalized internally)
            params: Positional parameters for $1..$N

        Returns:
            Conditions in family emission order, then text order
        """
        normalized = normalize_query(sql)
        if not normalized:
            return []
        params = params if params is not None else []

        conditions: List[Condition] = []
        for family in self.families:
            for match in family.pattern.finditer(normalized):
                condition = family.handler(match, params)
                if condition is not None:
                    conditions.append(condition)

        logger.debug(f"[CONDITIONS] {len(conditions)} condition(s) from {normalized[:80]!r}")
        return conditions


_default_extractor = ConditionExtractor()


def extract_conditions(sql: str, params: Optional[Sequence[Any]] = None) -> List[Condition]:
    """Convenience wrapper around ConditionExtractor.extract()."""
    return _default_extractor.extract(sql, params)
