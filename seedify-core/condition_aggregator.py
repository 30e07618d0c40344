"""
Seedify Condition Aggregation - Session-Level Analysis
======================================================

Folds the per-query extraction results of a whole capture session into a
single AnalysisResult:

    line 1: SELECT * FROM users WHERE id = $1          [42]
    line 2: SELECT * FROM users WHERE id IN ($1, $2)   [42, 7]
    line 3: SELECT * FROM orders WHERE user_id = $1    [42]

        tables     = ["orders", "users"]
        conditions = [users.id = [7, 42], orders.user_id = [42]]
        queryCount = 3

RULES:
    1. Table inference: a condition without a qualifier takes the FIRST table
       discovered in its own query. If the query has no table it stays
       tableless (the renderer drops it later).
    2. Dedup key is (table-or-None, column). Values are unioned with exact
       value dedup.
    3. The first operator seen for a key wins. A later query filtering the
       same column with a different operator only contributes values; the
       operator difference is logged at DEBUG and otherwise lost.
    4. Output values are sorted with a type tag first (null, bool, number,
       string, array) so mixed-type sets sort deterministically.

OWNERSHIP:
    A ConditionAggregator is created per analysis call and never shared.
    Line order is significant only through rule 1 and rule 3.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from condition_extractor import NULL_CHECK_OPERATORS, Condition, ConditionExtractor
from query_log import (
    MALFORMED_ABORT,
    QueryRecord,
    load_query_log,
    load_query_log_async,
)
from table_extractor import TableReferenceExtractor

logger = logging.getLogger(__name__)

# Longer query strings are not pattern-matched
DEFAULT_MAX_QUERY_LENGTH = 100_000


# =============================================================================
# Value ordering
# =============================================================================

def freeze_value(value: Any) -> Any:
    """Make a parameter value hashable (arrays -> tuples, objects -> JSON text)."""
    if isinstance(value, (list, tuple)):
        return tuple(freeze_value(v) for v in value)
    if isinstance(value, dict):
        return json.dumps(value, sort_keys=True, default=str)
    return value


def value_sort_key(value: Any) -> Tuple:
    """Tagged sort key: null < bool < number < string < array < other."""
    if value is None:
        return (0, 0)
    if isinstance(value, bool):
        return (1, int(value))
    if isinstance(value, (int, float)):
        return (2, value)
    if isinstance(value, str):
        return (3, value)
    if isinstance(value, tuple):
        return (4, tuple(value_sort_key(v) for v in value))
    return (5, repr(value))


# =============================================================================
# Results
# =============================================================================

@dataclass
class AnalysisResult:
    """
    Session-level analysis output.

    Attributes:
        tables: Sorted distinct table names across all queries
        conditions: Aggregated conditions, one per (table, column)
        query_count: Number of records processed
    """
    tables: List[str] = field(default_factory=list)
    conditions: List[Condition] = field(default_factory=list)
    query_count: int = 0

    @property
    def is_extraction_gap(self) -> bool:
        """True when the session produced no conditions at all."""
        return not self.conditions

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tables": list(self.tables),
            "conditions": [_thaw_condition(c) for c in self.conditions],
            "queryCount": self.query_count,
        }


def _thaw(value: Any) -> Any:
    if isinstance(value, tuple):
        return [_thaw(v) for v in value]
    return value


def _thaw_condition(condition: Condition) -> Dict[str, Any]:
    data = condition.to_dict()
    data["values"] = [_thaw(v) for v in data["values"]]
    return data


@dataclass
class _Entry:
    operator: str
    values: Dict[Tuple[int, Any], Any] = field(default_factory=dict)


# =============================================================================
# Aggregator
# =============================================================================

class ConditionAggregator:
    """Accumulates per-query (tables, conditions) pairs for one session."""

    def __init__(self):
        self._tables: set = set()
        self._entries: Dict[Tuple[Optional[str], str], _Entry] = {}
        self._query_count = 0

    def add(self, tables: Sequence[str], conditions: Iterable[Condition]) -> None:
        """
        Fold one query's extraction results into the session.

        Args:
            tables: Tables of this query, in discovery order
            conditions: Conditions of this query
        """
        self._query_count += 1
        self._tables.update(tables)
        inferred_table = tables[0] if tables else None

        for condition in conditions:
            if condition.table is None and inferred_table is not None:
                condition = condition.with_table(inferred_table)

            entry = self._entries.get(condition.key)
            if entry is None:
                entry = _Entry(operator=condition.operator)
                self._entries[condition.key] = entry
            elif entry.operator != condition.operator:
                logger.debug(
                    f"[AGGREGATOR] {condition.table}.{condition.column}: keeping "
                    f"operator {entry.operator!r}, dropping {condition.operator!r}"
                )

            # a null check carries no values, whatever later queries add
            if entry.operator in NULL_CHECK_OPERATORS:
                continue

            for value in condition.values:
                frozen = freeze_value(value)
                entry.values.setdefault((value_sort_key(frozen)[0], frozen), frozen)

    def result(self) -> AnalysisResult:
        conditions = [
            Condition(
                table=table,
                column=column,
                operator=entry.operator,
                values=sorted(entry.values.values(), key=value_sort_key),
            )
            for (table, column), entry in self._entries.items()
        ]
        return AnalysisResult(
            tables=sorted(self._tables),
            conditions=conditions,
            query_count=self._query_count,
        )


# =============================================================================
# Analyzer (extract + aggregate)
# =============================================================================

class QueryAnalyzer:
    """
    Runs both extractors over each record and aggregates the session.

    Holds no per-session state; every analyze_* call builds its own
    ConditionAggregator.
    """

    def __init__(
        self,
        table_extractor: Optional[TableReferenceExtractor] = None,
        condition_extractor: Optional[ConditionExtractor] = None,
        max_query_length: int = DEFAULT_MAX_QUERY_LENGTH,
    ):
        self.table_extractor = table_extractor or TableReferenceExtractor()
        self.condition_extractor = condition_extractor or ConditionExtractor()
        self.max_query_length = max_query_length

    def analyze_query(
        self, query: str, params: Optional[Sequence[Any]] = None
    ) -> Tuple[List[str], List[Condition]]:
        """Extract (tables, conditions) from a single query."""
        if self.max_query_length and len(query) > self.max_query_length:
            logger.warning(
                f"[ANALYZER] Skipping query of {len(query)} chars "
                f"(limit {self.max_query_length})"
            )
            return [], []
        tables = self.table_extractor.extract(query)
        conditions = self.condition_extractor.extract(query, params)
        return tables, conditions

    def analyze_records(self, records: Iterable[QueryRecord]) -> AnalysisResult:
        aggregator = ConditionAggregator()
        for record in records:
            tables, conditions = self.analyze_query(record.query, record.params)
            aggregator.add(tables, conditions)

        result = aggregator.result()
        logger.debug(
            f"[ANALYZER] {result.query_count} queries -> {len(result.tables)} tables, "
            f"{len(result.conditions)} conditions"
        )
        return result

    def analyze_file(
        self, path: Union[str, Path], on_malformed: str = MALFORMED_ABORT
    ) -> AnalysisResult:
        return self.analyze_records(load_query_log(path, on_malformed))

    async def analyze_file_async(
        self, path: Union[str, Path], on_malformed: str = MALFORMED_ABORT
    ) -> AnalysisResult:
        records = await load_query_log_async(path, on_malformed)
        return self.analyze_records(records)


def analyze_records(records: Iterable[QueryRecord], **kwargs) -> AnalysisResult:
    return QueryAnalyzer(**kwargs).analyze_records(records)


def analyze_file(
    path: Union[str, Path], on_malformed: str = MALFORMED_ABORT, **kwargs
) -> AnalysisResult:
    """Read a JSONL query log and return the session AnalysisResult."""
    return QueryAnalyzer(**kwargs).analyze_file(path, on_malformed)


async def analyze_file_async(
    path: Union[str, Path], on_malformed: str = MALFORMED_ABORT, **kwargs
) -> AnalysisResult:
    return await QueryAnalyzer(**kwargs).analyze_file_async(path, on_malformed)
