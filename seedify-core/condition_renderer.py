"""
Seedify Condition Rendering
===========================

Turns aggregated conditions into literal SQL predicates that Jailer takes as
the subject WHERE clause:

    Condition(table="users",  column="id",     operator="=",      values=[7, 42])
        -> {"table": "users",  "condition": "id IN (7, 42)"}
    Condition(table="orders", column="status", operator="NOT IN", values=["cancelled"])
        -> {"table": "orders", "condition": "status NOT IN ('cancelled')"}

WARNING:
    String values are wrapped in single quotes WITHOUT escaping. A captured
    parameter containing a quote produces a broken (or hostile) fragment. The
    output is meant for a developer's own test database, not for untrusted
    input.

Conditions without a table are skipped silently.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List

from condition_aggregator import AnalysisResult
from condition_extractor import (
    COMPARISON_OPERATORS,
    NULL_CHECK_OPERATORS,
    OP_BETWEEN,
    OP_NOT_IN,
    PATTERN_OPERATORS,
    Condition,
)

logger = logging.getLogger(__name__)


@dataclass
class RenderedCondition:
    """A WHERE fragment bound to its subject table."""
    table: str
    condition: str

    def to_dict(self) -> Dict[str, str]:
        return {"table": self.table, "condition": self.condition}


def format_literal(value: Any) -> str:
    """SQL literal for a captured value (strings quoted, not escaped)."""
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, (list, tuple)):
        return "ARRAY[" + ", ".join(format_literal(v) for v in value) + "]"
    return f"'{value}'"


def _literal_list(values: List[Any]) -> str:
    return ", ".join(format_literal(v) for v in values)


class ConditionRenderer:
    """Renders aggregated conditions operator by operator."""

    def render_condition(self, condition: Condition) -> str:
        column = condition.column
        operator = condition.operator
        values = condition.values

        if operator == OP_BETWEEN:
            # merged ranges collapse to the hull of the observed bounds
            return (
                f"{column} BETWEEN {format_literal(values[0])} "
                f"AND {format_literal(values[-1])}"
            )

        if operator in NULL_CHECK_OPERATORS:
            return f"{column} {operator}"

        if operator in PATTERN_OPERATORS or operator in COMPARISON_OPERATORS:
            if len(values) == 1:
                return f"{column} {operator} {format_literal(values[0])}"
            alternatives = " OR ".join(
                f"{column} {operator} {format_literal(v)}" for v in values
            )
            return f"({alternatives})"

        if operator == OP_NOT_IN:
            return f"{column} NOT IN ({_literal_list(values)})"

        # =, IN, =ANY
        if len(values) == 1:
            return f"{column} = {format_literal(values[0])}"
        return f"{column} IN ({_literal_list(values)})"

    def render(self, analysis: AnalysisResult) -> List[RenderedCondition]:
        rendered = []
        for condition in analysis.conditions:
            if not condition.table:
                logger.debug(f"[RENDERER] No table for column {condition.column!r}, skipped")
                continue
            rendered.append(
                RenderedCondition(condition.table, self.render_condition(condition))
            )
        return rendered


def render_conditions(analysis: AnalysisResult) -> List[RenderedCondition]:
    """Render every condition of an AnalysisResult that has a table."""
    return ConditionRenderer().render(analysis)
