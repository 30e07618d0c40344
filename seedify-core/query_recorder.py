"""
Seedify Query Recorder - Capture Layer
======================================

Records every statement a SQLAlchemy engine sends to the database, so a test
run can be turned into a query log for the analyzer.

USAGE (test harness owns the recorder):

    recorder = QueryRecorder(engine)
    recorder.start()
    ... run tests ...
    recorder.stop()
    recorder.dump(".seedify/queries.jsonl")

or as a context manager:

    with QueryRecorder(engine) as recorder:
        ...

PLACEHOLDER DIALECT:
    The analyzer understands PostgreSQL positional markers ($1, $2 ...).
    DB-API drivers use other paramstyles, so each statement is rewritten
    before it is stored:

        qmark     WHERE id = ?            (7,)          -> WHERE id = $1   [7]
        format    WHERE id = %s           (7,)          -> WHERE id = $1   [7]
        numeric   WHERE id = :1           (7,)          -> WHERE id = $1   [7]
        pyformat  WHERE id = %(id)s       {"id": 7}     -> WHERE id = $1   [7]
        named     WHERE id = :id          {"id": 7}     -> WHERE id = $1   [7]

    Markers inside single-quoted literals are left alone. `::type` casts are
    not mistaken for named markers.
"""

import re
import json
import time
import uuid
import logging
import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, List, Mapping, Optional, Sequence, Tuple, Union

from sqlalchemy import event
from sqlalchemy.engine import Engine

from query_log import QueryRecord

logger = logging.getLogger(__name__)

# SQL single-quoted string literal, '' escape included
_STRING_LITERAL_RE = re.compile(r"'[^']*(?:''[^']*)*'")

_POSITIONAL_MARKER_RE = re.compile(r"%s|\?|(?<![:\w]):(?P<number>\d+)")
_NAMED_MARKER_RE = re.compile(
    r"%\((?P<pyformat>\w+)\)s|(?<![:\w]):(?P<named>[A-Za-z_]\w*)"
)


def _rewrite_outside_literals(sql: str, pattern: re.Pattern, repl: Callable) -> str:
    """Apply pattern.sub only to the text between string literals."""
    parts = []
    last = 0
    for literal in _STRING_LITERAL_RE.finditer(sql):
        parts.append(pattern.sub(repl, sql[last:literal.start()]))
        parts.append(literal.group(0))
        last = literal.end()
    parts.append(pattern.sub(repl, sql[last:]))
    return "".join(parts)


def to_positional(statement: str, parameters: Any) -> Tuple[str, List[Any]]:
    """
    Rewrite a DB-API statement to $N markers with a positional parameter list.

    Statements already written with $N markers pass through unchanged.
    """
    if not parameters:
        return statement, []

    if isinstance(parameters, Mapping):
        order: List[str] = []

        def named(match):
            name = match.group("pyformat") or match.group("named")
            if name not in parameters:
                return match.group(0)
            if name not in order:
                order.append(name)
            return f"${order.index(name) + 1}"

        text = _rewrite_outside_literals(statement, _NAMED_MARKER_RE, named)
        return text, [parameters[name] for name in order]

    params = list(parameters)
    counter = [0]

    def positional(match):
        if match.group("number"):
            return f"${match.group('number')}"
        counter[0] += 1
        return f"${counter[0]}"

    text = _rewrite_outside_literals(statement, _POSITIONAL_MARKER_RE, positional)
    return text, params


def to_jsonable(value: Any) -> Any:
    """Convert driver parameter types into JSON-friendly values."""
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, (datetime.datetime, datetime.date, datetime.time)):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).hex()
    return value


class QueryRecorder:
    """
    Captures statements executed through one SQLAlchemy engine.

    The buffer belongs to the recorder instance; two recorders on two
    engines never see each other's queries.
    """

    def __init__(self, engine: Engine, clock: Callable[[], float] = time.time):
        self.engine = engine
        self._clock = clock
        self._records: List[QueryRecord] = []
        self._capturing = False

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @property
    def capturing(self) -> bool:
        return self._capturing

    def start(self) -> None:
        if self._capturing:
            logger.warning("[RECORDER] Already capturing queries")
            return
        event.listen(self.engine, "before_cursor_execute", self._on_cursor_execute)
        self._capturing = True
        logger.info("[RECORDER] Query capturing started")

    def stop(self) -> None:
        if not self._capturing:
            return
        event.remove(self.engine, "before_cursor_execute", self._on_cursor_execute)
        self._capturing = False
        logger.info(f"[RECORDER] Query capturing stopped. Captured {len(self._records)} queries.")

    def __enter__(self) -> "QueryRecorder":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    # -------------------------------------------------------------------------
    # Buffer
    # -------------------------------------------------------------------------

    @property
    def queries(self) -> List[QueryRecord]:
        """Copy of the captured records."""
        return list(self._records)

    def clear(self) -> None:
        self._records.clear()

    def record(self, statement: str, parameters: Any = None) -> Optional[QueryRecord]:
        """Store one statement execution. Empty statements are ignored."""
        if not statement or not statement.strip():
            return None
        text, params = to_positional(statement, parameters)
        record = QueryRecord(
            query=text,
            params=to_jsonable(params),
            timestamp=int(self._clock() * 1000),
        )
        self._records.append(record)
        return record

    def _on_cursor_execute(self, conn, cursor, statement, parameters, context, executemany):
        if executemany and isinstance(parameters, Sequence) and not isinstance(parameters, (str, bytes)):
            for parameter_set in parameters:
                self.record(statement, parameter_set)
        else:
            self.record(statement, parameters)

    # -------------------------------------------------------------------------
    # Output
    # -------------------------------------------------------------------------

    def dump(self, path: Union[str, Path]) -> Path:
        """
        Write the captured records as JSONL, one record per line.

        Parent directories are created as needed.
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        lines = [
            json.dumps(record.model_dump(), default=str)
            for record in self._records
        ]
        path.write_text("\n".join(lines) + "\n" if lines else "", encoding="utf-8")
        logger.info(f"[RECORDER] Dumped {len(self._records)} queries to {path}")
        return path
