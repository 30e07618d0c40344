"""
Seedify Query Log - Captured Query Records
==========================================

Reads the newline-delimited JSON log written by the query recorder:

    {"query": "SELECT * FROM users WHERE id = $1", "params": [42], "timestamp": 1718000000000}

One record per line. Blank lines are ignored.

ERROR MODEL:
    InputError is raised when the file cannot be read or a line is not a
    valid record. The line number is part of the message. Whether a bad line
    aborts the whole read or is skipped with a warning is decided by the
    caller through `on_malformed` ("abort" | "skip").
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Iterable, Iterator, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

MALFORMED_ABORT = "abort"
MALFORMED_SKIP = "skip"
MALFORMED_POLICIES = (MALFORMED_ABORT, MALFORMED_SKIP)


class InputError(Exception):
    """The query log is unreadable or contains an invalid line."""

    def __init__(self, message: str, line_number: Optional[int] = None):
        super().__init__(message)
        self.line_number = line_number


class QueryRecord(BaseModel):
    """One captured query execution."""
    model_config = ConfigDict(frozen=True)

    query: str
    params: List[Any] = Field(default_factory=list)
    timestamp: Optional[float] = None

    @field_validator("params", mode="before")
    @classmethod
    def _null_params_as_empty(cls, value):
        # The recorder writes [] for parameterless calls, older logs wrote null
        return [] if value is None else value


def parse_record_line(line: str, line_number: Optional[int] = None) -> QueryRecord:
    """Parse one JSONL line into a QueryRecord, raising InputError on failure."""
    try:
        return QueryRecord.model_validate_json(line)
    except ValidationError as e:
        where = f" on line {line_number}" if line_number is not None else ""
        raise InputError(
            f"Invalid query record{where}: {e.errors()[0].get('msg', str(e))}",
            line_number=line_number,
        ) from e


def iter_query_records(
    lines: Iterable[str],
    on_malformed: str = MALFORMED_ABORT,
) -> Iterator[QueryRecord]:
    """
    Yield QueryRecords from an iterable of JSONL lines.

    Args:
        lines: Raw lines (trailing newlines allowed)
        on_malformed: "abort" raises InputError on the first bad line,
                      "skip" logs a warning and continues

    Yields:
        QueryRecord per non-blank line, in input order
    """
    if on_malformed not in MALFORMED_POLICIES:
        raise ValueError(
            f"on_malformed must be one of {MALFORMED_POLICIES}, got {on_malformed!r}"
        )

    for line_number, raw in enumerate(lines, start=1):
        line = raw.strip()
        if not line:
            continue
        try:
            yield parse_record_line(line, line_number)
        except InputError as e:
            if on_malformed == MALFORMED_ABORT:
                raise
            logger.warning(f"[QUERY_LOG] Skipping malformed line: {e}")


def read_log_text(path: Union[str, Path]) -> str:
    """Read the whole log file, wrapping I/O failures as InputError."""
    try:
        return Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise InputError(f"Cannot read query log {path}: {e}") from e


def load_query_log(
    path: Union[str, Path],
    on_malformed: str = MALFORMED_ABORT,
) -> List[QueryRecord]:
    """Load every record from a JSONL query log."""
    content = read_log_text(path)
    records = list(iter_query_records(content.splitlines(), on_malformed))
    logger.debug(f"[QUERY_LOG] Loaded {len(records)} records from {path}")
    return records


async def load_query_log_async(
    path: Union[str, Path],
    on_malformed: str = MALFORMED_ABORT,
) -> List[QueryRecord]:
    """
    Async variant of load_query_log.

    Only the file read is offloaded; parsing runs on the calling task.
    """
    content = await asyncio.to_thread(read_log_text, path)
    return list(iter_query_records(content.splitlines(), on_malformed))
