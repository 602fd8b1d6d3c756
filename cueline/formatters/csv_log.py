"""CSV export of the command log.

RULES:
- Header row: Take,Timestamp,Command,Details
- Timestamps are ISO-8601 UTC with milliseconds
- The Details column is always quoted; Command is quoted only when it
  contains a comma, quote, or line break (RFC 4180)
- parse_csv_log() reads the export back into LogEntry records
"""

from __future__ import annotations

import csv
import io
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from cueline.core.commandlog import LogEntry
from cueline.formatters.base import (
    BaseLogFormatter,
    FormatterOutput,
    export_filename,
    format_timestamp,
)

HEADER = ["Take", "Timestamp", "Command", "Details"]


def _quote(value: str) -> str:
    return '"{}"'.format(value.replace('"', '""'))


def _field(value: str) -> str:
    if any(ch in value for ch in (",", '"', "\n", "\r")):
        return _quote(value)
    return value


class CSVLogFormatter(BaseLogFormatter):
    @property
    def name(self) -> str:
        return "CSV"

    @property
    def extension(self) -> str:
        return "csv"

    def format(
        self,
        entries: Sequence[LogEntry],
        now: Optional[datetime] = None,
    ) -> FormatterOutput:
        lines = [",".join(HEADER)]
        for entry in entries:
            lines.append(",".join([
                str(entry.take),
                format_timestamp(entry.timestamp),
                _field(entry.command),
                _quote(entry.details),
            ]))
        return FormatterOutput(
            filename=export_filename(self.extension, now),
            content="\n".join(lines) + "\n",
            media_type="text/csv",
        )


def parse_csv_log(content: str) -> List[LogEntry]:
    """Parse CSV produced by CSVLogFormatter back into entries.

    Raises:
        ValueError: Missing or unexpected header, or a malformed row.
    """
    rows = list(csv.reader(io.StringIO(content)))
    if not rows or rows[0] != HEADER:
        raise ValueError("Not a command log export: unexpected header")

    entries: List[LogEntry] = []
    for row in rows[1:]:
        if not row:
            continue
        if len(row) != 4:
            raise ValueError("Malformed row: {!r}".format(row))
        take, stamp, command, details = row
        timestamp = datetime.fromisoformat(stamp.replace("Z", "+00:00"))
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        entries.append(LogEntry(
            take=int(take),
            timestamp=timestamp,
            command=command,
            details=details,
        ))
    return entries
