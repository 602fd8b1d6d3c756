"""SRT export of the command log.

WHY: Loading the log as a subtitle track next to the recording shows each
command at the moment it was issued.

HOW: Each entry becomes one caption. Its start is the entry's offset from
the first entry and it stays on screen for a fixed two seconds.

RULES:
- Caption indices are 1-based and follow entry order
- Text is "Take N | COMMAND: details"
- An empty log produces an empty file
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Sequence

from cueline.core.commandlog import LogEntry
from cueline.formatters.base import BaseLogFormatter, FormatterOutput, export_filename

CAPTION_SECONDS = 2.0


def seconds_to_srt_time(seconds: float) -> str:
    """Convert seconds to SRT timestamp format: HH:MM:SS,mmm"""
    total_ms = int(round(max(0.0, seconds) * 1000))
    hours, rest = divmod(total_ms, 3_600_000)
    minutes, rest = divmod(rest, 60_000)
    secs, millis = divmod(rest, 1000)
    return "{:02d}:{:02d}:{:02d},{:03d}".format(hours, minutes, secs, millis)


class SRTLogFormatter(BaseLogFormatter):
    @property
    def name(self) -> str:
        return "SRT"

    @property
    def extension(self) -> str:
        return "srt"

    def format(
        self,
        entries: Sequence[LogEntry],
        now: Optional[datetime] = None,
    ) -> FormatterOutput:
        lines: List[str] = []
        if entries:
            origin = entries[0].timestamp
            for i, entry in enumerate(entries, 1):
                start = (entry.timestamp - origin).total_seconds()
                end = start + CAPTION_SECONDS
                lines.append(str(i))
                lines.append("{} --> {}".format(
                    seconds_to_srt_time(start), seconds_to_srt_time(end)
                ))
                lines.append("Take {} | {}: {}".format(entry.take, entry.command, entry.details))
                lines.append("")
        return FormatterOutput(
            filename=export_filename(self.extension, now),
            content="\n".join(lines),
            media_type="application/x-subrip",
        )
