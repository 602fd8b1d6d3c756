"""Abstract base formatter and output container for command log export.

WHY: Every export format consumes the same sequence of LogEntry records but
produces different file content. This base class enforces a consistent
interface so the CLI and API layers can work with any formatter generically.

HOW: BaseLogFormatter is an ABC with a ``name`` property, an ``extension``
property, and a ``format()`` method. FormatterOutput bundles the suggested
download filename with its content and MIME type.

RULES:
- Subclasses MUST implement ``name``, ``extension`` and ``format()``
- ``format()`` never mutates or reorders the entries it is given
- Download names follow ``q_log_<timestamp>.<extension>``
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Sequence

from cueline.core.commandlog import LogEntry


@dataclass
class FormatterOutput:
    """One export file produced by a formatter.

    Attributes:
        filename: Suggested download name, e.g. ``"q_log_2026-10-18T09-30-00.csv"``.
        content: The file content.
        media_type: MIME type for the content, e.g. ``"text/csv"``.
    """

    filename: str
    content: str
    media_type: str


def format_timestamp(value: datetime) -> str:
    """ISO-8601 UTC with millisecond precision and a trailing ``Z``."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat(timespec="milliseconds") + "Z"


def export_filename(extension: str, now: Optional[datetime] = None) -> str:
    stamp = format_timestamp(now or datetime.now(timezone.utc))
    # Colons and dots are not portable in filenames
    stamp = stamp.replace(":", "-").replace(".", "-")
    return "q_log_{}.{}".format(stamp, extension)


class BaseLogFormatter(ABC):
    """Abstract base for all command log export formats.

    To add a new export format:
    1. Create a new file in formatters/
    2. Subclass BaseLogFormatter
    3. Implement name, extension and format()
    4. Register in FORMATTERS dict in formatters/__init__.py
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable format name, e.g. 'CSV'."""

    @property
    @abstractmethod
    def extension(self) -> str:
        """File extension without the dot."""

    @abstractmethod
    def format(
        self,
        entries: Sequence[LogEntry],
        now: Optional[datetime] = None,
    ) -> FormatterOutput:
        """Render the entries as one export file.

        Args:
            entries: Log entries in recording order.
            now: Export time used for the download name (defaults to now).
        """
