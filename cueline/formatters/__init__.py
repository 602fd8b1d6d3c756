"""Command log export registry.

WHY: The CLI and API layers need a single lookup to find the right export
format by name. Adding a format means creating the formatter class,
importing it here, and adding one line.

HOW: FORMATTERS maps string keys to formatter *classes* (not instances).
Callers instantiate as needed: ``formatter = FORMATTERS["csv"]()``.

RULES:
- Keys equal the formatter's file extension
- Values are BaseLogFormatter subclasses (not instances)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from cueline.formatters.csv_log import CSVLogFormatter
from cueline.formatters.srt_log import SRTLogFormatter

if TYPE_CHECKING:
    from cueline.formatters.base import BaseLogFormatter

FORMATTERS: dict[str, type[BaseLogFormatter]] = {
    "csv": CSVLogFormatter,
    "srt": SRTLogFormatter,
}
