"""Append-only command log with take numbering.

WHY: Operators review a recording session afterwards: which commands were
issued, by voice or by hand, and in which take. The log is exported to CSV
or SRT (see cueline.formatters) so it can be lined up with the recording.

HOW: CommandLog keeps an in-memory list of frozen LogEntry records plus a
take counter. The take counter always advances, whether or not recording
is enabled, so numbering stays consistent when logging is switched on in
the middle of a session.

RULES:
- enable() clears entries, resets take to 1, and forgets that playback
  has started; disable() stops recording but keeps entries; clear()
  empties the entries on demand and keeps the take and the enabled flag
- The first play records "Playback started (Take 1)" without incrementing
- Resume after a manual pause, rewind, and jump-to-text increment the take
- Entries are never mutated or reordered; entries() returns a tuple copy
- Timestamps are timezone-aware UTC datetimes
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)

NEW_TAKE = "NEW_TAKE"
PLAY = "PLAY"
PAUSE = "PAUSE"


@dataclass(frozen=True)
class LogEntry:
    """One recorded command or event."""

    take: int
    timestamp: datetime
    command: str
    details: str


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CommandLog:
    """Records commands and manages take numbers."""

    def __init__(self, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._clock = clock or _utcnow
        self._entries: List[LogEntry] = []
        self.enabled = False
        self.take = 1
        self.has_started_playback = False

    def enable(self) -> None:
        self._entries = []
        self.take = 1
        self.has_started_playback = False
        self.enabled = True
        logger.info("Command logging enabled")

    def disable(self) -> None:
        self.enabled = False
        logger.info("Command logging disabled (%d entries kept)", len(self._entries))

    def clear(self) -> None:
        """Drop every entry; take numbering and the enabled flag are kept."""
        dropped = len(self._entries)
        self._entries = []
        logger.info("Command log cleared (%d entries dropped)", dropped)

    def record(self, command: str, details: str = "N/A") -> Optional[LogEntry]:
        """Append an entry for the current take; no-op while disabled."""
        if not self.enabled:
            return None
        entry = LogEntry(
            take=self.take,
            timestamp=self._clock(),
            command=command,
            details=details,
        )
        self._entries.append(entry)
        return entry

    def advance_take(self, reason: str) -> int:
        """Increment the take and record ``"<reason> (Take n)"``."""
        self.take += 1
        self.record(NEW_TAKE, "{} (Take {})".format(reason, self.take))
        return self.take

    def mark_playback_started(self) -> bool:
        """Record the first play of the session.

        Returns:
            True if this was the first play (an entry was written).
        """
        if self.has_started_playback:
            return False
        self.has_started_playback = True
        self.record(NEW_TAKE, "Playback started (Take {})".format(self.take))
        return True

    def entries(self) -> Tuple[LogEntry, ...]:
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)
